"""
SQLAlchemy ORM models for Mixroom.

Tables:
- releases: Releases owned by exactly one user
- release_members: Collaborator/client memberships (pending until accepted)
- tracks: Tracks on a release
- track_distribution: Per-track ISRC/ISWC/credits
- track_audio_versions: Uploaded mix versions per track
- mix_references: Reference tracks (release-level when track_id is null)
- revision_notes: Timestamped comments / revision notes per track
- portal_shares: One portal share per release (token + facet toggles)
- portal_track_settings: Per (share, track) visibility, download and approval
- portal_version_settings: Per (share, audio version) visibility
- portal_approval_events: Audit log of approval actions
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from mixroom.db.database import Base


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class Release(Base):
    """
    A release (single, EP, album) and its project metadata.

    ``owner_id`` is the JWT ``sub`` of the single owning user. The owner is
    never duplicated as a ``release_members`` row. ``payment_status`` is
    written by the billing integration only ("unpaid" | "partial" | "paid").
    """
    __tablename__ = "releases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Metadata
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    release_type: Mapped[str] = mapped_column(String(20), nullable=False, default="single")
    format: Mapped[str] = mapped_column(String(20), nullable=False, default="stereo")
    cover_art_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    global_direction: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    # Payment (fees are owner-edited; payment_status is billing-owned)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")
    fee_total: Mapped[float | None] = mapped_column(Float, nullable=True)
    fee_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    paid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Distribution
    distributor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    record_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    upc: Mapped[str | None] = mapped_column(String(20), nullable=True)
    copyright_holder: Mapped[str | None] = mapped_column(String(255), nullable=True)
    copyright_year: Mapped[str | None] = mapped_column(String(4), nullable=True)
    catalog_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Release {self.id} owner={self.owner_id} title={self.title!r}>"


class ReleaseMember(Base):
    """A membership granting a user a role on a release.

    ``role`` is "collaborator" | "client". ``accepted_at`` is null until the
    invited user accepts; pending memberships grant no access.
    """
    __tablename__ = "release_members"
    __table_args__ = (
        UniqueConstraint("release_id", "user_id", name="uq_release_members_release_user"),
        Index("ix_release_members_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    invited_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    # Null until the invited user accepts the invitation
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class Track(Base):
    """A track on a release."""
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # Creative brief: what the mix should feel like
    intent: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Technical specs (sample rate, loudness target, stems...)
    specs: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class AudioVersion(Base):
    """One uploaded mix version of a track."""
    __tablename__ = "track_audio_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class MixReference(Base):
    """A reference track. Release-level when ``track_id`` is null."""
    __tablename__ = "mix_references"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    song_title: Mapped[str] = mapped_column(String(255), nullable=False)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TrackDistribution(Base):
    """Per-track distribution metadata (one row per track, created on first edit)."""
    __tablename__ = "track_distribution"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    isrc: Mapped[str | None] = mapped_column(String(15), nullable=True)
    iswc: Mapped[str | None] = mapped_column(String(15), nullable=True)
    producer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    composers: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String(50), nullable=True)
    featured_artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    explicit_lyrics: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    instrumental: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cover_song: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


NOTE_SOURCE_EDITOR = "editor"
NOTE_SOURCE_PORTAL = "portal"


class RevisionNote(Base):
    """A revision note or timestamped portal comment on a track.

    ``source`` is "editor" for notes written by an authenticated member
    (``author_user_id`` set) and "portal" for anonymous portal comments.
    ``author`` is always a display name, never an account id.
    """
    __tablename__ = "revision_notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    audio_version_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("track_audio_versions.id", ondelete="SET NULL"), nullable=True
    )
    source: Mapped[str] = mapped_column(String(10), nullable=False, default=NOTE_SOURCE_PORTAL)
    author_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timecode_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class PortalShare(Base):
    """The portal configuration for a release (at most one per release).

    ``active`` false means the share is revoked; the token then resolves to
    nothing. Facet toggles default to hidden.
    """
    __tablename__ = "portal_shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    share_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    show_direction: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_specs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_references: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_payment_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_distribution: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_payment_for_download: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class PortalTrackSetting(Base):
    """Per (share, track) portal settings. Absent row == hidden."""
    __tablename__ = "portal_track_settings"
    __table_args__ = (
        UniqueConstraint("share_id", "track_id", name="uq_portal_track_settings_share_track"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    share_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("portal_shares.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    download_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="awaiting_review"
    )


class PortalVersionSetting(Base):
    """Per (share, audio version) portal visibility. Absent row == hidden."""
    __tablename__ = "portal_version_settings"
    __table_args__ = (
        UniqueConstraint(
            "share_id", "audio_version_id", name="uq_portal_version_settings_share_version"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    share_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("portal_shares.id", ondelete="CASCADE"), nullable=False, index=True
    )
    audio_version_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("track_audio_versions.id", ondelete="CASCADE"), nullable=False
    )
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PortalApprovalEvent(Base):
    """Append-only log of approval actions taken through the portal or by editors."""
    __tablename__ = "portal_approval_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    share_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("portal_shares.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    # "approve" | "request_changes" | "deliver"
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
