"""Pydantic wire models for portal shares, portal views and approval actions."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from mixroom.models.base import CamelModel
from mixroom.portal.approval import ApprovalAction, ApprovalStatus, PortalStatus


# ── Portal view (what an anonymous visitor sees) ──────────────────────────────


class PortalVersion(CamelModel):
    """A visible audio version of a portal track."""

    id: str
    version_number: int
    label: str | None = None
    file_url: str


class PortalComment(CamelModel):
    """A comment / revision note on a portal track.

    ``author`` is a display name. ``source`` tells editor notes ("editor")
    from visitor comments ("portal"); only the latter can be deleted from
    the portal.
    """

    id: str
    audio_version_id: str | None = None
    author: str
    source: str = "portal"
    content: str
    timecode_seconds: float | None = None
    created_at: datetime | None = None


class PortalReference(CamelModel):
    """A reference track shown when the references facet is enabled."""

    id: str
    song_title: str
    artist: str | None = None
    note: str | None = None
    url: str | None = None


class PortalTrackDistribution(CamelModel):
    """Per-track distribution metadata, shown with the distribution facet."""

    isrc: str | None = None
    iswc: str | None = None
    producer: str | None = None
    composers: str | None = None
    language: str | None = None
    featured_artist: str | None = None
    explicit_lyrics: bool = False
    instrumental: bool = False
    cover_song: bool = False


class PortalTrack(CamelModel):
    """A visible track with its visible versions and computed capabilities."""

    id: str
    track_number: int
    title: str
    intent: str | None = None
    specs: dict[str, Any] | None = Field(None, description="Present only when the specs facet is on")
    references: list[PortalReference] = Field(default_factory=list)
    versions: list[PortalVersion] = Field(default_factory=list)
    comments: list[PortalComment] = Field(default_factory=list)
    download_enabled: bool = Field(False, description="Evaluated per request against payment status")
    approval_status: ApprovalStatus = ApprovalStatus.AWAITING_REVIEW
    allowed_actions: list[ApprovalAction] = Field(
        default_factory=list, description="Approval actions a portal visitor may take now"
    )
    distribution: PortalTrackDistribution | None = None
    approval_date: datetime | None = None


class PortalPayment(CamelModel):
    payment_status: str
    fee_total: float | None = None
    fee_currency: str = "USD"
    paid_amount: float | None = None


class PortalDistribution(CamelModel):
    distributor: str | None = None
    record_label: str | None = None
    upc: str | None = None
    copyright_holder: str | None = None
    copyright_year: str | None = None
    catalog_number: str | None = None


class PortalRelease(CamelModel):
    id: str
    title: str
    artist: str | None = None
    release_type: str
    format: str
    cover_art_url: str | None = None


class PortalView(CamelModel):
    """The filtered, read-mostly projection of a release for one share token."""

    share_token: str
    release: PortalRelease
    portal_status: PortalStatus
    global_direction: str | None = None
    references: list[PortalReference] = Field(default_factory=list)
    payment: PortalPayment | None = None
    distribution: PortalDistribution | None = None
    tracks: list[PortalTrack] = Field(default_factory=list)


# ── Portal visitor actions ────────────────────────────────────────────────────


class ApproveTrackRequest(CamelModel):
    """Body for POST /portal/{token}/tracks/{track_id}/approve."""

    actor_name: str | None = Field(None, max_length=255)
    note: str | None = None


class RequestChangesRequest(CamelModel):
    """Body for POST /portal/{token}/tracks/{track_id}/request-changes."""

    actor_name: str | None = Field(None, max_length=255)
    note: str = Field(..., description="Feedback for the engineer; required")

    @field_validator("note")
    @classmethod
    def _note_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Note is required when requesting changes")
        return value.strip()


class ApprovalResponse(CamelModel):
    track_id: str
    approval_status: ApprovalStatus
    portal_status: PortalStatus


class CreateCommentRequest(CamelModel):
    """Body for POST /portal/{token}/tracks/{track_id}/comments."""

    audio_version_id: str
    content: str
    timecode_seconds: float = Field(0.0, ge=0)
    author_name: str | None = Field(None, max_length=255)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment content is required")
        return value.strip()


# ── Share settings (editor side) ──────────────────────────────────────────────


class ShareSettingsUpdate(CamelModel):
    """Body for PATCH /releases/{release_id}/share — only provided toggles change."""

    show_direction: bool | None = None
    show_specs: bool | None = None
    show_references: bool | None = None
    show_payment_status: bool | None = None
    show_distribution: bool | None = None
    require_payment_for_download: bool | None = None


class TrackSettingUpdate(CamelModel):
    """Body for PUT /releases/{release_id}/share/tracks/{track_id}."""

    visible: bool | None = None
    download_enabled: bool | None = None


class VersionSettingUpdate(CamelModel):
    """Body for PUT /releases/{release_id}/share/versions/{version_id}."""

    visible: bool


class TrackSettingResponse(CamelModel):
    track_id: str
    visible: bool
    download_enabled: bool
    approval_status: ApprovalStatus


class VersionSettingResponse(CamelModel):
    audio_version_id: str
    visible: bool


class ShareResponse(CamelModel):
    """A portal share with its derived rollup status."""

    share_id: str
    release_id: str
    share_token: str
    active: bool
    show_direction: bool
    show_specs: bool
    show_references: bool
    show_payment_status: bool
    show_distribution: bool
    require_payment_for_download: bool
    portal_status: PortalStatus
    track_settings: list[TrackSettingResponse] = Field(default_factory=list)
    version_settings: list[VersionSettingResponse] = Field(default_factory=list)


class DeliverTrackRequest(CamelModel):
    """Body for POST /releases/{release_id}/share/tracks/{track_id}/deliver."""

    note: str | None = None
