"""Pydantic wire models for releases, team membership and tracks."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from mixroom.models.base import CamelModel


# ── Releases ──────────────────────────────────────────────────────────────────


class ReleaseCreate(CamelModel):
    """Body for POST /releases — the caller becomes the owner."""

    title: str = Field(..., min_length=1, max_length=255)
    artist: str | None = Field(None, max_length=255)
    release_type: str = Field("single", max_length=20)
    format: str = Field("stereo", max_length=20)


class ReleaseUpdate(CamelModel):
    """Body for PATCH /releases/{release_id}.

    Only provided fields are written; each is gated by its own capability.
    ``payment_status`` is absent on purpose: billing owns it.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    artist: str | None = None
    release_type: str | None = None
    format: str | None = None
    cover_art_url: str | None = None
    global_direction: str | None = None
    status: str | None = None
    fee_total: float | None = Field(None, ge=0)
    fee_currency: str | None = Field(None, min_length=3, max_length=3)
    paid_amount: float | None = Field(None, ge=0)
    distributor: str | None = None
    record_label: str | None = None
    upc: str | None = None
    copyright_holder: str | None = None
    copyright_year: str | None = None
    catalog_number: str | None = None


class ReleaseResponse(CamelModel):
    release_id: str
    owner_id: str
    title: str
    artist: str | None = None
    release_type: str
    format: str
    cover_art_url: str | None = None
    global_direction: str | None = None
    status: str
    payment_status: str
    fee_total: float | None = None
    fee_currency: str
    paid_amount: float | None = None
    distributor: str | None = None
    record_label: str | None = None
    upc: str | None = None
    copyright_holder: str | None = None
    copyright_year: str | None = None
    catalog_number: str | None = None
    role: str = Field(..., description="The caller's resolved role on this release")
    capabilities: list[str] = Field(default_factory=list)


# ── Team ──────────────────────────────────────────────────────────────────────


class MemberInviteRequest(CamelModel):
    """Body for POST /releases/{release_id}/members."""

    user_id: str = Field(..., min_length=1, max_length=36, description="User to invite")
    role: Literal["collaborator", "client"] = "collaborator"


class MemberResponse(CamelModel):
    member_id: str
    release_id: str
    user_id: str
    role: str
    invited_by: str | None = None
    invited_at: datetime | None = None
    accepted_at: datetime | None = None


class MemberListResponse(CamelModel):
    members: list[MemberResponse]
    total: int


# ── Tracks ────────────────────────────────────────────────────────────────────


class TrackCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    track_number: int | None = Field(None, ge=1)
    intent: str | None = None
    specs: dict[str, Any] | None = None


class TrackUpdate(CamelModel):
    """Body for PATCH /tracks/{track_id}. ``intent`` is creative input."""

    title: str | None = Field(None, min_length=1, max_length=255)
    track_number: int | None = Field(None, ge=1)
    intent: str | None = None
    specs: dict[str, Any] | None = None


class TrackResponse(CamelModel):
    track_id: str
    release_id: str
    track_number: int
    title: str
    intent: str | None = None
    specs: dict[str, Any] | None = None


class TrackDistributionUpdate(CamelModel):
    """Body for PUT /tracks/{track_id}/distribution. Omitted fields are left alone."""

    isrc: str | None = Field(None, max_length=15)
    iswc: str | None = Field(None, max_length=15)
    producer: str | None = Field(None, max_length=255)
    composers: str | None = None
    language: str | None = Field(None, max_length=50)
    featured_artist: str | None = Field(None, max_length=255)
    explicit_lyrics: bool | None = None
    instrumental: bool | None = None
    cover_song: bool | None = None


class TrackDistributionResponse(CamelModel):
    track_id: str
    isrc: str | None = None
    iswc: str | None = None
    producer: str | None = None
    composers: str | None = None
    language: str | None = None
    featured_artist: str | None = None
    explicit_lyrics: bool = False
    instrumental: bool = False
    cover_song: bool = False


class AudioVersionCreate(CamelModel):
    file_url: str = Field(..., min_length=1)
    label: str | None = Field(None, max_length=255)


class AudioVersionResponse(CamelModel):
    version_id: str
    track_id: str
    version_number: int
    label: str | None = None
    file_url: str


class ReferenceCreate(CamelModel):
    """Body for POST /releases/{release_id}/references (track_id null = release-level)."""

    song_title: str = Field(..., min_length=1, max_length=255)
    artist: str | None = None
    note: str | None = None
    url: str | None = None
    track_id: str | None = None


class ReferenceResponse(CamelModel):
    reference_id: str
    release_id: str
    track_id: str | None = None
    song_title: str
    artist: str | None = None
    note: str | None = None
    url: str | None = None
    sort_order: int


class NoteCreate(CamelModel):
    content: str = Field(..., min_length=1)
    audio_version_id: str | None = None
    timecode_seconds: float | None = Field(None, ge=0)
    author_name: str | None = Field(None, max_length=255)


class NoteResponse(CamelModel):
    note_id: str
    track_id: str
    audio_version_id: str | None = None
    author: str
    author_user_id: str | None = None
    source: str
    content: str
    timecode_seconds: float | None = None
    created_at: datetime | None = None
