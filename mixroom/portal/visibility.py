"""Portal visibility filter — a pure projection of release data for one share.

``build_portal_view`` applies, in order:

1. No share, or a revoked share, yields ``None`` (the HTTP layer answers 404).
2. Release-level facets (direction, specs, references, payment status,
   distribution) appear only when their toggle on the share is on. The
   distribution toggle also gates per-track distribution metadata.
3. A track appears only if its ``TrackSetting.visible`` is true. No setting
   row means hidden.
4. A version appears only if its ``VersionSetting.visible`` is true. No
   setting row means hidden.
5. ``download_enabled`` is ``setting.download_enabled and (not
   share.require_payment_for_download or payment_status == "paid")``,
   computed on every call.
6. ``portal_status`` is derived from the visible tracks' approval states.

Nothing in this module performs I/O or holds state between calls.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mixroom.models.portal import (
    PortalComment,
    PortalDistribution,
    PortalPayment,
    PortalReference,
    PortalRelease,
    PortalTrack,
    PortalTrackDistribution,
    PortalVersion,
    PortalView,
)
from mixroom.portal.approval import (
    ApprovalActor,
    ApprovalStatus,
    PortalStatus,
    allowed_actions,
    is_terminal,
)

PAID = "paid"


@dataclass(frozen=True)
class ShareConfig:
    id: str
    release_id: str
    share_token: str
    active: bool = True
    show_direction: bool = False
    show_specs: bool = False
    show_references: bool = False
    show_payment_status: bool = False
    show_distribution: bool = False
    require_payment_for_download: bool = False


@dataclass(frozen=True)
class TrackSetting:
    track_id: str
    visible: bool = False
    download_enabled: bool = False
    approval_status: ApprovalStatus = ApprovalStatus.AWAITING_REVIEW


@dataclass(frozen=True)
class VersionSetting:
    audio_version_id: str
    visible: bool = False


@dataclass(frozen=True)
class TrackData:
    id: str
    track_number: int
    title: str
    intent: str | None = None
    specs: dict[str, Any] | None = None
    # Column values of the track_distribution row, if one exists
    distribution: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class VersionData:
    id: str
    track_id: str
    version_number: int
    file_url: str
    label: str | None = None


@dataclass(frozen=True)
class ReferenceData:
    id: str
    song_title: str
    track_id: str | None = None
    artist: str | None = None
    note: str | None = None
    url: str | None = None
    sort_order: int = 0


@dataclass(frozen=True)
class CommentData:
    id: str
    track_id: str
    author: str
    content: str
    source: str = "portal"
    audio_version_id: str | None = None
    timecode_seconds: float | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ReleaseData:
    """Everything the filter may draw from, already loaded by the caller."""

    id: str
    title: str
    payment_status: str
    artist: str | None = None
    release_type: str = "single"
    format: str = "stereo"
    cover_art_url: str | None = None
    global_direction: str | None = None
    fee_total: float | None = None
    fee_currency: str = "USD"
    paid_amount: float | None = None
    distribution: Mapping[str, str | None] = field(default_factory=dict)
    tracks: Sequence[TrackData] = ()
    versions: Sequence[VersionData] = ()
    references: Sequence[ReferenceData] = ()
    comments: Sequence[CommentData] = ()
    # track_id -> latest "approve" event time
    approval_dates: Mapping[str, datetime] = field(default_factory=dict)


def can_download(
    setting: TrackSetting | None,
    share: ShareConfig,
    payment_status: str,
) -> bool:
    """Download gate for one track. Reads payment status as given; never cached."""
    if setting is None or not setting.download_enabled:
        return False
    return not share.require_payment_for_download or payment_status == PAID


def derive_portal_status(statuses: Iterable[ApprovalStatus]) -> PortalStatus:
    """Roll visible tracks' statuses up to the release-level portal status.

    No visible tracks means nothing has been reviewed yet: ``in_review``.
    """
    statuses = list(statuses)
    if not statuses:
        return PortalStatus.IN_REVIEW
    if all(is_terminal(s) for s in statuses):
        return PortalStatus.DELIVERED
    if all(s in (ApprovalStatus.APPROVED, ApprovalStatus.DELIVERED) for s in statuses):
        return PortalStatus.APPROVED
    return PortalStatus.IN_REVIEW


def _reference(ref: ReferenceData) -> PortalReference:
    return PortalReference(
        id=ref.id,
        song_title=ref.song_title,
        artist=ref.artist,
        note=ref.note,
        url=ref.url,
    )


def build_portal_view(
    share: ShareConfig | None,
    track_settings: Sequence[TrackSetting],
    version_settings: Sequence[VersionSetting],
    release: ReleaseData,
) -> PortalView | None:
    """Project *release* through *share* and its per-track/per-version settings.

    Returns None when the share is missing or revoked.
    """
    if share is None or not share.active:
        return None

    track_settings_by_id = {s.track_id: s for s in track_settings}
    visible_versions = {s.audio_version_id for s in version_settings if s.visible}

    references = sorted(release.references, key=lambda r: r.sort_order)
    comments = sorted(
        release.comments,
        key=lambda c: c.created_at.timestamp() if c.created_at else 0.0,
        reverse=True,
    )

    tracks: list[PortalTrack] = []
    for track in sorted(release.tracks, key=lambda t: t.track_number):
        setting = track_settings_by_id.get(track.id)
        if setting is None or not setting.visible:
            continue

        versions = [
            v for v in sorted(release.versions, key=lambda v: v.version_number)
            if v.track_id == track.id and v.id in visible_versions
        ]
        version_ids = {v.id for v in versions}
        track_comments = [
            c for c in comments
            if c.track_id == track.id
            and (c.audio_version_id is None or c.audio_version_id in version_ids)
        ]
        approval_date = None
        if setting.approval_status in (ApprovalStatus.APPROVED, ApprovalStatus.DELIVERED):
            approval_date = release.approval_dates.get(track.id)

        tracks.append(PortalTrack(
            id=track.id,
            track_number=track.track_number,
            title=track.title,
            intent=track.intent,
            specs=track.specs if share.show_specs else None,
            references=(
                [_reference(r) for r in references if r.track_id == track.id]
                if share.show_references else []
            ),
            versions=[
                PortalVersion(
                    id=v.id,
                    version_number=v.version_number,
                    label=v.label,
                    file_url=v.file_url,
                )
                for v in versions
            ],
            comments=[
                PortalComment(
                    id=c.id,
                    audio_version_id=c.audio_version_id,
                    author=c.author,
                    source=c.source,
                    content=c.content,
                    timecode_seconds=c.timecode_seconds,
                    created_at=c.created_at,
                )
                for c in track_comments
            ],
            download_enabled=can_download(setting, share, release.payment_status),
            approval_status=setting.approval_status,
            allowed_actions=allowed_actions(setting.approval_status, ApprovalActor.PORTAL_VISITOR),
            distribution=(
                PortalTrackDistribution(**dict(track.distribution))
                if share.show_distribution and track.distribution is not None else None
            ),
            approval_date=approval_date,
        ))

    return PortalView(
        share_token=share.share_token,
        release=PortalRelease(
            id=release.id,
            title=release.title,
            artist=release.artist,
            release_type=release.release_type,
            format=release.format,
            cover_art_url=release.cover_art_url,
        ),
        portal_status=derive_portal_status(t.approval_status for t in tracks),
        global_direction=release.global_direction if share.show_direction else None,
        references=(
            [_reference(r) for r in references if r.track_id is None]
            if share.show_references else []
        ),
        payment=(
            PortalPayment(
                payment_status=release.payment_status,
                fee_total=release.fee_total,
                fee_currency=release.fee_currency,
                paid_amount=release.paid_amount,
            )
            if share.show_payment_status else None
        ),
        distribution=(
            PortalDistribution(**dict(release.distribution))
            if share.show_distribution else None
        ),
        tracks=tracks,
    )
