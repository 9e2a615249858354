"""Portal share and approval service.

Two audiences meet here:

- Editors (authenticated, role-checked) enable/revoke a release's portal,
  flip its facet toggles, surface tracks and versions, and deliver approved
  tracks.
- Portal visitors (unauthenticated, addressed only by share token) read the
  filtered view, approve tracks, request changes and comment.

Approval transitions are compare-and-set updates of exactly one
``portal_track_settings.approval_status``: the current value is validated
against the state machine, then written only if it is still the value that
was validated. A lost race re-reads and re-validates.
"""
from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from mixroom.access.policy import Capability
from mixroom.config import settings
from mixroom.db.models import (
    NOTE_SOURCE_PORTAL,
    AudioVersion,
    MixReference,
    PortalApprovalEvent,
    PortalShare,
    PortalTrackSetting,
    PortalVersionSetting,
    Release,
    RevisionNote,
    Track,
    TrackDistribution,
)
from mixroom.db.store import DataStore
from mixroom.errors import NotFoundError, TransientError, UnauthorizedError
from mixroom.models.portal import (
    ApprovalResponse,
    PortalComment,
    PortalView,
    ShareResponse,
    TrackSettingResponse,
    VersionSettingResponse,
)
from mixroom.portal.approval import (
    ACTION_TARGETS,
    ApprovalAction,
    ApprovalActor,
    ApprovalStatus,
    PortalStatus,
    assert_transition,
    parse_status,
)
from mixroom.portal.visibility import (
    CommentData,
    ReferenceData,
    ReleaseData,
    ShareConfig,
    TrackData,
    TrackSetting,
    VersionData,
    VersionSetting,
    build_portal_view,
    derive_portal_status,
)
from mixroom.services.releases import TRACK_DISTRIBUTION_FIELDS, authorize, load_track

logger = logging.getLogger(__name__)

DEFAULT_ACTOR_NAME = "Client"

_TRANSITION_ATTEMPTS = 3

_SHARE_TOGGLES = frozenset({
    "show_direction",
    "show_specs",
    "show_references",
    "show_payment_status",
    "show_distribution",
    "require_payment_for_download",
})

_DISTRIBUTION_FIELDS = (
    "distributor",
    "record_label",
    "upc",
    "copyright_holder",
    "copyright_year",
    "catalog_number",
)


def new_share_token() -> str:
    return secrets.token_urlsafe(settings.share_token_bytes)


def _actor_name(name: str | None) -> str:
    name = (name or "").strip()
    return name or DEFAULT_ACTOR_NAME


# ── Row → value conversions ───────────────────────────────────────────────────


def _share_config(share: PortalShare) -> ShareConfig:
    return ShareConfig(
        id=share.id,
        release_id=share.release_id,
        share_token=share.share_token,
        active=share.active,
        show_direction=share.show_direction,
        show_specs=share.show_specs,
        show_references=share.show_references,
        show_payment_status=share.show_payment_status,
        show_distribution=share.show_distribution,
        require_payment_for_download=share.require_payment_for_download,
    )


def _track_setting(row: PortalTrackSetting) -> TrackSetting:
    return TrackSetting(
        track_id=row.track_id,
        visible=row.visible,
        download_enabled=row.download_enabled,
        approval_status=parse_status(row.approval_status),
    )


def _version_setting(row: PortalVersionSetting) -> VersionSetting:
    return VersionSetting(audio_version_id=row.audio_version_id, visible=row.visible)


def _share_response(
    share: PortalShare,
    track_rows: list[PortalTrackSetting],
    version_rows: list[PortalVersionSetting],
) -> ShareResponse:
    track_settings = [_track_setting(r) for r in track_rows]
    return ShareResponse(
        share_id=share.id,
        release_id=share.release_id,
        share_token=share.share_token,
        active=share.active,
        show_direction=share.show_direction,
        show_specs=share.show_specs,
        show_references=share.show_references,
        show_payment_status=share.show_payment_status,
        show_distribution=share.show_distribution,
        require_payment_for_download=share.require_payment_for_download,
        portal_status=derive_portal_status(
            s.approval_status for s in track_settings if s.visible
        ),
        track_settings=[
            TrackSettingResponse(
                track_id=s.track_id,
                visible=s.visible,
                download_enabled=s.download_enabled,
                approval_status=s.approval_status,
            )
            for s in track_settings
        ],
        version_settings=[
            VersionSettingResponse(audio_version_id=r.audio_version_id, visible=r.visible)
            for r in version_rows
        ],
    )


async def _portal_status(store: DataStore, share_id: str) -> PortalStatus:
    rows = await store.list(PortalTrackSetting, share_id=share_id, visible=True)
    return derive_portal_status(parse_status(r.approval_status) for r in rows)


# ── Lookups ───────────────────────────────────────────────────────────────────


async def _share_for_release(store: DataStore, release_id: str) -> PortalShare:
    share = await store.get(PortalShare, release_id=release_id)
    if share is None:
        raise NotFoundError(f"Release {release_id} has no portal share")
    return share


async def _active_share(store: DataStore, share_token: str) -> PortalShare:
    """Share for a portal token; unknown and revoked tokens are both not-found."""
    share = await store.get(PortalShare, share_token=share_token)
    if share is None or not share.active:
        logger.warning("Portal request with unknown or revoked share token")
        raise NotFoundError("Portal not found")
    return share


async def _visible_track_setting(
    store: DataStore,
    share: PortalShare,
    track_id: str,
) -> PortalTrackSetting:
    setting = await store.get(PortalTrackSetting, share_id=share.id, track_id=track_id)
    if setting is None or not setting.visible:
        raise NotFoundError(f"Track {track_id} not found")
    return setting


async def _track_in_release(store: DataStore, release_id: str, track_id: str) -> Track:
    track = await load_track(store, track_id)
    if track.release_id != release_id:
        raise NotFoundError(f"Track {track_id} not found")
    return track


# ── Approval transitions ──────────────────────────────────────────────────────


async def _transition(
    store: DataStore,
    setting: PortalTrackSetting,
    action: ApprovalAction,
    actor: ApprovalActor,
) -> ApprovalStatus:
    """Move one track setting to the target of *action*.

    Raises:
        InvalidTransitionError: The current state does not allow the move.
        UnauthorizedError: *actor* may not trigger the move.
        TransientError: Concurrent writers kept changing the row.
    """
    target = ACTION_TARGETS[action]
    for _ in range(_TRANSITION_ATTEMPTS):
        current = parse_status(setting.approval_status)
        assert_transition(current, target, actor)
        updated = await store.compare_and_set(
            PortalTrackSetting,
            {"id": setting.id},
            {"approval_status": setting.approval_status},
            {"approval_status": target.value},
        )
        if updated is not None:
            logger.info(
                "Track %s approval %s → %s (%s)",
                setting.track_id, current.value, target.value, actor.value,
            )
            return target
        logger.debug("Approval status of track %s changed concurrently; re-reading", setting.track_id)
        await store.refresh(setting)
    raise TransientError(f"Track {setting.track_id} approval is being changed concurrently")


async def _record_event(
    store: DataStore,
    share: PortalShare,
    track_id: str,
    action: ApprovalAction,
    actor_name: str,
    note: str | None,
) -> PortalApprovalEvent:
    return await store.insert(PortalApprovalEvent(
        share_id=share.id,
        track_id=track_id,
        event_type=action.value,
        actor_name=actor_name,
        note=note,
    ))


async def _ensure_track_setting(
    store: DataStore,
    share: PortalShare,
    track_id: str,
) -> PortalTrackSetting:
    setting = await store.get(PortalTrackSetting, share_id=share.id, track_id=track_id)
    if setting is None:
        setting = await store.upsert(
            PortalTrackSetting,
            {"share_id": share.id, "track_id": track_id},
            {},
        )
    return setting


# ── Editor side ───────────────────────────────────────────────────────────────


async def enable_share(store: DataStore, release_id: str, user_id: str) -> ShareResponse:
    """Create the release's portal share, or reactivate a revoked one.

    Reactivation issues a fresh token so a revoked link stays dead.
    """
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await store.get(PortalShare, release_id=release_id)
    if share is None:
        share = await store.insert(PortalShare(
            release_id=release_id,
            share_token=new_share_token(),
        ))
        logger.info("Portal share enabled for release %s", release_id)
    elif not share.active:
        share = await store.update(
            PortalShare,
            {"id": share.id},
            {"active": True, "share_token": new_share_token()},
        )
        logger.info("Portal share reactivated for release %s", release_id)
    return await _load_share_response(store, share)


async def revoke_share(store: DataStore, release_id: str, user_id: str) -> ShareResponse:
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    share = await store.update(PortalShare, {"id": share.id}, {"active": False})
    logger.info("Portal share revoked for release %s", release_id)
    return await _load_share_response(store, share)


async def get_share(store: DataStore, release_id: str, user_id: str) -> ShareResponse:
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    return await _load_share_response(store, share)


async def _load_share_response(store: DataStore, share: PortalShare) -> ShareResponse:
    track_rows = await store.list(PortalTrackSetting, share_id=share.id)
    version_rows = await store.list(PortalVersionSetting, share_id=share.id)
    return _share_response(share, track_rows, version_rows)


async def update_share_settings(
    store: DataStore,
    release_id: str,
    user_id: str,
    patch: Mapping[str, Any],
) -> ShareResponse:
    """Flip facet toggles and the payment gate; None values are ignored."""
    patch = {k: v for k, v in patch.items() if v is not None}
    unknown = set(patch) - _SHARE_TOGGLES
    if unknown:
        raise ValueError(f"Unknown share settings: {', '.join(sorted(unknown))}")
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    if patch:
        share = await store.update(PortalShare, {"id": share.id}, patch)
    return await _load_share_response(store, share)


async def set_track_setting(
    store: DataStore,
    release_id: str,
    user_id: str,
    track_id: str,
    *,
    visible: bool | None = None,
    download_enabled: bool | None = None,
) -> TrackSettingResponse:
    """Upsert a track's portal visibility/download flags.

    Only the given flags are written; ``approval_status`` is never touched.
    """
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    await _track_in_release(store, release_id, track_id)

    values: dict[str, Any] = {}
    if visible is not None:
        values["visible"] = visible
    if download_enabled is not None:
        values["download_enabled"] = download_enabled
    row = await store.upsert(
        PortalTrackSetting,
        {"share_id": share.id, "track_id": track_id},
        values,
    )
    setting = _track_setting(row)
    return TrackSettingResponse(
        track_id=setting.track_id,
        visible=setting.visible,
        download_enabled=setting.download_enabled,
        approval_status=setting.approval_status,
    )


async def set_version_setting(
    store: DataStore,
    release_id: str,
    user_id: str,
    audio_version_id: str,
    *,
    visible: bool,
) -> VersionSettingResponse:
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    version = await store.get(AudioVersion, id=audio_version_id)
    if version is None:
        raise NotFoundError(f"Audio version {audio_version_id} not found")
    await _track_in_release(store, release_id, version.track_id)

    row = await store.upsert(
        PortalVersionSetting,
        {"share_id": share.id, "audio_version_id": audio_version_id},
        {"visible": visible},
    )
    return VersionSettingResponse(audio_version_id=row.audio_version_id, visible=row.visible)


async def deliver_track(
    store: DataStore,
    release_id: str,
    user_id: str,
    track_id: str,
    *,
    note: str | None = None,
) -> ApprovalResponse:
    """Editor-only ``approved → delivered`` for one track."""
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    share = await _share_for_release(store, release_id)
    await _track_in_release(store, release_id, track_id)
    setting = await _ensure_track_setting(store, share, track_id)

    status = await _transition(store, setting, ApprovalAction.DELIVER, ApprovalActor.EDITOR)
    await _record_event(store, share, track_id, ApprovalAction.DELIVER, user_id, note)
    return ApprovalResponse(
        track_id=track_id,
        approval_status=status,
        portal_status=await _portal_status(store, share.id),
    )


# ── Portal visitor side ───────────────────────────────────────────────────────


async def load_portal_view(store: DataStore, share_token: str) -> PortalView:
    """Load everything the filter needs for *share_token* and project it.

    Payment status is read from the release row on every call.
    """
    share = await _active_share(store, share_token)
    release = await store.get(Release, id=share.release_id)
    if release is None:
        raise NotFoundError("Portal not found")

    tracks = await store.list(Track, release_id=release.id)
    track_ids = [t.id for t in tracks]
    versions = await store.list(AudioVersion, track_id=track_ids) if track_ids else []
    notes = await store.list(RevisionNote, track_id=track_ids) if track_ids else []
    distribution_rows = (
        await store.list(TrackDistribution, track_id=track_ids) if track_ids else []
    )
    references = await store.list(MixReference, release_id=release.id)
    track_rows = await store.list(PortalTrackSetting, share_id=share.id)
    version_rows = await store.list(PortalVersionSetting, share_id=share.id)
    approvals = await store.list(
        PortalApprovalEvent,
        share_id=share.id,
        event_type=ApprovalAction.APPROVE.value,
        order_by="created_at",
    )

    approval_dates: dict[str, datetime] = {}
    for event in approvals:
        approval_dates[event.track_id] = event.created_at
    track_distribution = {
        row.track_id: {name: getattr(row, name) for name in TRACK_DISTRIBUTION_FIELDS}
        for row in distribution_rows
    }

    data = ReleaseData(
        id=release.id,
        title=release.title,
        payment_status=release.payment_status,
        artist=release.artist,
        release_type=release.release_type,
        format=release.format,
        cover_art_url=release.cover_art_url,
        global_direction=release.global_direction,
        fee_total=release.fee_total,
        fee_currency=release.fee_currency,
        paid_amount=release.paid_amount,
        distribution={name: getattr(release, name) for name in _DISTRIBUTION_FIELDS},
        tracks=[
            TrackData(
                id=t.id,
                track_number=t.track_number,
                title=t.title,
                intent=t.intent,
                specs=t.specs,
                distribution=track_distribution.get(t.id),
            )
            for t in tracks
        ],
        versions=[
            VersionData(
                id=v.id,
                track_id=v.track_id,
                version_number=v.version_number,
                file_url=v.file_url,
                label=v.label,
            )
            for v in versions
        ],
        references=[
            ReferenceData(
                id=r.id,
                song_title=r.song_title,
                track_id=r.track_id,
                artist=r.artist,
                note=r.note,
                url=r.url,
                sort_order=r.sort_order,
            )
            for r in references
        ],
        comments=[
            CommentData(
                id=n.id,
                track_id=n.track_id,
                author=n.author,
                content=n.content,
                source=n.source,
                audio_version_id=n.audio_version_id,
                timecode_seconds=n.timecode_seconds,
                created_at=n.created_at,
            )
            for n in notes
        ],
        approval_dates=approval_dates,
    )

    view = build_portal_view(
        _share_config(share),
        [_track_setting(r) for r in track_rows],
        [_version_setting(r) for r in version_rows],
        data,
    )
    if view is None:
        raise NotFoundError("Portal not found")
    return view


async def approve_track(
    store: DataStore,
    share_token: str,
    track_id: str,
    *,
    actor_name: str | None = None,
    note: str | None = None,
) -> ApprovalResponse:
    share = await _active_share(store, share_token)
    setting = await _visible_track_setting(store, share, track_id)

    status = await _transition(store, setting, ApprovalAction.APPROVE, ApprovalActor.PORTAL_VISITOR)
    await _record_event(store, share, track_id, ApprovalAction.APPROVE, _actor_name(actor_name), note)
    return ApprovalResponse(
        track_id=track_id,
        approval_status=status,
        portal_status=await _portal_status(store, share.id),
    )


async def request_changes(
    store: DataStore,
    share_token: str,
    track_id: str,
    *,
    note: str,
    actor_name: str | None = None,
) -> ApprovalResponse:
    """Move a visible track to ``changes_requested`` and file the note as feedback."""
    if not note or not note.strip():
        raise ValueError("Note is required when requesting changes")
    share = await _active_share(store, share_token)
    setting = await _visible_track_setting(store, share, track_id)
    actor = _actor_name(actor_name)

    status = await _transition(
        store, setting, ApprovalAction.REQUEST_CHANGES, ApprovalActor.PORTAL_VISITOR,
    )
    await _record_event(store, share, track_id, ApprovalAction.REQUEST_CHANGES, actor, note.strip())
    await store.insert(RevisionNote(
        track_id=track_id,
        source=NOTE_SOURCE_PORTAL,
        author=actor,
        content=note.strip(),
    ))
    return ApprovalResponse(
        track_id=track_id,
        approval_status=status,
        portal_status=await _portal_status(store, share.id),
    )


async def add_comment(
    store: DataStore,
    share_token: str,
    track_id: str,
    *,
    audio_version_id: str,
    content: str,
    timecode_seconds: float = 0.0,
    author_name: str | None = None,
) -> PortalComment:
    """Leave a timestamped comment on a visible version of a visible track."""
    share = await _active_share(store, share_token)
    await _visible_track_setting(store, share, track_id)
    version_setting = await store.get(
        PortalVersionSetting, share_id=share.id, audio_version_id=audio_version_id,
    )
    version = await store.get(AudioVersion, id=audio_version_id, track_id=track_id)
    if version is None or version_setting is None or not version_setting.visible:
        raise NotFoundError(f"Audio version {audio_version_id} not found")

    note = await store.insert(RevisionNote(
        track_id=track_id,
        audio_version_id=audio_version_id,
        source=NOTE_SOURCE_PORTAL,
        author=_actor_name(author_name),
        content=content.strip(),
        timecode_seconds=round(timecode_seconds, 2),
    ))
    return PortalComment(
        id=note.id,
        audio_version_id=note.audio_version_id,
        author=note.author,
        source=note.source,
        content=note.content,
        timecode_seconds=note.timecode_seconds,
        created_at=note.created_at,
    )


async def delete_comment(
    store: DataStore,
    share_token: str,
    comment_id: str,
    *,
    author_name: str | None = None,
) -> None:
    """Delete a visitor comment left under the same author name.

    Editor notes shown in the portal are never deletable from it.
    """
    share = await _active_share(store, share_token)
    note = await store.get(RevisionNote, id=comment_id)
    if note is None:
        raise NotFoundError(f"Comment {comment_id} not found")
    track = await store.get(Track, id=note.track_id, release_id=share.release_id)
    if track is None:
        raise NotFoundError(f"Comment {comment_id} not found")
    await _visible_track_setting(store, share, track.id)

    if note.source != NOTE_SOURCE_PORTAL:
        logger.warning("Portal visitor tried to delete editor note %s", comment_id)
        raise UnauthorizedError("Only portal comments can be deleted from the portal")
    if note.author != _actor_name(author_name):
        logger.warning("Portal visitor tried to delete another author's comment %s", comment_id)
        raise UnauthorizedError("You can only delete your own comments")
    await store.delete(RevisionNote, id=comment_id)
