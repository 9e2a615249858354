"""Release, team and track operations for authenticated users.

Every mutating function resolves the caller's role and checks the policy
before touching the store. Route handlers delegate here; no business logic
lives in routes.

Boundary rules:
- Reads and writes go through ``DataStore`` only.
- Roles are resolved per call; nothing is cached between calls.
- ``releases.payment_status`` is never written here (billing owns it).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from mixroom.access.policy import Capability, require
from mixroom.access.roles import MEMBER_ROLES, Role, resolve_role
from mixroom.db.models import (
    NOTE_SOURCE_EDITOR,
    AudioVersion,
    MixReference,
    PortalApprovalEvent,
    PortalShare,
    PortalTrackSetting,
    PortalVersionSetting,
    Release,
    ReleaseMember,
    RevisionNote,
    Track,
    TrackDistribution,
    utc_now,
)
from mixroom.db.store import DataStore
from mixroom.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


# Capability required to write each release field.
RELEASE_FIELD_CAPABILITIES: dict[str, Capability] = {
    "fee_total": Capability.EDIT_PAYMENT,
    "fee_currency": Capability.EDIT_PAYMENT,
    "paid_amount": Capability.EDIT_PAYMENT,
    "title": Capability.EDIT_RELEASE,
    "artist": Capability.EDIT_RELEASE,
    "release_type": Capability.EDIT_RELEASE,
    "format": Capability.EDIT_RELEASE,
    "cover_art_url": Capability.EDIT_RELEASE,
    "global_direction": Capability.EDIT_RELEASE,
    "status": Capability.EDIT_RELEASE,
    "distributor": Capability.EDIT_RELEASE,
    "record_label": Capability.EDIT_RELEASE,
    "upc": Capability.EDIT_RELEASE,
    "copyright_holder": Capability.EDIT_RELEASE,
    "copyright_year": Capability.EDIT_RELEASE,
    "catalog_number": Capability.EDIT_RELEASE,
}

TRACK_FIELD_CAPABILITIES: dict[str, Capability] = {
    "title": Capability.EDIT_RELEASE,
    "track_number": Capability.EDIT_RELEASE,
    "specs": Capability.EDIT_RELEASE,
    "intent": Capability.EDIT_CREATIVE,
}

# NOT NULL columns: an explicit null in a patch is ignored rather than written.
_NON_NULLABLE_FIELDS = frozenset({
    "title", "release_type", "format", "status", "fee_currency", "track_number",
})


async def authorize(
    store: DataStore,
    release_id: str,
    user_id: str | None,
    *capabilities: Capability,
) -> Role:
    """Resolve the caller's role and require every capability in *capabilities*.

    Raises:
        NotFoundError: The release does not exist.
        UnauthorizedError: The role lacks one of the capabilities.
    """
    role = await resolve_role(store, release_id, user_id)
    for capability in capabilities:
        require(role, capability)
    return role


def _capabilities_for_patch(
    patch: Mapping[str, Any],
    field_capabilities: Mapping[str, Capability],
) -> list[Capability]:
    unknown = set(patch) - set(field_capabilities)
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
    return sorted({field_capabilities[name] for name in patch}, key=lambda c: c.value)


def _clean_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    return {
        name: value for name, value in patch.items()
        if not (value is None and name in _NON_NULLABLE_FIELDS)
    }


async def load_track(store: DataStore, track_id: str) -> Track:
    track = await store.get(Track, id=track_id)
    if track is None:
        raise NotFoundError(f"Track {track_id} not found")
    return track


# ── Releases ──────────────────────────────────────────────────────────────────


async def create_release(
    store: DataStore,
    *,
    owner_id: str,
    title: str,
    artist: str | None = None,
    release_type: str = "single",
    format: str = "stereo",
) -> Release:
    """Create a release owned by *owner_id*."""
    release = await store.insert(Release(
        owner_id=owner_id,
        title=title,
        artist=artist,
        release_type=release_type,
        format=format,
    ))
    logger.info("Release %s created by %s", release.id, owner_id)
    return release


async def get_release(store: DataStore, release_id: str, user_id: str) -> tuple[Release, Role]:
    """Return the release and the caller's role; any member role may view."""
    role = await authorize(store, release_id, user_id, Capability.VIEW_RELEASE)
    release = await store.get(Release, id=release_id)
    if release is None:
        raise NotFoundError(f"Release {release_id} not found")
    return release, role


async def update_release(
    store: DataStore,
    release_id: str,
    user_id: str,
    patch: Mapping[str, Any],
) -> tuple[Release, Role]:
    """Apply *patch* after checking the capability of every field it touches.

    A patch mixing payment and metadata fields needs both capabilities; it
    is rejected as a whole if either is missing.
    """
    patch = _clean_patch(patch)
    needed = _capabilities_for_patch(patch, RELEASE_FIELD_CAPABILITIES)
    role = await authorize(store, release_id, user_id, *needed)
    if not patch:
        release, _ = await get_release(store, release_id, user_id)
        return release, role
    release = await store.update(Release, {"id": release_id}, patch)
    logger.info("Release %s updated by %s (%s): %s", release_id, user_id, role.value, sorted(patch))
    return release, role


async def delete_release(store: DataStore, release_id: str, user_id: str) -> None:
    """Delete a release and everything hanging off it (owner only)."""
    await authorize(store, release_id, user_id, Capability.DELETE_RELEASE)

    track_ids = [t.id for t in await store.list(Track, release_id=release_id)]
    share = await store.get(PortalShare, release_id=release_id)
    if share is not None:
        await store.delete(PortalApprovalEvent, share_id=share.id)
        await store.delete(PortalTrackSetting, share_id=share.id)
        await store.delete(PortalVersionSetting, share_id=share.id)
        await store.delete(PortalShare, id=share.id)
    if track_ids:
        await store.delete(RevisionNote, track_id=track_ids)
        await store.delete(TrackDistribution, track_id=track_ids)
        await store.delete(AudioVersion, track_id=track_ids)
    await store.delete(MixReference, release_id=release_id)
    await store.delete(Track, release_id=release_id)
    await store.delete(ReleaseMember, release_id=release_id)
    await store.delete(Release, id=release_id)
    logger.info("Release %s deleted by %s", release_id, user_id)


# ── Team ──────────────────────────────────────────────────────────────────────


async def invite_member(
    store: DataStore,
    release_id: str,
    actor_id: str,
    *,
    user_id: str,
    role: Role,
) -> ReleaseMember:
    """Create a pending membership for *user_id* (owner only).

    Raises:
        ValueError: *role* is not a member role.
        ConflictError: *user_id* is the owner or already has a membership row.
    """
    if role not in MEMBER_ROLES:
        raise ValueError(f"Role '{role.value}' cannot be granted by invitation")
    await authorize(store, release_id, actor_id, Capability.MANAGE_TEAM)

    release = await store.get(Release, id=release_id)
    if release is not None and release.owner_id == user_id:
        raise ConflictError("The owner cannot be invited as a member")
    if await store.get(ReleaseMember, release_id=release_id, user_id=user_id) is not None:
        raise ConflictError(f"User '{user_id}' is already a member or invited")

    member = await store.insert(ReleaseMember(
        release_id=release_id,
        user_id=user_id,
        role=role.value,
        invited_by=actor_id,
    ))
    logger.info("User %s invited to release %s as %s", user_id, release_id, role.value)
    return member


async def accept_invitation(store: DataStore, release_id: str, user_id: str) -> ReleaseMember:
    """Accept *user_id*'s pending invitation. Accepting twice is a no-op."""
    if await store.get(Release, id=release_id) is None:
        raise NotFoundError(f"Release {release_id} not found")
    member = await store.get(ReleaseMember, release_id=release_id, user_id=user_id)
    if member is None:
        raise NotFoundError("No invitation for this user")
    if member.accepted_at is not None:
        return member
    member = await store.update(ReleaseMember, {"id": member.id}, {"accepted_at": utc_now()})
    logger.info("User %s accepted membership on release %s", user_id, release_id)
    return member


async def list_members(store: DataStore, release_id: str, actor_id: str) -> list[ReleaseMember]:
    await authorize(store, release_id, actor_id, Capability.VIEW_RELEASE)
    return await store.list(ReleaseMember, release_id=release_id, order_by="invited_at")


async def remove_member(store: DataStore, release_id: str, actor_id: str, user_id: str) -> None:
    """Remove a membership (owner only). Takes effect on the member's next request."""
    await authorize(store, release_id, actor_id, Capability.MANAGE_TEAM)
    removed = await store.delete(ReleaseMember, release_id=release_id, user_id=user_id)
    if not removed:
        raise NotFoundError(f"User '{user_id}' is not a member")
    logger.info("User %s removed from release %s by %s", user_id, release_id, actor_id)


# ── Tracks ────────────────────────────────────────────────────────────────────


async def list_tracks(store: DataStore, release_id: str, user_id: str) -> list[Track]:
    await authorize(store, release_id, user_id, Capability.VIEW_RELEASE)
    return await store.list(Track, release_id=release_id, order_by="track_number")


async def create_track(
    store: DataStore,
    release_id: str,
    user_id: str,
    *,
    title: str,
    track_number: int | None = None,
    intent: str | None = None,
    specs: dict[str, Any] | None = None,
) -> Track:
    await authorize(store, release_id, user_id, Capability.EDIT_RELEASE)
    if track_number is None:
        existing = await store.list(Track, release_id=release_id)
        track_number = max((t.track_number for t in existing), default=0) + 1
    return await store.insert(Track(
        release_id=release_id,
        title=title,
        track_number=track_number,
        intent=intent,
        specs=specs,
    ))


async def update_track(
    store: DataStore,
    track_id: str,
    user_id: str,
    patch: Mapping[str, Any],
) -> Track:
    """Apply *patch* to a track; ``intent`` alone only needs creative access."""
    patch = _clean_patch(patch)
    track = await load_track(store, track_id)
    needed = _capabilities_for_patch(patch, TRACK_FIELD_CAPABILITIES)
    await authorize(store, track.release_id, user_id, Capability.VIEW_RELEASE, *needed)
    if not patch:
        return track
    return await store.update(Track, {"id": track_id}, patch)


async def add_audio_version(
    store: DataStore,
    track_id: str,
    user_id: str,
    *,
    file_url: str,
    label: str | None = None,
) -> AudioVersion:
    """Append a new mix version; numbering continues from the latest."""
    track = await load_track(store, track_id)
    await authorize(store, track.release_id, user_id, Capability.EDIT_RELEASE)
    existing = await store.list(AudioVersion, track_id=track_id)
    version_number = max((v.version_number for v in existing), default=0) + 1
    version = await store.insert(AudioVersion(
        track_id=track_id,
        version_number=version_number,
        label=label,
        file_url=file_url,
    ))
    logger.info("Track %s version %d uploaded", track_id, version_number)
    return version


async def add_reference(
    store: DataStore,
    release_id: str,
    user_id: str,
    *,
    song_title: str,
    artist: str | None = None,
    note: str | None = None,
    url: str | None = None,
    track_id: str | None = None,
) -> MixReference:
    await authorize(store, release_id, user_id, Capability.EDIT_CREATIVE)
    if track_id is not None:
        track = await load_track(store, track_id)
        if track.release_id != release_id:
            raise NotFoundError(f"Track {track_id} not found")
    siblings = await store.list(MixReference, release_id=release_id, track_id=track_id)
    return await store.insert(MixReference(
        release_id=release_id,
        track_id=track_id,
        song_title=song_title,
        artist=artist,
        note=note,
        url=url,
        sort_order=len(siblings),
    ))


async def add_revision_note(
    store: DataStore,
    track_id: str,
    user_id: str,
    *,
    content: str,
    audio_version_id: str | None = None,
    timecode_seconds: float | None = None,
    author_name: str | None = None,
) -> RevisionNote:
    """File a note as a release member.

    The note shows the member's display name (their role when none is
    given); the account id is kept in ``author_user_id`` only.
    """
    track = await load_track(store, track_id)
    role = await authorize(store, track.release_id, user_id, Capability.EDIT_CREATIVE)
    if audio_version_id is not None:
        if await store.get(AudioVersion, id=audio_version_id, track_id=track_id) is None:
            raise NotFoundError(f"Audio version {audio_version_id} not found")
    return await store.insert(RevisionNote(
        track_id=track_id,
        audio_version_id=audio_version_id,
        source=NOTE_SOURCE_EDITOR,
        author_user_id=user_id,
        author=(author_name or "").strip() or role.value.capitalize(),
        content=content.strip(),
        timecode_seconds=(
            round(timecode_seconds, 2) if timecode_seconds is not None else None
        ),
    ))


# ── Track distribution ────────────────────────────────────────────────────────


TRACK_DISTRIBUTION_FIELDS = frozenset({
    "isrc",
    "iswc",
    "producer",
    "composers",
    "language",
    "featured_artist",
    "explicit_lyrics",
    "instrumental",
    "cover_song",
})

_DISTRIBUTION_FLAGS = frozenset({"explicit_lyrics", "instrumental", "cover_song"})


async def get_track_distribution(
    store: DataStore,
    track_id: str,
    user_id: str,
) -> TrackDistribution | None:
    track = await load_track(store, track_id)
    await authorize(store, track.release_id, user_id, Capability.VIEW_RELEASE)
    return await store.get(TrackDistribution, track_id=track_id)


async def update_track_distribution(
    store: DataStore,
    track_id: str,
    user_id: str,
    patch: Mapping[str, Any],
) -> TrackDistribution:
    """Upsert a track's distribution metadata; only the given fields change."""
    unknown = set(patch) - TRACK_DISTRIBUTION_FIELDS
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
    patch = {
        name: value for name, value in patch.items()
        if not (value is None and name in _DISTRIBUTION_FLAGS)
    }
    track = await load_track(store, track_id)
    await authorize(store, track.release_id, user_id, Capability.EDIT_RELEASE)
    row = await store.upsert(TrackDistribution, {"track_id": track_id}, patch)
    logger.info("Track %s distribution updated by %s: %s", track_id, user_id, sorted(patch))
    return row
