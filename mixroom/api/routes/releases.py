"""
Release, team and track endpoints (authenticated editors).

Endpoints:
    POST   /releases                              — create (caller becomes owner)
    GET    /releases/{release_id}                 — read with caller's role
    PATCH  /releases/{release_id}                 — per-field capability checks
    DELETE /releases/{release_id}                 — owner only
    GET    /releases/{release_id}/members         — list team
    POST   /releases/{release_id}/members         — invite (owner)
    POST   /releases/{release_id}/members/accept  — accept own invitation
    DELETE /releases/{release_id}/members/{uid}   — remove (owner)
    GET    /releases/{release_id}/tracks          — list tracks
    POST   /releases/{release_id}/tracks          — add track
    PATCH  /tracks/{track_id}                     — edit track
    POST   /tracks/{track_id}/versions            — upload a mix version
    POST   /releases/{release_id}/references      — add reference track
    POST   /tracks/{track_id}/notes               — add revision note
    GET    /tracks/{track_id}/distribution        — per-track distribution metadata
    PUT    /tracks/{track_id}/distribution        — upsert distribution metadata

Domain errors propagate to the ``MixroomError`` handler in ``mixroom.main``.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from mixroom.access.policy import capabilities_for
from mixroom.access.roles import Role
from mixroom.api.dependencies import get_store
from mixroom.auth.dependencies import require_user_id
from mixroom.db import DataStore
from mixroom.db.models import (
    AudioVersion,
    MixReference,
    Release,
    ReleaseMember,
    RevisionNote,
    Track,
    TrackDistribution,
)
from mixroom.models.releases import (
    AudioVersionCreate,
    AudioVersionResponse,
    MemberInviteRequest,
    MemberListResponse,
    MemberResponse,
    NoteCreate,
    NoteResponse,
    ReferenceCreate,
    ReferenceResponse,
    ReleaseCreate,
    ReleaseResponse,
    ReleaseUpdate,
    TrackCreate,
    TrackDistributionResponse,
    TrackDistributionUpdate,
    TrackResponse,
    TrackUpdate,
)
from mixroom.services import releases as release_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _release_response(release: Release, role: Role) -> ReleaseResponse:
    return ReleaseResponse(
        release_id=release.id,
        owner_id=release.owner_id,
        title=release.title,
        artist=release.artist,
        release_type=release.release_type,
        format=release.format,
        cover_art_url=release.cover_art_url,
        global_direction=release.global_direction,
        status=release.status,
        payment_status=release.payment_status,
        fee_total=release.fee_total,
        fee_currency=release.fee_currency,
        paid_amount=release.paid_amount,
        distributor=release.distributor,
        record_label=release.record_label,
        upc=release.upc,
        copyright_holder=release.copyright_holder,
        copyright_year=release.copyright_year,
        catalog_number=release.catalog_number,
        role=role.value,
        capabilities=capabilities_for(role),
    )


def _member_response(member: ReleaseMember) -> MemberResponse:
    return MemberResponse(
        member_id=member.id,
        release_id=member.release_id,
        user_id=member.user_id,
        role=member.role,
        invited_by=member.invited_by,
        invited_at=member.invited_at,
        accepted_at=member.accepted_at,
    )


def _track_response(track: Track) -> TrackResponse:
    return TrackResponse(
        track_id=track.id,
        release_id=track.release_id,
        track_number=track.track_number,
        title=track.title,
        intent=track.intent,
        specs=track.specs,
    )


def _version_response(version: AudioVersion) -> AudioVersionResponse:
    return AudioVersionResponse(
        version_id=version.id,
        track_id=version.track_id,
        version_number=version.version_number,
        label=version.label,
        file_url=version.file_url,
    )


def _reference_response(ref: MixReference) -> ReferenceResponse:
    return ReferenceResponse(
        reference_id=ref.id,
        release_id=ref.release_id,
        track_id=ref.track_id,
        song_title=ref.song_title,
        artist=ref.artist,
        note=ref.note,
        url=ref.url,
        sort_order=ref.sort_order,
    )


def _note_response(note: RevisionNote) -> NoteResponse:
    return NoteResponse(
        note_id=note.id,
        track_id=note.track_id,
        audio_version_id=note.audio_version_id,
        author=note.author,
        author_user_id=note.author_user_id,
        source=note.source,
        content=note.content,
        timecode_seconds=note.timecode_seconds,
        created_at=note.created_at,
    )


# =============================================================================
# Releases
# =============================================================================


@router.post(
    "/releases",
    response_model=ReleaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_release(
    body: ReleaseCreate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ReleaseResponse:
    release = await release_service.create_release(
        store,
        owner_id=user_id,
        title=body.title,
        artist=body.artist,
        release_type=body.release_type,
        format=body.format,
    )
    return _release_response(release, Role.OWNER)


@router.get("/releases/{release_id}", response_model=ReleaseResponse)
async def get_release(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ReleaseResponse:
    release, role = await release_service.get_release(store, release_id, user_id)
    return _release_response(release, role)


@router.patch("/releases/{release_id}", response_model=ReleaseResponse)
async def update_release(
    release_id: str,
    body: ReleaseUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ReleaseResponse:
    """Patch only the provided fields; each needs its own capability."""
    try:
        release, role = await release_service.update_release(
            store, release_id, user_id, body.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _release_response(release, role)


@router.delete("/releases/{release_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_release(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> None:
    await release_service.delete_release(store, release_id, user_id)


# =============================================================================
# Team
# =============================================================================


@router.get("/releases/{release_id}/members", response_model=MemberListResponse)
async def list_members(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> MemberListResponse:
    members = await release_service.list_members(store, release_id, user_id)
    return MemberListResponse(
        members=[_member_response(m) for m in members],
        total=len(members),
    )


@router.post(
    "/releases/{release_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    release_id: str,
    body: MemberInviteRequest,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> MemberResponse:
    """Invite a user; the membership grants nothing until accepted."""
    member = await release_service.invite_member(
        store, release_id, user_id, user_id=body.user_id, role=Role(body.role),
    )
    return _member_response(member)


@router.post("/releases/{release_id}/members/accept", response_model=MemberResponse)
async def accept_invitation(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> MemberResponse:
    member = await release_service.accept_invitation(store, release_id, user_id)
    return _member_response(member)


@router.delete(
    "/releases/{release_id}/members/{member_user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_member(
    release_id: str,
    member_user_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> None:
    await release_service.remove_member(store, release_id, user_id, member_user_id)


# =============================================================================
# Tracks, versions, references, notes
# =============================================================================


@router.get("/releases/{release_id}/tracks", response_model=list[TrackResponse])
async def list_tracks(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> list[TrackResponse]:
    tracks = await release_service.list_tracks(store, release_id, user_id)
    return [_track_response(t) for t in tracks]


@router.post(
    "/releases/{release_id}/tracks",
    response_model=TrackResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_track(
    release_id: str,
    body: TrackCreate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> TrackResponse:
    track = await release_service.create_track(
        store,
        release_id,
        user_id,
        title=body.title,
        track_number=body.track_number,
        intent=body.intent,
        specs=body.specs,
    )
    return _track_response(track)


@router.patch("/tracks/{track_id}", response_model=TrackResponse)
async def update_track(
    track_id: str,
    body: TrackUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> TrackResponse:
    try:
        track = await release_service.update_track(
            store, track_id, user_id, body.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _track_response(track)


@router.post(
    "/tracks/{track_id}/versions",
    response_model=AudioVersionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_audio_version(
    track_id: str,
    body: AudioVersionCreate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> AudioVersionResponse:
    version = await release_service.add_audio_version(
        store, track_id, user_id, file_url=body.file_url, label=body.label,
    )
    return _version_response(version)


@router.post(
    "/releases/{release_id}/references",
    response_model=ReferenceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_reference(
    release_id: str,
    body: ReferenceCreate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ReferenceResponse:
    ref = await release_service.add_reference(
        store,
        release_id,
        user_id,
        song_title=body.song_title,
        artist=body.artist,
        note=body.note,
        url=body.url,
        track_id=body.track_id,
    )
    return _reference_response(ref)


@router.post(
    "/tracks/{track_id}/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_revision_note(
    track_id: str,
    body: NoteCreate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> NoteResponse:
    note = await release_service.add_revision_note(
        store,
        track_id,
        user_id,
        content=body.content,
        audio_version_id=body.audio_version_id,
        timecode_seconds=body.timecode_seconds,
        author_name=body.author_name,
    )
    return _note_response(note)


def _distribution_response(track_id: str, row: TrackDistribution | None) -> TrackDistributionResponse:
    if row is None:
        return TrackDistributionResponse(track_id=track_id)
    return TrackDistributionResponse(
        track_id=row.track_id,
        isrc=row.isrc,
        iswc=row.iswc,
        producer=row.producer,
        composers=row.composers,
        language=row.language,
        featured_artist=row.featured_artist,
        explicit_lyrics=row.explicit_lyrics,
        instrumental=row.instrumental,
        cover_song=row.cover_song,
    )


@router.get("/tracks/{track_id}/distribution", response_model=TrackDistributionResponse)
async def get_track_distribution(
    track_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> TrackDistributionResponse:
    row = await release_service.get_track_distribution(store, track_id, user_id)
    return _distribution_response(track_id, row)


@router.put("/tracks/{track_id}/distribution", response_model=TrackDistributionResponse)
async def update_track_distribution(
    track_id: str,
    body: TrackDistributionUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> TrackDistributionResponse:
    row = await release_service.update_track_distribution(
        store, track_id, user_id, body.model_dump(exclude_unset=True),
    )
    return _distribution_response(track_id, row)
