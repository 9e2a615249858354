"""
Portal share endpoints (authenticated editors).

Endpoints:
    GET    /releases/{release_id}/share                           — settings + rollup
    POST   /releases/{release_id}/share                           — enable / reactivate
    DELETE /releases/{release_id}/share                           — revoke
    PATCH  /releases/{release_id}/share                           — facet toggles
    PUT    /releases/{release_id}/share/tracks/{track_id}         — track visibility
    PUT    /releases/{release_id}/share/versions/{version_id}     — version visibility
    POST   /releases/{release_id}/share/tracks/{track_id}/deliver — approved → delivered
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from mixroom.api.dependencies import get_store
from mixroom.auth.dependencies import require_user_id
from mixroom.db import DataStore
from mixroom.models.portal import (
    ApprovalResponse,
    DeliverTrackRequest,
    ShareResponse,
    ShareSettingsUpdate,
    TrackSettingResponse,
    TrackSettingUpdate,
    VersionSettingResponse,
    VersionSettingUpdate,
)
from mixroom.services import portal as portal_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/releases/{release_id}/share", response_model=ShareResponse)
async def get_share(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ShareResponse:
    return await portal_service.get_share(store, release_id, user_id)


@router.post("/releases/{release_id}/share", response_model=ShareResponse)
async def enable_share(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ShareResponse:
    """Enable the portal; a revoked share comes back with a new token."""
    return await portal_service.enable_share(store, release_id, user_id)


@router.delete("/releases/{release_id}/share", response_model=ShareResponse)
async def revoke_share(
    release_id: str,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ShareResponse:
    return await portal_service.revoke_share(store, release_id, user_id)


@router.patch("/releases/{release_id}/share", response_model=ShareResponse)
async def update_share_settings(
    release_id: str,
    body: ShareSettingsUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ShareResponse:
    try:
        return await portal_service.update_share_settings(
            store, release_id, user_id, body.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.put(
    "/releases/{release_id}/share/tracks/{track_id}",
    response_model=TrackSettingResponse,
)
async def set_track_setting(
    release_id: str,
    track_id: str,
    body: TrackSettingUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> TrackSettingResponse:
    return await portal_service.set_track_setting(
        store,
        release_id,
        user_id,
        track_id,
        visible=body.visible,
        download_enabled=body.download_enabled,
    )


@router.put(
    "/releases/{release_id}/share/versions/{version_id}",
    response_model=VersionSettingResponse,
)
async def set_version_setting(
    release_id: str,
    version_id: str,
    body: VersionSettingUpdate,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> VersionSettingResponse:
    return await portal_service.set_version_setting(
        store, release_id, user_id, version_id, visible=body.visible,
    )


@router.post(
    "/releases/{release_id}/share/tracks/{track_id}/deliver",
    response_model=ApprovalResponse,
)
async def deliver_track(
    release_id: str,
    track_id: str,
    body: DeliverTrackRequest | None = None,
    user_id: str = Depends(require_user_id),
    store: DataStore = Depends(get_store),
) -> ApprovalResponse:
    """Mark one approved track as delivered. Portal visitors cannot reach this."""
    return await portal_service.deliver_track(
        store, release_id, user_id, track_id, note=body.note if body else None,
    )
