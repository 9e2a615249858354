"""
Client portal endpoints (unauthenticated, addressed by share token).

The share token in the path is the only credential. Unknown and revoked
tokens both answer 404. Every endpoint is rate limited per client IP.

Endpoints:
    GET    /portal/{token}                                   — filtered view
    POST   /portal/{token}/tracks/{track_id}/approve         — approve a track
    POST   /portal/{token}/tracks/{track_id}/request-changes — feedback (note required)
    POST   /portal/{token}/tracks/{track_id}/comments        — timestamped comment
    DELETE /portal/{token}/comments/{comment_id}             — delete own comment
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from mixroom.api.dependencies import get_store
from mixroom.config import settings
from mixroom.db import DataStore
from mixroom.models.portal import (
    ApprovalResponse,
    ApproveTrackRequest,
    CreateCommentRequest,
    PortalComment,
    PortalView,
    RequestChangesRequest,
)
from mixroom.services import portal as portal_service

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


@router.get("/portal/{share_token}", response_model=PortalView)
@limiter.limit(settings.portal_rate_limit)
async def get_portal(
    request: Request,
    share_token: str,
    store: DataStore = Depends(get_store),
) -> PortalView:
    return await portal_service.load_portal_view(store, share_token)


@router.post(
    "/portal/{share_token}/tracks/{track_id}/approve",
    response_model=ApprovalResponse,
)
@limiter.limit(settings.portal_write_rate_limit)
async def approve_track(
    request: Request,
    share_token: str,
    track_id: str,
    body: ApproveTrackRequest | None = None,
    store: DataStore = Depends(get_store),
) -> ApprovalResponse:
    return await portal_service.approve_track(
        store,
        share_token,
        track_id,
        actor_name=body.actor_name if body else None,
        note=body.note if body else None,
    )


@router.post(
    "/portal/{share_token}/tracks/{track_id}/request-changes",
    response_model=ApprovalResponse,
)
@limiter.limit(settings.portal_write_rate_limit)
async def request_changes(
    request: Request,
    share_token: str,
    track_id: str,
    body: RequestChangesRequest,
    store: DataStore = Depends(get_store),
) -> ApprovalResponse:
    return await portal_service.request_changes(
        store, share_token, track_id, note=body.note, actor_name=body.actor_name,
    )


@router.post(
    "/portal/{share_token}/tracks/{track_id}/comments",
    response_model=PortalComment,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.portal_write_rate_limit)
async def add_comment(
    request: Request,
    share_token: str,
    track_id: str,
    body: CreateCommentRequest,
    store: DataStore = Depends(get_store),
) -> PortalComment:
    return await portal_service.add_comment(
        store,
        share_token,
        track_id,
        audio_version_id=body.audio_version_id,
        content=body.content,
        timecode_seconds=body.timecode_seconds,
        author_name=body.author_name,
    )


@router.delete(
    "/portal/{share_token}/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
@limiter.limit(settings.portal_write_rate_limit)
async def delete_comment(
    request: Request,
    share_token: str,
    comment_id: str,
    author_name: str | None = Query(None, alias="authorName", max_length=255),
    store: DataStore = Depends(get_store),
) -> None:
    await portal_service.delete_comment(
        store, share_token, comment_id, author_name=author_name,
    )
