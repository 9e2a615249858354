"""HTTP writer that lets a ``MutationQueue`` persist edits through the API.

Usage::

    async with MixroomApiClient(token=access_token) as api:
        queue = MutationQueue(writer=api.write)
        queue.submit(EntityRef("release", release_id), {"title": "Night Drive"})
        await queue.flush()

Failures are mapped onto the domain error taxonomy so the queue can decide
whether to offer a retry: 5xx responses, timeouts and connection errors
become ``TransientError``; 404/403/409 become the matching terminal errors.
The bearer token is never written to logs.
"""
from __future__ import annotations

import logging
import types
from typing import Any

import httpx

from mixroom.config import settings
from mixroom.errors import (
    ConflictError,
    MixroomError,
    NotFoundError,
    TransientError,
    UnauthorizedError,
)
from mixroom.models.base import to_camel
from mixroom.sync.mutations import EntityRef

logger = logging.getLogger(__name__)

# Entity kind -> PATCH path template
ENTITY_PATHS: dict[str, str] = {
    "release": "/releases/{id}",
    "track": "/tracks/{id}",
}

_STATUS_ERRORS: dict[int, type[MixroomError]] = {
    403: UnauthorizedError,
    404: NotFoundError,
    409: ConflictError,
}


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


def raise_for_response(response: httpx.Response) -> None:
    """Translate a non-2xx response into a domain error."""
    if response.is_success:
        return
    detail = _detail(response)
    if response.status_code >= 500:
        raise TransientError(f"Server error {response.status_code}: {detail}")
    error_cls = _STATUS_ERRORS.get(response.status_code)
    if error_cls is not None:
        raise error_cls(detail)
    if response.status_code == 401:
        raise UnauthorizedError(f"Not authenticated: {detail}")
    raise MixroomError(f"Request failed with {response.status_code}: {detail}")


class MixroomApiClient:
    """Async client for the Mixroom editor API.

    Args:
        token: Access token sent as ``Authorization: Bearer <token>``.
        base_url: API root; defaults to ``settings.api_base_url``.
        timeout: Request timeout in seconds; defaults to ``settings.api_timeout_seconds``.
        transport: Optional httpx transport (tests pass an ``ASGITransport``).
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._base_url = base_url or settings.api_base_url
        self._timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> MixroomApiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.debug("MixroomApiClient opened for %s (Bearer ***)", self._base_url)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("MixroomApiClient must be used as an async context manager.")
        return self._client

    async def write(self, entity_ref: EntityRef, patch: dict[str, Any]) -> dict[str, Any]:
        """PATCH *patch* onto the entity; returns the updated entity body."""
        template = ENTITY_PATHS.get(entity_ref.kind)
        if template is None:
            raise ValueError(f"Unknown entity kind: {entity_ref.kind}")
        path = template.format(id=entity_ref.id)
        body = {to_camel(name): value for name, value in patch.items()}

        try:
            response = await self._require_client().patch(path, json=body)
        except httpx.TimeoutException as exc:
            raise TransientError(f"Timed out saving {entity_ref.kind}") from exc
        except httpx.TransportError as exc:
            raise TransientError(f"Could not reach the server: {exc}") from exc

        raise_for_response(response)
        result: dict[str, Any] = response.json()
        return result
