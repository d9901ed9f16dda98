"""HTTP client for the photo wall snapshot endpoint."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

import aiohttp
from jsonschema import exceptions as jsonschema_exceptions

from .models import MediaItem, WallSettings, WallSnapshot
from .schema import validate_snapshot

LOGGER = logging.getLogger(__name__)


class PullError(RuntimeError):
    """Raised for every failed snapshot pull, network or logical."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class SnapshotSource(Protocol):
    async def fetch_snapshot(
        self, share_token: str, *, quality: str = "large", max_items: int = 100
    ) -> WallSnapshot: ...


def parse_snapshot(payload: Any) -> WallSnapshot:
    """Turn a decoded response body into a :class:`WallSnapshot`.

    ``status: false`` and schema violations raise :class:`PullError`; items
    sharing an id are collapsed onto their first occurrence.
    """

    if isinstance(payload, Mapping) and payload.get("status") is False:
        message = payload.get("message") or "Failed to fetch photo wall data"
        raise PullError(str(message))
    try:
        validate_snapshot(payload)
    except jsonschema_exceptions.ValidationError as exc:
        raise PullError(f"Malformed photo wall response: {exc.message}") from exc
    data = payload.get("data")
    if not data:
        raise PullError(str(payload.get("message") or "Photo wall response carried no data"))

    items: List[MediaItem] = []
    seen = set()
    for raw in data["items"]:
        try:
            item = MediaItem.from_dict(raw)
        except (TypeError, ValueError) as exc:
            raise PullError(f"Malformed photo wall item {raw.get('id')!r}: {exc}") from exc
        if item.id in seen:
            continue
        seen.add(item.id)
        items.append(item)
    return WallSnapshot(
        items=items,
        settings=WallSettings.from_dict(data["settings"]),
        session_id=data.get("sessionId"),
    )


def _status_message(status: int) -> str:
    if status == 404:
        return "Photo wall not found - check if share token is valid"
    if status == 403:
        return "Photo wall access denied - wall may be disabled"
    if status >= 500:
        return "Server error. Please try again later."
    return f"Unexpected HTTP status {status}"


class PhotoWallClient:
    """Fetch full snapshots from ``{base_url}/photo-wall/{share_token}``.

    The client either owns its :class:`aiohttp.ClientSession` (created lazily
    and closed by :meth:`close`) or borrows one passed by the caller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
    ) -> None:
        if not base_url:
            raise ValueError("A base URL for the photo wall API must be provided")
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def fetch_snapshot(
        self, share_token: str, *, quality: str = "large", max_items: int = 100
    ) -> WallSnapshot:
        url = f"{self._base_url}/photo-wall/{share_token}"
        params: Dict[str, str] = {"quality": quality, "maxItems": str(max_items)}
        LOGGER.debug("fetching %s with %s", url, params)
        session = self._get_session()
        try:
            async with session.get(url, params=params, timeout=self._timeout) as resp:
                if resp.status != 200:
                    raise PullError(_status_message(resp.status), status=resp.status)
                payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise PullError("Photo wall request timed out") from exc
        except aiohttp.ClientError as exc:
            raise PullError("Network error - check if API server is reachable") from exc
        except ValueError as exc:
            raise PullError("Photo wall response was not valid JSON") from exc
        return parse_snapshot(payload)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "PhotoWallClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


__all__ = ["PhotoWallClient", "PullError", "SnapshotSource", "parse_snapshot"]
