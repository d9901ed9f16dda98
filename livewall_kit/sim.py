"""In-memory photo wall backend simulation for tests and demos."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .events import MEDIA_QUALITY_UPGRADED, MEDIA_REMOVED, MEDIA_UPLOADED, STATS_UPDATED, VIEWER_COUNT_UPDATED
from .models import MediaItem, WallSettings, WallSnapshot, isoformat
from .snapshot import parse_snapshot
from .stream import PushListener


class InMemoryPushChannel:
    """Push channel whose server side is driven directly by the caller."""

    def __init__(self, *, auto_authenticate: bool = True) -> None:
        self.auto_authenticate = auto_authenticate
        self.joins: List[Tuple[str, str]] = []
        self.leaves = 0
        self.connected = False
        self._listener: Optional[PushListener] = None
        self._share_token: Optional[str] = None
        self._auth_error: Optional[str] = None

    @property
    def joined(self) -> bool:
        return self._listener is not None

    async def join(self, share_token: str, role: str, listener: PushListener) -> None:
        self.joins.append((share_token, role))
        self._share_token = share_token
        self._listener = listener
        self.connected = True
        listener.on_connected()
        self._authenticate()

    async def leave(self) -> None:
        self.leaves += 1
        self._listener = None
        self.connected = False

    def _authenticate(self) -> None:
        if self._listener is None:
            return
        if self._auth_error is not None:
            self._listener.on_auth_error(self._auth_error)
        elif self.auto_authenticate:
            self._listener.on_authenticated({"shareToken": self._share_token})

    # ------------------------------------------------------------------
    # Server-side controls
    # ------------------------------------------------------------------
    def emit(self, name: str, data: Any) -> bool:
        """Deliver an event; returns ``False`` when nobody is listening."""

        if self._listener is None or not self.connected:
            return False
        self._listener.on_event(name, data)
        return True

    def drop(self, reason: str = "transport close") -> None:
        self.connected = False
        if self._listener is not None:
            self._listener.on_disconnected(reason)

    def restore(self) -> None:
        if self._listener is None:
            return
        self.connected = True
        self._listener.on_connected()
        self._authenticate()

    def reject_auth(self, message: str = "Invalid share token") -> None:
        self._auth_error = message
        if self._listener is not None and self.connected:
            self._listener.on_auth_error(message)

    def accept_auth(self) -> None:
        self._auth_error = None
        if self._listener is not None and self.connected:
            self._listener.on_authenticated({"shareToken": self._share_token})


class InMemorySnapshotSource:
    """Snapshot source holding the server-side truth of one wall.

    Responses are built as wire payloads and parsed with
    :func:`parse_snapshot`, so they pass through the same validation as
    HTTP responses.
    """

    def __init__(
        self,
        items: Optional[List[MediaItem]] = None,
        *,
        settings: Optional[WallSettings] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.items: List[MediaItem] = list(items or [])
        self.settings = settings or WallSettings()
        self.session_id = session_id
        self.fail_with: Optional[BaseException] = None
        self.status = True
        self.message: Optional[str] = None
        self.calls = 0
        self.requests: List[Dict[str, Any]] = []
        self._gate: Optional[asyncio.Event] = None

    def hold(self) -> None:
        """Keep subsequent requests open until :meth:`release` is called."""

        if self._gate is None:
            self._gate = asyncio.Event()

    def release(self) -> None:
        gate, self._gate = self._gate, None
        if gate is not None:
            gate.set()

    def payload(self) -> Dict[str, Any]:
        if not self.status:
            return {"status": False, "message": self.message}
        return {
            "status": True,
            "data": {
                "items": [item.to_dict() for item in self.items],
                "settings": self.settings.to_dict(),
                "sessionId": self.session_id,
            },
        }

    async def fetch_snapshot(
        self, share_token: str, *, quality: str = "large", max_items: int = 100
    ) -> WallSnapshot:
        self.calls += 1
        self.requests.append({"shareToken": share_token, "quality": quality, "maxItems": max_items})
        if self._gate is not None:
            await self._gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        payload = self.payload()
        if payload.get("data"):
            payload["data"]["items"] = payload["data"]["items"][:max_items]
        return parse_snapshot(payload)


class InMemoryWallServer:
    """Couple a push channel and a snapshot source like the real backend does.

    Every mutation updates the pull-side truth first and then emits the
    matching push event, so an engine attached to both sees a consistent
    wall whichever path it learns about a change from.
    """

    def __init__(
        self,
        items: Optional[List[MediaItem]] = None,
        *,
        settings: Optional[WallSettings] = None,
        session_id: Optional[str] = "session-1",
    ) -> None:
        self.channel = InMemoryPushChannel()
        self.source = InMemorySnapshotSource(items, settings=settings, session_id=session_id)

    @property
    def items(self) -> List[MediaItem]:
        return self.source.items

    def upload(
        self,
        media_id: str,
        url: str,
        *,
        uploader_name: Optional[str] = None,
        uploaded_at: Optional[datetime] = None,
        event_name: str = MEDIA_UPLOADED,
    ) -> bool:
        uploaded_at = uploaded_at or datetime.now(timezone.utc)
        self.source.items.append(
            MediaItem(id=media_id, image_url=url, uploaded_at=uploaded_at, uploader_name=uploader_name)
        )
        return self.channel.emit(
            event_name,
            {
                "mediaId": media_id,
                "media": {"url": url},
                "uploadedBy": {"name": uploader_name},
                "uploadedAt": isoformat(uploaded_at),
            },
        )

    def upgrade(self, media_id: str, display_url: str, *, full_url: Optional[str] = None) -> bool:
        for item in self.source.items:
            if item.id == media_id:
                item.image_url = display_url
        return self.channel.emit(
            MEDIA_QUALITY_UPGRADED,
            {"mediaId": media_id, "variants": {"display": display_url, "full": full_url}},
        )

    def remove(self, media_id: str, reason: Optional[str] = None) -> bool:
        self.source.items = [item for item in self.source.items if item.id != media_id]
        return self.channel.emit(
            MEDIA_REMOVED, {"mediaId": media_id, "guestContext": {"reasonDisplay": reason}}
        )

    def publish_stats(self, approved: int) -> bool:
        return self.channel.emit(STATS_UPDATED, {"stats": {"approved": approved}})

    def publish_viewers(self, guest_count: int) -> bool:
        return self.channel.emit(VIEWER_COUNT_UPDATED, {"guestCount": guest_count})


__all__ = ["InMemoryPushChannel", "InMemorySnapshotSource", "InMemoryWallServer"]
