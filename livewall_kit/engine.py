"""Live media synchronisation engine for one share-token view."""
from __future__ import annotations

import dataclasses
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .activity import ActivityNotifier, ActivitySnapshot
from .config import SyncConfig
from .events import (
    MEDIA_QUALITY_UPGRADED,
    MEDIA_REMOVED,
    MEDIA_UPLOADED,
    STATS_UPDATED,
    VIEWER_COUNT_UPDATED,
    MediaQualityUpgraded,
    MediaRemoved,
    MediaUploaded,
    StatsUpdated,
    ViewerCountUpdated,
)
from .models import DisplayMode, MediaItem, RefreshReason, ViewerStats, WallSettings, WallSnapshot
from .playback import PlaybackController, PlaybackState, PlaybackStatus
from .reconcile import ReconciliationController
from .scheduler import LoopScheduler, Scheduler
from .sequence import MediaSequenceStore
from .signals import Signal
from .snapshot import SnapshotSource
from .stream import CONNECTION, ConnectionState, EventStreamAdapter, PushChannel, validate_share_token

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Notification:
    """Advisory message for the UI (toast-style)."""

    level: str
    message: str


@dataclass(slots=True, frozen=True)
class EngineSnapshot:
    """Read-only view of everything the UI renders."""

    share_token: str
    items: Tuple[MediaItem, ...]
    cursor: int
    playback: PlaybackState
    status: PlaybackStatus
    stats: ViewerStats
    activity: ActivitySnapshot
    settings: WallSettings
    connected: bool
    authenticated: bool
    loading: bool
    error: Optional[str]
    session_id: Optional[str]

    @property
    def current(self) -> Optional[MediaItem]:
        if not self.items:
            return None
        return self.items[self.cursor]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shareToken": self.share_token,
            "items": [item.to_dict() for item in self.items],
            "cursor": self.cursor,
            "playback": {**self.playback.to_dict(), "status": self.status.value},
            "stats": self.stats.to_dict(),
            "activity": self.activity.to_dict(),
            "settings": self.settings.to_dict(),
            "connected": self.connected,
            "authenticated": self.authenticated,
            "loading": self.loading,
            "error": self.error,
            "sessionId": self.session_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class PhotoWallEngine:
    """Own every piece of state for one active photo wall view.

    The engine wires the push adapter into the sequence store, the activity
    notifier and the reconciliation controller, and exposes the explicit UI
    operations.  All of its timers and pull tasks are released by
    :meth:`detach`, which ``async with`` runs on every exit path.  Nothing
    raised inside the engine reaches the UI; failures surface through
    :attr:`notifications` and the ``error``/``connected`` fields of
    :meth:`snapshot`.
    """

    def __init__(
        self,
        share_token: str,
        *,
        channel: PushChannel,
        source: SnapshotSource,
        scheduler: Optional[Scheduler] = None,
        config: Optional[SyncConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._channel = channel
        self._source = source
        self._owns_scheduler = scheduler is None
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._config = config or SyncConfig()
        self._rng = rng
        self.changed: Signal[EngineSnapshot] = Signal()
        self.notifications: Signal[Notification] = Signal()
        self._build(share_token)

    def _build(self, share_token: str) -> None:
        self._share_token = validate_share_token(share_token)
        self._attached = False
        self._closed = False
        self._loading = True
        self._store = MediaSequenceStore(self._scheduler, config=self._config, rng=self._rng)
        self._adapter = EventStreamAdapter(self._channel, self._share_token, role=self._config.role)
        self._reconciler = ReconciliationController(
            self._store,
            self._source,
            self._share_token,
            scheduler=self._scheduler,
            config=self._config,
        )
        self._playback = PlaybackController(self._store, scheduler=self._scheduler)
        self._activity = ActivityNotifier(self._scheduler, config=self._config)

        self._adapter.register(MEDIA_UPLOADED, self._on_media_uploaded)
        self._adapter.register(MEDIA_QUALITY_UPGRADED, self._on_quality_upgraded)
        self._adapter.register(MEDIA_REMOVED, self._on_media_removed)
        self._adapter.register(STATS_UPDATED, self._on_stats_updated)
        self._adapter.register(VIEWER_COUNT_UPDATED, self._on_viewer_count)
        self._adapter.register(CONNECTION, self._on_connection_changed)

        self._reconciler.settings_changed.connect(self._on_settings_pulled)
        self._reconciler.replaced.connect(self._on_replaced)
        self._reconciler.pull_failed.connect(self._on_pull_failed)
        self._reconciler.notice.connect(self._notify)
        self._reconciler.changed.connect(self._emit_changed)
        self._store.changed.connect(self._emit_changed)
        self._playback.changed.connect(self._emit_changed)
        self._activity.changed.connect(self._emit_changed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def share_token(self) -> str:
        return self._share_token

    @property
    def attached(self) -> bool:
        return self._attached and not self._closed

    @property
    def store(self) -> MediaSequenceStore:
        return self._store

    @property
    def adapter(self) -> EventStreamAdapter:
        return self._adapter

    @property
    def reconciler(self) -> ReconciliationController:
        return self._reconciler

    @property
    def playback(self) -> PlaybackController:
        return self._playback

    @property
    def activity(self) -> ActivityNotifier:
        return self._activity

    async def attach(self) -> bool:
        """Join the push channel and run the initial pull.

        Returns ``True`` when the initial snapshot loaded.  A push channel that
        cannot be joined is not fatal: the fallback poller covers it.
        """

        if self._closed:
            raise RuntimeError("Engine has been detached; use reattach() to start again")
        if self._attached:
            return self._reconciler.meta.initial_load_complete
        self._attached = True
        LOGGER.info("attaching photo wall engine to %s", self._share_token)
        try:
            await self._adapter.open()
        except Exception as exc:
            LOGGER.exception("failed to join push channel for %s", self._share_token)
            self._notify("error", f"Live updates unavailable: {exc}")
        self._reconciler.update_connectivity(self._adapter.connected, self._adapter.authenticated)
        loaded = await self._reconciler.initial_load()
        self._loading = False
        self._emit_changed()
        return loaded

    async def detach(self) -> None:
        """Release every timer, task and subscription; safe to call repeatedly."""

        if self._closed:
            return
        self._closed = True
        LOGGER.info("detaching photo wall engine from %s", self._share_token)
        self._reconciler.close()
        self._playback.close()
        self._activity.close()
        self._store.close()
        self._adapter.unregister_all()
        try:
            await self._adapter.close()
        except Exception:
            LOGGER.exception("failed to leave push channel for %s", self._share_token)
        finally:
            if self._owns_scheduler and isinstance(self._scheduler, LoopScheduler):
                self._scheduler.close()

    async def reattach(self, share_token: str) -> bool:
        await self.detach()
        self._build(share_token)
        return await self.attach()

    async def __aenter__(self) -> "PhotoWallEngine":
        await self.attach()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.detach()

    # ------------------------------------------------------------------
    # UI operations
    # ------------------------------------------------------------------
    def _usable(self, operation: str) -> bool:
        if self._closed:
            LOGGER.debug("%s ignored: engine detached", operation)
            return False
        return True

    def toggle_play_pause(self) -> PlaybackStatus:
        if self._usable("toggle_play_pause"):
            self._playback.toggle_play_pause()
        return self._playback.status

    def next(self) -> int:
        if self._usable("next"):
            self._playback.next()
        return self._store.cursor

    def prev(self) -> int:
        if self._usable("prev"):
            self._playback.prev()
        return self._store.cursor

    def set_display_mode(self, mode: DisplayMode | str) -> None:
        if not self._usable("set_display_mode"):
            return
        try:
            self._playback.set_display_mode(mode)
        except ValueError as exc:
            LOGGER.warning("ignoring display mode change: %s", exc)
            self._notify("warning", f"Unsupported display mode: {mode}")

    def toggle_grid(self) -> DisplayMode:
        if self._usable("toggle_grid"):
            self._playback.toggle_grid()
        return self._playback.state.display_mode

    def set_enabled(self, enabled: bool) -> None:
        if not self._usable("set_enabled"):
            return
        self._reconciler.settings = dataclasses.replace(self._reconciler.settings, is_enabled=bool(enabled))
        self._playback.set_enabled(enabled)

    def apply_settings(self, settings: WallSettings) -> None:
        """Adopt settings edited locally and reset mode and play state from them."""

        if not self._usable("apply_settings"):
            return
        self._reconciler.settings = settings
        self._playback.configure(settings)
        self._notify("success", "Settings updated successfully")

    async def manual_refresh(self) -> bool:
        if not self._usable("manual_refresh"):
            return False
        loaded = await self._reconciler.refresh(RefreshReason.MANUAL)
        if loaded and self._loading:
            self._loading = False
            self._emit_changed()
        return loaded

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    def snapshot(self) -> EngineSnapshot:
        stats = self._reconciler.stats
        return EngineSnapshot(
            share_token=self._share_token,
            items=tuple(dataclasses.replace(item) for item in self._store.items),
            cursor=self._store.cursor,
            playback=self._playback.state,
            status=self._playback.status,
            stats=dataclasses.replace(stats),
            activity=self._activity.snapshot(),
            settings=dataclasses.replace(self._reconciler.settings),
            connected=self._adapter.connected,
            authenticated=self._adapter.authenticated,
            loading=self._loading,
            error=self._reconciler.error,
            session_id=self._reconciler.session_id,
        )

    def _emit_changed(self, *_args: Any) -> None:
        if self.changed.subscribers():
            self.changed.emit(self.snapshot())

    def _notify(self, level: str, message: str) -> None:
        self.notifications.emit(Notification(level, message))

    # ------------------------------------------------------------------
    # Push handlers
    # ------------------------------------------------------------------
    def _on_media_uploaded(self, event: MediaUploaded) -> None:
        if event.media_id in self._store:
            LOGGER.debug("repeated upload for %s; refreshing url only", event.media_id)
            self._store.update_in_place(event.media_id, image_url=event.image_url)
            return
        settings = self._reconciler.settings
        uploader = (event.uploader_name or "Anonymous") if settings.show_uploader_names else None
        item = MediaItem(
            id=event.media_id,
            image_url=event.image_url,
            uploaded_at=event.uploaded_at,
            uploader_name=uploader,
            is_new=True,
        )
        self._store.insert(item, settings.new_image_insertion)
        self._reconciler.note_sequence_length()
        self._activity.note_upload()
        self._notify("success", f"New photo from {event.uploader_name or 'someone'}!")

    def _on_quality_upgraded(self, event: MediaQualityUpgraded) -> None:
        if event.best_url:
            self._store.update_in_place(event.media_id, image_url=event.best_url)
        self._activity.note_quality_upgrade()
        self._notify("info", "Higher quality version ready!")

    def _on_media_removed(self, event: MediaRemoved) -> None:
        self._store.remove(event.media_id)
        self._reconciler.note_sequence_length()
        self._activity.note_removal()
        self._notify("warning", f"Photo removed: {event.reason}")

    def _on_stats_updated(self, event: StatsUpdated) -> None:
        self._reconciler.apply_stats(event)

    def _on_viewer_count(self, event: ViewerCountUpdated) -> None:
        self._reconciler.apply_viewer_count(event)

    def _on_connection_changed(self, state: ConnectionState) -> None:
        self._reconciler.update_connectivity(state.connected, state.authenticated)
        if state.live:
            self._notify("success", "Connected to live updates")
        elif state.connected:
            self._notify("info", "Connecting...")
        else:
            self._notify("error", "Disconnected from live updates")
        self._emit_changed()

    # ------------------------------------------------------------------
    # Reconciliation hooks
    # ------------------------------------------------------------------
    def _on_settings_pulled(self, settings: WallSettings, initial: bool) -> None:
        if initial:
            self._playback.configure(settings)
        else:
            self._playback.apply_settings(settings)

    def _on_replaced(self, snapshot: WallSnapshot) -> None:
        self._playback.revalidate()

    def _on_pull_failed(self, message: str, reason: RefreshReason) -> None:
        if not self._reconciler.meta.initial_load_complete:
            self._notify("error", message)
        else:
            self._notify("warning", f"Refresh failed ({reason.value}): {message}")


__all__ = ["EngineSnapshot", "Notification", "PhotoWallEngine"]
