"""Reconcile push-driven updates with throttled full snapshot pulls."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Set

from .config import SyncConfig
from .events import StatsUpdated, ViewerCountUpdated
from .models import RefreshReason, SyncMeta, ViewerStats, WallSettings, WallSnapshot
from .scheduler import ScheduledCall, Scheduler, TimerSet
from .sequence import MediaSequenceStore
from .signals import Signal
from .snapshot import PullError, SnapshotSource

LOGGER = logging.getLogger(__name__)


class ReconciliationController:
    """Keep the sequence store eventually consistent with the server.

    Pulls happen on the initial attach, on manual refresh, and on a fallback
    timer that only runs while the push channel is degraded.  A pull is skipped
    while another one is in flight, and after the initial load it is also
    skipped inside the throttle window.  A successful pull replaces the
    sequence only when the item count changed or the pull was initial/manual,
    so routine fallback pulls never reorder items already advanced by push
    events.

    Signals:

    * ``settings_changed(settings, initial)`` when pulled settings differ;
    * ``replaced(snapshot)`` after a snapshot was written to the store;
    * ``pull_failed(message, reason)`` after any failed pull;
    * ``notice(level, message)`` for advisory UI notifications;
    * ``changed()`` after stats or load state changed.
    """

    def __init__(
        self,
        store: MediaSequenceStore,
        source: SnapshotSource,
        share_token: str,
        *,
        scheduler: Scheduler,
        config: Optional[SyncConfig] = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._wall_clock = wall_clock
        self._source = source
        self._share_token = share_token
        self._scheduler = scheduler
        self._config = config or SyncConfig()
        self._timers = TimerSet(scheduler)
        self._fallback: Optional[ScheduledCall] = None
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._degraded = True
        self._closed = False
        self.meta = SyncMeta()
        self.stats = ViewerStats()
        self.settings = WallSettings()
        self.session_id: Optional[str] = None
        self.error: Optional[str] = None
        self.settings_changed: Signal[WallSettings] = Signal()
        self.replaced: Signal[WallSnapshot] = Signal()
        self.pull_failed: Signal[str] = Signal()
        self.notice: Signal[str] = Signal()
        self.changed: Signal[None] = Signal()

    @property
    def fallback_active(self) -> bool:
        return self._fallback is not None and self._fallback.active

    # ------------------------------------------------------------------
    # Pull triggers
    # ------------------------------------------------------------------
    async def initial_load(self) -> bool:
        return await self.refresh(RefreshReason.INITIAL)

    async def manual_refresh(self) -> bool:
        return await self.refresh(RefreshReason.MANUAL)

    async def refresh(self, reason: RefreshReason | str = RefreshReason.MANUAL) -> bool:
        """Pull a full snapshot; return ``True`` when a pull succeeded."""

        reason = RefreshReason(reason)
        if self._closed:
            LOGGER.debug("refresh (%s) ignored: controller closed", reason.value)
            return False
        now = self._scheduler.now()
        meta = self.meta
        if (
            meta.initial_load_complete
            and meta.last_pull_at is not None
            and now - meta.last_pull_at < self._config.throttle_interval
        ):
            LOGGER.debug("refresh throttled (reason: %s)", reason.value)
            return False
        if meta.pull_in_flight:
            LOGGER.debug("refresh skipped, pull already in flight (reason: %s)", reason.value)
            return False

        meta.pull_in_flight = True
        meta.last_pull_at = now
        try:
            snapshot = await self._source.fetch_snapshot(
                self._share_token,
                quality=self._config.pull_quality,
                max_items=self._config.pull_max_items,
            )
        except PullError as exc:
            self._handle_failure(str(exc), reason)
            return False
        except Exception as exc:
            LOGGER.exception("unexpected error while pulling snapshot")
            self._handle_failure(str(exc) or exc.__class__.__name__, reason)
            return False
        finally:
            meta.pull_in_flight = False

        if self._closed:
            LOGGER.debug("discarding snapshot that resolved after teardown")
            return False
        self._apply(snapshot, reason)
        return True

    def _handle_failure(self, message: str, reason: RefreshReason) -> None:
        LOGGER.warning("error refreshing data (reason: %s): %s", reason.value, message)
        if not self.meta.initial_load_complete:
            self.error = message
            self.changed.emit()
        self.pull_failed.emit(message, reason)

    def _apply(self, snapshot: WallSnapshot, reason: RefreshReason) -> None:
        meta = self.meta
        first_load = not meta.initial_load_complete
        current_count = len(self._store)
        new_count = len(snapshot.items)

        if first_load or new_count != current_count or reason in (
            RefreshReason.INITIAL,
            RefreshReason.MANUAL,
        ):
            LOGGER.info("updating images: %s -> %s (reason: %s)", current_count, new_count, reason.value)
            self._store.replace_all(snapshot.items)
            self.replaced.emit(snapshot)
            if not first_load and new_count > current_count:
                self.notice.emit("info", f"Added {new_count - current_count} new photos")
        else:
            LOGGER.debug("snapshot unchanged in size (%s items), keeping sequence", new_count)

        if snapshot.session_id:
            self.session_id = snapshot.session_id
        if first_load or snapshot.settings != self.settings:
            self.settings = snapshot.settings
            self.settings_changed.emit(snapshot.settings, first_load)

        self.stats.total_images = new_count
        self.stats.last_updated = self._wall_clock()
        self.error = None
        if first_load:
            meta.initial_load_complete = True
            self.notice.emit("success", f"{new_count} photos ready to display")
            self._sync_fallback()
        self.changed.emit()

    # ------------------------------------------------------------------
    # Connectivity driven fallback polling
    # ------------------------------------------------------------------
    def update_connectivity(self, connected: bool, authenticated: bool) -> None:
        self._degraded = not (connected and authenticated)
        self._sync_fallback()

    def _sync_fallback(self) -> None:
        self._timers.cancel(self._fallback)
        self._fallback = None
        if self._closed or not self._degraded or not self.meta.initial_load_complete:
            return
        LOGGER.info("live updates unavailable, polling every %ss", self._config.fallback_interval)
        self._fallback = self._timers.call_every(self._config.fallback_interval, self._on_fallback_tick)

    def _on_fallback_tick(self) -> None:
        if self._closed or not self._degraded:
            return
        task = self._scheduler.spawn(self.refresh(RefreshReason.PERIODIC_FALLBACK))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------
    def apply_stats(self, event: StatsUpdated) -> None:
        if event.total_media is not None:
            self.stats.total_images = event.total_media
        self.stats.last_updated = self._wall_clock()
        self.changed.emit()

    def apply_viewer_count(self, event: ViewerCountUpdated) -> None:
        self.stats.viewer_count = event.viewer_count
        self.stats.last_updated = self._wall_clock()
        self.changed.emit()

    def note_sequence_length(self) -> None:
        self.stats.total_images = len(self._store)
        self.stats.last_updated = self._wall_clock()

    def close(self) -> None:
        self._closed = True
        self._timers.cancel_all()
        self._fallback = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


__all__ = ["ReconciliationController"]
