"""Slideshow playback state machine."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .models import DisplayMode, WallSettings
from .scheduler import ScheduledCall, Scheduler, TimerSet
from .sequence import MediaSequenceStore
from .signals import Signal

LOGGER = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(slots=True)
class PlaybackState:
    is_playing: bool = False
    display_mode: DisplayMode = DisplayMode.SLIDESHOW
    transition_duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isPlaying": self.is_playing,
            "displayMode": self.display_mode.value,
            "transitionDurationMs": self.transition_duration_ms,
        }


class PlaybackController:
    """Drive automatic advancement and manual navigation over the store.

    The status is derived rather than stored: ``STOPPED`` whenever the wall is
    disabled, the sequence is empty or the display mode is not slideshow,
    otherwise ``PLAYING`` or ``PAUSED`` depending on ``is_playing``.

    The advance timer is cancelled and recreated whenever one of its inputs
    changes (duration, sequence length, display mode, playing flag, enabled
    flag), so at most one timer is live at any time.  The controller only
    moves the store's cursor; it never adds or removes items.
    """

    def __init__(
        self,
        store: MediaSequenceStore,
        *,
        scheduler: Scheduler,
        settings: Optional[WallSettings] = None,
    ) -> None:
        self._store = store
        self._timers = TimerSet(scheduler)
        self._timer: Optional[ScheduledCall] = None
        self._timer_key: Optional[tuple] = None
        self._state = PlaybackState()
        self._auto_advance = False
        self._enabled = True
        self._closed = False
        self._last_length = len(store)
        self.changed: Signal[PlaybackState] = Signal()
        self._store.changed.connect(self._on_store_changed)
        if settings is not None:
            self.configure(settings)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            is_playing=self._state.is_playing,
            display_mode=self._state.display_mode,
            transition_duration_ms=self._state.transition_duration_ms,
        )

    @property
    def status(self) -> PlaybackStatus:
        if (
            not self._enabled
            or len(self._store) == 0
            or self._state.display_mode is not DisplayMode.SLIDESHOW
        ):
            return PlaybackStatus.STOPPED
        return PlaybackStatus.PLAYING if self._state.is_playing else PlaybackStatus.PAUSED

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and self._timer.active

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def configure(self, settings: WallSettings) -> None:
        """Initialise from settings: display mode and ``is_playing = auto_advance``."""

        self._auto_advance = settings.auto_advance
        self._enabled = settings.is_enabled
        self._state.display_mode = settings.display_mode
        self._state.transition_duration_ms = settings.transition_duration_ms
        self._state.is_playing = settings.auto_advance
        self._refresh()

    def apply_settings(self, settings: WallSettings) -> None:
        """Adopt changed server settings without resetting mode or play state."""

        self._auto_advance = settings.auto_advance
        self._enabled = settings.is_enabled
        self._state.transition_duration_ms = settings.transition_duration_ms
        self._refresh()

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        self._refresh()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def toggle_play_pause(self) -> PlaybackStatus:
        status = self.status
        if status is PlaybackStatus.STOPPED:
            return status
        self._state.is_playing = status is PlaybackStatus.PAUSED
        self._refresh()
        return self.status

    def set_display_mode(self, mode: DisplayMode | str) -> None:
        mode = DisplayMode.coerce(mode)
        if mode is DisplayMode.SLIDESHOW and self._auto_advance:
            self._state.is_playing = True
        self._state.display_mode = mode
        self._refresh()

    def toggle_grid(self) -> DisplayMode:
        """Switch between slideshow and grid; entering slideshow resumes playing."""

        if self._state.display_mode is DisplayMode.SLIDESHOW:
            self.set_display_mode(DisplayMode.GRID)
        else:
            self._state.is_playing = True
            self.set_display_mode(DisplayMode.SLIDESHOW)
        return self._state.display_mode

    def next(self) -> int:
        if self.status is PlaybackStatus.STOPPED:
            return self._store.cursor
        return self._store.seek((self._store.cursor + 1) % len(self._store))

    def prev(self) -> int:
        if self.status is PlaybackStatus.STOPPED:
            return self._store.cursor
        length = len(self._store)
        return self._store.seek((self._store.cursor - 1) % length)

    def tick(self) -> None:
        length = len(self._store)
        if length == 0:
            self._refresh()
            return
        self._store.seek((self._store.cursor + 1) % length)

    def revalidate(self) -> None:
        """Re-check cursor bounds and timer after a wholesale replacement."""

        self._store.seek(self._store.cursor)
        self._last_length = len(self._store)
        self._refresh()

    def close(self) -> None:
        self._closed = True
        self._store.changed.disconnect(self._on_store_changed)
        self._timers.cancel_all()
        self._timer = None
        self._timer_key = None

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------
    def _on_store_changed(self, store: MediaSequenceStore) -> None:
        length = len(store)
        if length != self._last_length:
            self._last_length = length
            self._refresh()

    def _refresh(self) -> None:
        key = (
            self._state.transition_duration_ms,
            len(self._store),
            self._state.display_mode,
            self._state.is_playing,
            self._enabled,
        )
        if key != self._timer_key:
            self._timer_key = key
            self._timers.cancel(self._timer)
            self._timer = None
            if (
                not self._closed
                and self.status is PlaybackStatus.PLAYING
                and self._state.transition_duration_ms > 0
            ):
                interval = self._state.transition_duration_ms / 1000.0
                self._timer = self._timers.call_every(interval, self.tick)
                LOGGER.debug("advance timer armed every %.3fs", interval)
        self.changed.emit(self.state)


__all__ = ["PlaybackController", "PlaybackState", "PlaybackStatus"]
