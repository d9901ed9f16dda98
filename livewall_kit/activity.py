"""Transient activity indicators derived from push events."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import SyncConfig
from .scheduler import Scheduler, TimerSet
from .signals import Signal

UPLOADING = "uploading"
QUALITY_UPGRADED = "quality_upgraded"
REMOVING = "removing"


@dataclass(slots=True, frozen=True)
class ActivitySnapshot:
    uploading: bool = False
    quality_upgraded: bool = False
    removing: bool = False
    new_media_count: int = 0
    removed_media_count: int = 0
    last_activity_at: Optional[float] = None

    @property
    def any_active(self) -> bool:
        return self.uploading or self.quality_upgraded or self.removing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uploading": self.uploading,
            "qualityUpgraded": self.quality_upgraded,
            "removing": self.removing,
            "newMediaCount": self.new_media_count,
            "removedMediaCount": self.removed_media_count,
            "lastActivityAt": self.last_activity_at,
        }


class ActivityNotifier:
    """Maintain three independent self-clearing flags plus event counters.

    Every triggering event schedules its own clear timer; a flag stays raised
    until the last of its outstanding clears has fired.  Counters only grow.
    """

    def __init__(self, scheduler: Scheduler, *, config: Optional[SyncConfig] = None) -> None:
        config = config or SyncConfig()
        self._scheduler = scheduler
        self._timers = TimerSet(scheduler)
        self._ttl = {
            UPLOADING: config.upload_flag_ttl,
            QUALITY_UPGRADED: config.upgrade_flag_ttl,
            REMOVING: config.removal_flag_ttl,
        }
        self._outstanding = {UPLOADING: 0, QUALITY_UPGRADED: 0, REMOVING: 0}
        self._new_media_count = 0
        self._removed_media_count = 0
        self._last_activity_at: Optional[float] = None
        self.changed: Signal[ActivitySnapshot] = Signal()

    def note_upload(self) -> None:
        self._new_media_count += 1
        self._raise(UPLOADING)

    def note_quality_upgrade(self) -> None:
        self._raise(QUALITY_UPGRADED)

    def note_removal(self) -> None:
        self._removed_media_count += 1
        self._raise(REMOVING)

    def snapshot(self) -> ActivitySnapshot:
        return ActivitySnapshot(
            uploading=self._outstanding[UPLOADING] > 0,
            quality_upgraded=self._outstanding[QUALITY_UPGRADED] > 0,
            removing=self._outstanding[REMOVING] > 0,
            new_media_count=self._new_media_count,
            removed_media_count=self._removed_media_count,
            last_activity_at=self._last_activity_at,
        )

    def close(self) -> None:
        self._timers.cancel_all()
        for flag in self._outstanding:
            self._outstanding[flag] = 0

    def _raise(self, flag: str) -> None:
        self._outstanding[flag] += 1
        self._last_activity_at = self._scheduler.now()
        self._timers.call_later(self._ttl[flag], self._clear, flag)
        self.changed.emit(self.snapshot())

    def _clear(self, flag: str) -> None:
        self._outstanding[flag] = max(0, self._outstanding[flag] - 1)
        if self._outstanding[flag] == 0:
            self.changed.emit(self.snapshot())


__all__ = ["ActivityNotifier", "ActivitySnapshot"]
