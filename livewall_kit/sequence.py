"""Ordered, deduplicated media sequence with a playback cursor."""
from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .config import SyncConfig
from .models import InsertionStrategy, MediaItem
from .scheduler import Scheduler, TimerSet
from .signals import Signal

LOGGER = logging.getLogger(__name__)


class MediaSequenceStore:
    """Own the display order of media items and the current cursor.

    Invariants held after every public operation:

    * item ids are unique, so ``len(store)`` equals the distinct id count;
    * ``0 <= cursor < max(len(store), 1)``.

    Out-of-range inputs are clamped rather than raised because a running
    display must keep going.  ``changed`` emits after every mutation.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        config: Optional[SyncConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or SyncConfig()
        self._rng = rng or random.Random()
        self._timers = TimerSet(scheduler)
        self._items: List[MediaItem] = []
        self._cursor = 0
        self.changed: Signal[MediaSequenceStore] = Signal()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def items(self) -> Tuple[MediaItem, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[MediaItem]:
        return iter(tuple(self._items))

    def __contains__(self, media_id: object) -> bool:
        return self.index_of(media_id) is not None

    def index_of(self, media_id: object) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == media_id:
                return index
        return None

    def get(self, media_id: str) -> Optional[MediaItem]:
        index = self.index_of(media_id)
        return None if index is None else self._items[index]

    def current(self) -> Optional[MediaItem]:
        if not self._items:
            return None
        return self._items[self._cursor]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insertion_index(self, strategy: InsertionStrategy | str | None) -> int:
        """Return where an item would be inserted, always within ``[0, len]``."""

        strategy = InsertionStrategy.coerce(strategy)
        length = len(self._items)
        if strategy is InsertionStrategy.IMMEDIATE:
            return 0
        if strategy is InsertionStrategy.AFTER_CURRENT:
            index = self._cursor + self._config.after_current_offset
        elif strategy is InsertionStrategy.SMART_PRIORITY:
            offset = self._rng.randint(
                self._config.smart_priority_min_offset, self._config.smart_priority_max_offset
            )
            index = self._cursor + offset
        else:
            index = length
        return max(0, min(index, length))

    def insert(self, item: MediaItem, strategy: InsertionStrategy | str | None = None) -> int:
        """Insert *item* according to *strategy* and return the new cursor.

        An item whose id is already present is not inserted again; its mutable
        fields are refreshed in place instead.
        """

        if item.id in self:
            self.update_in_place(item.id, image_url=item.image_url)
            return self._cursor

        strategy = InsertionStrategy.coerce(strategy)
        index = self.insertion_index(strategy)
        had_items = bool(self._items)
        self._items.insert(index, item)
        if strategy is InsertionStrategy.IMMEDIATE:
            self._cursor = 0
        elif had_items and index <= self._cursor:
            self._cursor += 1
        self._clamp_cursor()
        if item.is_new:
            self._timers.call_later(self._config.new_flag_ttl, self.clear_new_flag, item.id)
        LOGGER.debug("inserted %s at %s (%s), cursor=%s", item.id, index, strategy.value, self._cursor)
        self.changed.emit(self)
        return self._cursor

    def update_in_place(self, media_id: str, *, image_url: Optional[str] = None) -> bool:
        """Replace mutable fields of an existing item; ``False`` if it is absent."""

        item = self.get(media_id)
        if item is None:
            LOGGER.warning("missed in-place update for %s: item not present", media_id)
            return False
        if image_url and image_url != item.image_url:
            item.image_url = image_url
            self.changed.emit(self)
        return True

    def remove(self, media_id: str) -> int:
        """Remove the item with *media_id* and return the new cursor."""

        index = self.index_of(media_id)
        if index is None:
            LOGGER.debug("remove ignored for %s: item not present", media_id)
            return self._cursor
        del self._items[index]
        if index < self._cursor:
            self._cursor -= 1
        self._clamp_cursor()
        self.changed.emit(self)
        return self._cursor

    def replace_all(self, items: Iterable[MediaItem]) -> int:
        """Swap in a whole new sequence, keeping the cursor index when possible."""

        fresh: List[MediaItem] = []
        seen: Dict[str, MediaItem] = {}
        for item in items:
            if item.id in seen:
                LOGGER.debug("dropping duplicate id %s from replacement", item.id)
                continue
            seen[item.id] = item
            fresh.append(item)
        self._items = fresh
        if self._cursor >= len(self._items):
            self._cursor = 0
        self._clamp_cursor()
        self.changed.emit(self)
        return self._cursor

    def clear_new_flag(self, media_id: str) -> bool:
        item = self.get(media_id)
        if item is None or not item.is_new:
            return False
        item.is_new = False
        self.changed.emit(self)
        return True

    def seek(self, index: int) -> int:
        """Move the cursor, clamped into the current bounds."""

        if not self._items:
            self._cursor = 0
            return self._cursor
        previous = self._cursor
        self._cursor = max(0, min(int(index), len(self._items) - 1))
        if self._cursor != previous:
            self.changed.emit(self)
        return self._cursor

    def close(self) -> None:
        self._timers.cancel_all()

    def _clamp_cursor(self) -> None:
        self._cursor = max(0, min(self._cursor, max(len(self._items) - 1, 0)))


__all__ = ["MediaSequenceStore"]
