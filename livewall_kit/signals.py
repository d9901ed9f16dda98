"""Lightweight signal helper used to publish engine state."""
from __future__ import annotations

from typing import Callable, Generic, Iterable, List, TypeVar

T = TypeVar("T")


class Signal(Generic[T]):
    """Small Qt-like signal implementation.

    Subscribers are stored as a plain list of callables and invoked
    synchronously, in registration order, when ``emit`` is called.  Both
    ``connect`` and ``disconnect`` are idempotent: registering a callback twice
    keeps a single entry and removing an unknown callback is ignored.
    """

    def __init__(self) -> None:
        self._subscribers: List[Callable[..., None]] = []

    def connect(self, callback: Callable[..., None]) -> None:
        """Register *callback* to be invoked when the signal emits."""

        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def disconnect(self, callback: Callable[..., None]) -> None:
        """Remove *callback*; unknown callbacks are ignored."""

        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def clear(self) -> None:
        self._subscribers.clear()

    def emit(self, *args, **kwargs) -> None:
        """Invoke every subscribed callback with ``*args`` and ``**kwargs``."""

        for subscriber in list(self._subscribers):
            subscriber(*args, **kwargs)

    def subscribers(self) -> Iterable[Callable[..., None]]:
        """Return the registered callbacks (useful for testing)."""

        return tuple(self._subscribers)


__all__ = ["Signal"]
