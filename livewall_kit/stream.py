"""Adapter presenting a push channel as typed lifecycle signals."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .events import (
    LIFECYCLE_EVENTS,
    PayloadError,
    canonical_event_name,
    normalize_event,
)
from .signals import Signal

LOGGER = logging.getLogger(__name__)

CONNECTION = "connection"


@dataclass(slots=True, frozen=True)
class ConnectionState:
    connected: bool
    authenticated: bool
    error: Optional[str] = None

    @property
    def live(self) -> bool:
        return self.connected and self.authenticated


class PushListener(Protocol):
    def on_connected(self) -> None: ...

    def on_authenticated(self, info: Optional[Mapping[str, Any]] = None) -> None: ...

    def on_auth_error(self, message: str) -> None: ...

    def on_disconnected(self, reason: str = "") -> None: ...

    def on_event(self, name: str, data: Any) -> None: ...


class PushChannel(Protocol):
    async def join(self, share_token: str, role: str, listener: PushListener) -> None: ...

    async def leave(self) -> None: ...


def validate_share_token(share_token: str) -> str:
    token = str(share_token or "").strip()
    if not token:
        raise ValueError("Share token must be a non-empty string")
    if any(char in token for char in ".*>") or any(char.isspace() for char in token):
        raise ValueError(f"Share token may not contain subject separators: {share_token!r}")
    return token


class EventStreamAdapter:
    """Wrap one logical push channel scoped to a share token and role.

    The adapter carries no business logic.  It keeps the connectivity flags,
    normalises every payload through :func:`normalize_event` and re-emits it on
    the matching signal.  Malformed payloads are dropped with a warning and a
    failing subscriber is logged without affecting the others.
    """

    def __init__(self, channel: PushChannel, share_token: str, *, role: str = "photowall") -> None:
        self._channel = channel
        self._share_token = validate_share_token(share_token)
        self._role = role
        self._connected = False
        self._authenticated = False
        self._connection_error: Optional[str] = None
        self._open = False
        self._signals: Dict[str, Signal[Any]] = {name: Signal() for name in LIFECYCLE_EVENTS}
        self._signals[CONNECTION] = Signal()
        self.dropped_events = 0

    @property
    def share_token(self) -> str:
        return self._share_token

    @property
    def role(self) -> str:
        return self._role

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def connection_error(self) -> Optional[str]:
        return self._connection_error

    @property
    def state(self) -> ConnectionState:
        return ConnectionState(self._connected, self._authenticated, self._connection_error)

    @property
    def is_open(self) -> bool:
        return self._open

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------
    def _signal(self, event: str) -> Signal[Any]:
        name = event if event == CONNECTION else canonical_event_name(event)
        if name is None or name not in self._signals:
            raise ValueError(f"Unknown lifecycle event: {event!r}")
        return self._signals[name]

    def register(self, event: str, callback: Callable[..., None]) -> None:
        self._signal(event).connect(callback)

    def unregister(self, event: str, callback: Callable[..., None]) -> None:
        self._signal(event).disconnect(callback)

    def unregister_all(self) -> None:
        for signal in self._signals.values():
            signal.clear()

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------
    async def open(self) -> None:
        if self._open:
            return
        self._open = True
        LOGGER.info("joining push channel for %s as %s", self._share_token, self._role)
        await self._channel.join(self._share_token, self._role, self)

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        try:
            await self._channel.leave()
        finally:
            self._set_state(False, False, self._connection_error)

    # ------------------------------------------------------------------
    # PushListener implementation (called by the transport)
    # ------------------------------------------------------------------
    def on_connected(self) -> None:
        LOGGER.info("push channel connected for %s", self._share_token)
        self._set_state(True, self._authenticated, None)

    def on_authenticated(self, info: Optional[Mapping[str, Any]] = None) -> None:
        LOGGER.info("push channel authenticated for %s", self._share_token)
        self._set_state(True, True, None)

    def on_auth_error(self, message: str) -> None:
        LOGGER.warning("push channel authentication failed for %s: %s", self._share_token, message)
        self._set_state(self._connected, False, message or "Authentication failed")

    def on_disconnected(self, reason: str = "") -> None:
        LOGGER.info("push channel disconnected for %s (%s)", self._share_token, reason or "no reason")
        self._set_state(False, False, self._connection_error)

    def on_event(self, name: str, data: Any) -> None:
        if not self._open:
            LOGGER.debug("ignoring %s received after close", name)
            return
        canonical = canonical_event_name(name)
        if canonical is None:
            LOGGER.debug("ignoring unknown push event %s", name)
            return
        try:
            event = normalize_event(canonical, data)
        except PayloadError as exc:
            self.dropped_events += 1
            LOGGER.warning("dropping malformed push event: %s", exc)
            return
        self._dispatch(self._signals[canonical], canonical, event)

    def _set_state(self, connected: bool, authenticated: bool, error: Optional[str]) -> None:
        authenticated = authenticated and connected
        changed = (connected, authenticated, error) != (
            self._connected,
            self._authenticated,
            self._connection_error,
        )
        self._connected = connected
        self._authenticated = authenticated
        self._connection_error = error
        if changed:
            self._dispatch(self._signals[CONNECTION], CONNECTION, self.state)

    @staticmethod
    def _dispatch(signal: Signal[Any], name: str, payload: Any) -> None:
        for subscriber in signal.subscribers():
            try:
                subscriber(payload)
            except Exception:
                LOGGER.exception("subscriber for %s failed", name)


__all__ = [
    "CONNECTION",
    "ConnectionState",
    "EventStreamAdapter",
    "PushChannel",
    "PushListener",
    "validate_share_token",
]
