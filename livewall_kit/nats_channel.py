"""NATS transport for the photo wall push channel."""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

import cbor2
from nats import errors as nats_errors
from nats.aio.client import Client as NATS

from .stream import PushListener, validate_share_token

LOGGER = logging.getLogger(__name__)

DEFAULT_SUBJECT_PREFIX = "photowall"


def events_subject(prefix: str, share_token: str, event: str = "*") -> str:
    return f"{prefix}.{validate_share_token(share_token)}.events.{event}"


def join_subject(prefix: str, share_token: str) -> str:
    return f"{prefix}.{validate_share_token(share_token)}.join"


class NatsPushChannel:
    """Join a share-token room over core NATS and forward events to a listener.

    Events arrive as CBOR maps on ``<prefix>.<token>.events.<name>``.  Joining
    is a CBOR request on ``<prefix>.<token>.join``; a reply carrying
    ``status: true`` authenticates the listener.  Reconnects re-run the join
    so the room membership survives broker restarts.
    """

    def __init__(
        self,
        servers: Iterable[str],
        *,
        subject_prefix: str = DEFAULT_SUBJECT_PREFIX,
        connect_timeout: float = 2.0,
        reconnect_time_wait: float = 0.5,
        request_timeout: float = 5.0,
        client_factory: Callable[[], Any] = NATS,
    ) -> None:
        self._servers = list(servers)
        if not self._servers:
            raise ValueError("At least one NATS server must be provided")
        if not subject_prefix or any(char in subject_prefix for char in "*> "):
            raise ValueError(f"Invalid subject prefix: {subject_prefix!r}")
        self._prefix = subject_prefix
        self._connect_timeout = connect_timeout
        self._reconnect_time_wait = reconnect_time_wait
        self._request_timeout = request_timeout
        self._client_factory = client_factory
        self._nc: Any = None
        self._subscription: Any = None
        self._listener: Optional[PushListener] = None
        self._share_token: Optional[str] = None
        self._role = "photowall"

    @property
    def joined(self) -> bool:
        return self._nc is not None

    async def join(self, share_token: str, role: str, listener: PushListener) -> None:
        token = validate_share_token(share_token)
        if self._nc is not None:
            await self.leave()
        self._share_token = token
        self._role = role
        self._listener = listener
        self._nc = self._client_factory()
        await self._nc.connect(
            servers=self._servers,
            connect_timeout=self._connect_timeout,
            max_reconnect_attempts=-1,
            reconnect_time_wait=self._reconnect_time_wait,
            disconnected_cb=self._on_disconnected,
            reconnected_cb=self._on_reconnected,
            closed_cb=self._on_closed,
            error_cb=self._on_error,
        )
        listener.on_connected()
        self._subscription = await self._nc.subscribe(
            events_subject(self._prefix, token), cb=self._on_message
        )
        await self._request_join()

    async def leave(self) -> None:
        nc, self._nc = self._nc, None
        self._listener = None
        self._subscription = None
        if nc is None:
            return
        if nc.is_connected:
            await nc.drain()
        await nc.close()

    # ------------------------------------------------------------------
    # Join handshake
    # ------------------------------------------------------------------
    async def _request_join(self) -> None:
        listener = self._listener
        if self._nc is None or listener is None or self._share_token is None:
            return
        request = cbor2.dumps({"shareToken": self._share_token, "role": self._role})
        try:
            reply = await self._nc.request(
                join_subject(self._prefix, self._share_token),
                request,
                timeout=self._request_timeout,
            )
        except nats_errors.NoRespondersError:
            listener.on_auth_error("No photo wall service is answering join requests")
            return
        except nats_errors.TimeoutError:
            listener.on_auth_error("Join request timed out")
            return
        try:
            answer = cbor2.loads(reply.data)
        except cbor2.CBORDecodeError:
            listener.on_auth_error("Join reply could not be decoded")
            return
        if isinstance(answer, Mapping) and answer.get("status") is True:
            listener.on_authenticated(answer)
        else:
            message = answer.get("message") if isinstance(answer, Mapping) else None
            listener.on_auth_error(str(message or "Join request rejected"))

    # ------------------------------------------------------------------
    # nats-py callbacks
    # ------------------------------------------------------------------
    async def _on_message(self, msg) -> None:
        listener = self._listener
        if listener is None:
            return
        name = msg.subject.rsplit(".", 1)[-1]
        try:
            data = cbor2.loads(msg.data)
        except cbor2.CBORDecodeError:
            LOGGER.warning("dropping undecodable payload on %s", msg.subject)
            return
        listener.on_event(name, data)

    async def _on_disconnected(self) -> None:
        if self._listener is not None:
            self._listener.on_disconnected("disconnected")

    async def _on_reconnected(self) -> None:
        if self._listener is None:
            return
        self._listener.on_connected()
        await self._request_join()

    async def _on_closed(self) -> None:
        if self._listener is not None:
            self._listener.on_disconnected("closed")

    async def _on_error(self, exc: Exception) -> None:
        LOGGER.warning("NATS error: %s", exc)


__all__ = ["DEFAULT_SUBJECT_PREFIX", "NatsPushChannel", "events_subject", "join_subject"]
