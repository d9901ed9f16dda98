#!/usr/bin/env python3
"""Photo wall synchronisation monitor entry point."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from typing import Callable, Optional

from livewall_kit import (
    EngineSnapshot,
    NatsPushChannel,
    Notification,
    PhotoWallClient,
    PhotoWallEngine,
    SyncConfig,
)

LOGGER = logging.getLogger("livewall.monitor")


def format_status(snapshot: EngineSnapshot) -> str:
    current = snapshot.current
    link = "live" if snapshot.connected and snapshot.authenticated else (
        "connecting" if snapshot.connected else "offline"
    )
    parts = [
        f"items={len(snapshot.items)}",
        f"cursor={snapshot.cursor}",
        f"current={current.id if current else '-'}",
        f"mode={snapshot.playback.display_mode.value}",
        f"status={snapshot.status.value}",
        f"viewers={snapshot.stats.viewer_count}",
        f"link={link}",
    ]
    if snapshot.error:
        parts.append(f"error={snapshot.error!r}")
    return " ".join(parts)


async def run_monitor(
    engine: PhotoWallEngine,
    *,
    interval: float = 5.0,
    duration: Optional[float] = None,
    json_output: bool = False,
    stop_event: Optional[asyncio.Event] = None,
    out: Optional[Callable[[str], None]] = None,
) -> int:
    """Attach *engine*, report its state every *interval* and always detach."""

    emit = out or print
    stop_event = stop_event or asyncio.Event()

    def _on_notification(notification: Notification) -> None:
        LOGGER.info("[%s] %s", notification.level, notification.message)

    engine.notifications.connect(_on_notification)
    loop = asyncio.get_running_loop()
    deadline = None if duration is None else loop.time() + duration
    async with engine:
        while not stop_event.is_set():
            snapshot = engine.snapshot()
            emit(snapshot.to_json() if json_output else format_status(snapshot))
            timeout = interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    LOGGER.info("monitor duration elapsed")
                    break
                timeout = min(interval, remaining)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    return 0 if engine.reconciler.meta.initial_load_complete else 1


async def _main_async(args: argparse.Namespace) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _stop() -> None:
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:  # pragma: no cover - platform specific
            signal.signal(sig, lambda *_: _stop())

    config = SyncConfig(request_timeout=args.request_timeout)
    channel = NatsPushChannel([args.nats_server], subject_prefix=args.subject_prefix)
    async with PhotoWallClient(args.api_base_url, timeout=config.request_timeout) as client:
        engine = PhotoWallEngine(args.share_token, channel=channel, source=client, config=config)
        return await run_monitor(
            engine,
            interval=args.interval,
            duration=args.duration,
            json_output=args.json,
            stop_event=stop_event,
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Photo wall live synchronisation monitor")
    parser.add_argument("--share-token", required=True, help="Share token of the wall to follow")
    parser.add_argument("--nats-server", default="nats://127.0.0.1:4222", help="NATS server URL")
    parser.add_argument("--api-base-url", default="http://127.0.0.1:3000/api", help="Photo wall API base URL")
    parser.add_argument("--subject-prefix", default="photowall", help="Subject prefix for push events")
    parser.add_argument("--interval", type=float, default=5.0, help="Status report interval in seconds")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--request-timeout", type=float, default=15.0, help="Snapshot request timeout")
    parser.add_argument("--json", action="store_true", help="Emit JSON snapshots to stdout")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)
    if args.interval <= 0:
        parser.error("--interval must be positive")
    return args


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return asyncio.run(_main_async(args))
    except KeyboardInterrupt:  # pragma: no cover - handled for operator convenience
        LOGGER.info("Interrupted by user")
        return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
