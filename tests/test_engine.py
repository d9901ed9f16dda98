"""End-to-end engine behaviour against the in-memory wall backend."""
from __future__ import annotations

import asyncio
import json
import random

import pytest
from conftest import make_items

from livewall_kit.engine import Notification, PhotoWallEngine
from livewall_kit.models import DisplayMode, InsertionStrategy, WallSettings
from livewall_kit.playback import PlaybackStatus
from livewall_kit.scheduler import ManualScheduler
from livewall_kit.sim import InMemoryWallServer
from livewall_kit.snapshot import PullError


def _engine(server: InMemoryWallServer, clock: ManualScheduler, **kwargs) -> PhotoWallEngine:
    return PhotoWallEngine(
        "wall-1",
        channel=server.channel,
        source=server.source,
        scheduler=clock,
        rng=random.Random(3),
        **kwargs,
    )


def _messages(notifications: list[Notification]) -> list[str]:
    return [notification.message for notification in notifications]


def test_attach_loads_snapshot_and_goes_live() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=4000))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            snapshot = engine.snapshot()
            assert [item.id for item in snapshot.items] == ["m0", "m1", "m2"]
            assert snapshot.connected and snapshot.authenticated
            assert snapshot.loading is False
            assert snapshot.session_id == "session-1"
            assert snapshot.status is PlaybackStatus.PLAYING
            assert engine.reconciler.fallback_active is False

            clock.advance(4)
            assert engine.snapshot().current.id == "m1"

    asyncio.run(_exercise())
    assert "Connected to live updates" in _messages(notifications)
    assert "3 photos ready to display" in _messages(notifications)
    assert server.channel.leaves == 1
    assert clock.pending() == 0


def test_upload_event_inserts_with_configured_strategy() -> None:
    clock = ManualScheduler()
    settings = WallSettings(
        new_image_insertion=InsertionStrategy.AFTER_CURRENT,
        show_uploader_names=True,
        auto_advance=False,
    )
    server = InMemoryWallServer(make_items(6), settings=settings)
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            engine.next()
            server.upload("fresh", "https://cdn.example/fresh.jpg", uploader_name="Grace")
            server.upload("anon", "https://cdn.example/anon.jpg")

            snapshot = engine.snapshot()
            ids = [item.id for item in snapshot.items]
            assert ids[4:6] == ["anon", "fresh"]
            assert snapshot.cursor == 1
            fresh = snapshot.items[ids.index("fresh")]
            assert fresh.is_new and fresh.uploader_name == "Grace"
            assert snapshot.items[ids.index("anon")].uploader_name == "Anonymous"
            assert snapshot.stats.total_images == 8
            assert snapshot.activity.uploading is True
            assert snapshot.activity.new_media_count == 2

            clock.advance(10)
            assert not any(item.is_new for item in engine.snapshot().items)
            assert engine.snapshot().activity.uploading is False

    asyncio.run(_exercise())
    assert "New photo from Grace!" in _messages(notifications)
    assert "New photo from someone!" in _messages(notifications)


def test_repeated_upload_only_refreshes_existing_item() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(auto_advance=False))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            server.channel.emit("new_media_uploaded", {"mediaId": "m1", "media": {"url": "https://cdn.example/m1-v2.jpg"}})
            snapshot = engine.snapshot()
            assert [item.id for item in snapshot.items] == ["m0", "m1", "m2"]
            assert snapshot.items[1].image_url == "https://cdn.example/m1-v2.jpg"
            assert snapshot.items[1].is_new is False
            assert snapshot.activity.uploading is False
            assert snapshot.activity.new_media_count == 0

            for _ in range(2):
                server.channel.emit("media-uploaded", {"mediaId": "fresh", "media": {"url": "https://cdn.example/fresh.jpg"}})
            snapshot = engine.snapshot()
            assert [item.id for item in snapshot.items].count("fresh") == 1
            assert len(snapshot.items) == 4
            assert snapshot.activity.new_media_count == 1

    asyncio.run(_exercise())
    assert _messages(notifications).count("New photo from someone!") == 1


def test_uploader_names_hidden_unless_enabled() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(1))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            server.upload("fresh", "https://cdn.example/fresh.jpg", uploader_name="Grace")
            assert engine.store.get("fresh").uploader_name is None

    asyncio.run(_exercise())


def test_immediate_strategy_jumps_to_new_photo() -> None:
    clock = ManualScheduler()
    settings = WallSettings(new_image_insertion=InsertionStrategy.IMMEDIATE, auto_advance=False)
    server = InMemoryWallServer(make_items(5), settings=settings)
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            engine.next()
            engine.next()
            server.upload("x", "https://cdn.example/x.jpg")
            assert engine.snapshot().current.id == "x"

    asyncio.run(_exercise())


def test_quality_upgrade_and_removal_events() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(5), settings=WallSettings(auto_advance=False))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            for _ in range(3):
                engine.next()
            server.upgrade("m1", "https://cdn.example/m1-display.jpg")
            server.remove("m0", "Off topic")
            server.remove("ghost")

            snapshot = engine.snapshot()
            assert [item.id for item in snapshot.items] == ["m1", "m2", "m3", "m4"]
            assert snapshot.items[0].image_url == "https://cdn.example/m1-display.jpg"
            assert snapshot.current.id == "m3"
            assert snapshot.stats.total_images == 4
            assert snapshot.activity.quality_upgraded is True
            assert snapshot.activity.removed_media_count == 2

            clock.advance(3)
            assert engine.snapshot().activity.any_active is False

    asyncio.run(_exercise())
    messages = _messages(notifications)
    assert "Higher quality version ready!" in messages
    assert "Photo removed: Off topic" in messages
    assert "Photo removed: Content moderated" in messages


def test_stats_and_viewer_events_reach_snapshot() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            server.publish_stats(40)
            server.publish_viewers(12)
            stats = engine.snapshot().stats
            assert (stats.total_images, stats.viewer_count) == (40, 12)

    asyncio.run(_exercise())


def test_disconnect_triggers_fallback_pull_at_sixty_seconds() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            server.channel.drop()
            assert engine.snapshot().connected is False
            assert "Disconnected from live updates" in _messages(notifications)

            server.source.items.extend(make_items(2, prefix="offline"))
            clock.advance(59)
            await clock.drain()
            assert server.source.calls == 1

            clock.advance(1)
            await clock.drain()
            assert server.source.calls == 2
            assert len(engine.snapshot().items) == 4
            assert "Added 2 new photos" in _messages(notifications)

            server.channel.restore()
            assert engine.reconciler.fallback_active is False
            clock.advance(300)
            await clock.drain()
            assert server.source.calls == 2

    asyncio.run(_exercise())


def test_auth_rejection_keeps_polling() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    server.channel.reject_auth("Invalid share token")
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            snapshot = engine.snapshot()
            assert snapshot.connected is True
            assert snapshot.authenticated is False
            assert engine.reconciler.fallback_active is True

    asyncio.run(_exercise())


def test_failed_initial_pull_surfaces_error_and_manual_retry_recovers() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    server.source.fail_with = PullError("Photo wall not found - check if share token is valid", status=404)
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            snapshot = engine.snapshot()
            assert snapshot.error == "Photo wall not found - check if share token is valid"
            assert snapshot.items == ()
            assert snapshot.status is PlaybackStatus.STOPPED

            server.source.fail_with = None
            assert await engine.manual_refresh() is True
            snapshot = engine.snapshot()
            assert snapshot.error is None
            assert len(snapshot.items) == 2

    asyncio.run(_exercise())
    assert Notification("error", "Photo wall not found - check if share token is valid") in notifications


def test_ui_operations_drive_playback() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=1000))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            assert engine.toggle_play_pause() is PlaybackStatus.PAUSED
            assert engine.prev() == 2
            assert engine.toggle_grid() is DisplayMode.GRID
            assert engine.snapshot().status is PlaybackStatus.STOPPED
            assert engine.toggle_grid() is DisplayMode.SLIDESHOW
            assert engine.snapshot().status is PlaybackStatus.PLAYING

            engine.set_enabled(False)
            assert engine.snapshot().status is PlaybackStatus.STOPPED
            assert engine.snapshot().settings.is_enabled is False
            engine.set_enabled(True)

            engine.set_display_mode("mosaic")
            assert engine.snapshot().playback.display_mode is DisplayMode.MOSAIC

    asyncio.run(_exercise())


def test_unknown_display_mode_leaves_mode_and_warns() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=1000))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            engine.set_display_mode("carousel")
            snapshot = engine.snapshot()
            assert snapshot.playback.display_mode is DisplayMode.SLIDESHOW
            assert snapshot.status is PlaybackStatus.PLAYING

    asyncio.run(_exercise())
    assert Notification("warning", "Unsupported display mode: carousel") in notifications


def test_apply_settings_resets_mode_and_play_state() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=1000))
    engine = _engine(server, clock)
    notifications: list[Notification] = []
    engine.notifications.connect(notifications.append)

    async def _exercise() -> None:
        async with engine:
            engine.toggle_grid()
            engine.apply_settings(WallSettings(display_mode=DisplayMode.SLIDESHOW, auto_advance=False))
            snapshot = engine.snapshot()
            assert snapshot.playback.display_mode is DisplayMode.SLIDESHOW
            assert snapshot.status is PlaybackStatus.PAUSED

    asyncio.run(_exercise())
    assert Notification("success", "Settings updated successfully") in notifications


def test_pulled_settings_change_does_not_reset_mode() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=1000))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            engine.toggle_grid()
            server.source.settings = WallSettings(transition_duration_ms=8000, show_uploader_names=True)
            clock.advance(10)
            assert await engine.manual_refresh() is True
            snapshot = engine.snapshot()
            assert snapshot.playback.display_mode is DisplayMode.GRID
            assert snapshot.playback.transition_duration_ms == 8000
            assert snapshot.settings.show_uploader_names is True

    asyncio.run(_exercise())


def test_detach_is_idempotent_and_stops_everything() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(3), settings=WallSettings(transition_duration_ms=1000))
    engine = _engine(server, clock)
    changes: list[object] = []

    async def _exercise() -> None:
        await engine.attach()
        server.upload("fresh", "https://cdn.example/fresh.jpg")
        server.channel.drop()
        await engine.detach()
        await engine.detach()

        engine.changed.connect(changes.append)
        server.channel.emit("media-uploaded", {"mediaId": "late", "media": {"url": "late.jpg"}})
        engine.next()
        clock.advance(600)
        await clock.drain()
        assert await engine.manual_refresh() is False

    asyncio.run(_exercise())
    assert clock.pending() == 0
    assert server.channel.leaves == 1
    assert server.source.calls == 1
    assert "late" not in engine.store
    assert changes == []


def test_attach_after_detach_requires_reattach() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            pass
        with pytest.raises(RuntimeError):
            await engine.attach()

        server.source.items = make_items(4, prefix="other")
        assert await engine.reattach("wall-2") is True
        assert engine.share_token == "wall-2"
        assert len(engine.snapshot().items) == 4
        await engine.detach()

    asyncio.run(_exercise())
    assert [join[0] for join in server.channel.joins] == ["wall-1", "wall-2"]
    assert server.source.requests[-1]["shareToken"] == "wall-2"


def test_failing_changed_subscriber_is_contained_by_adapter() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            def _explode(snapshot) -> None:
                raise RuntimeError("render failed")

            engine.changed.connect(_explode)
            server.upload("fresh", "https://cdn.example/fresh.jpg")
            engine.changed.disconnect(_explode)
            server.upload("second", "https://cdn.example/second.jpg")
            assert "second" in engine.store

    asyncio.run(_exercise())


def test_snapshot_serialises_to_json() -> None:
    clock = ManualScheduler()
    server = InMemoryWallServer(make_items(2))
    engine = _engine(server, clock)

    async def _exercise() -> None:
        async with engine:
            payload = json.loads(engine.snapshot().to_json())
            assert payload["shareToken"] == "wall-1"
            assert [item["id"] for item in payload["items"]] == ["m0", "m1"]
            assert payload["playback"]["status"] == "playing"
            assert payload["settings"]["displayMode"] == "slideshow"
            assert payload["connected"] is True

    asyncio.run(_exercise())


def test_invalid_share_token_is_rejected() -> None:
    server = InMemoryWallServer()
    with pytest.raises(ValueError):
        PhotoWallEngine("bad.token", channel=server.channel, source=server.source, scheduler=ManualScheduler())
