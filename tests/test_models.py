"""Data model parsing and configuration validation."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from livewall_kit.config import SyncConfig
from livewall_kit.models import (
    DisplayMode,
    InsertionStrategy,
    MediaItem,
    WallSettings,
    parse_timestamp,
)
from livewall_kit.signals import Signal


def test_parse_timestamp_accepts_iso_epoch_and_naive() -> None:
    expected = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)

    assert parse_timestamp("2024-06-01T18:00:00Z") == expected
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp(datetime(2024, 6, 1, 18, 0)) == expected
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_media_item_falls_back_to_timestamp_field() -> None:
    item = MediaItem.from_dict({"id": "a", "imageUrl": "a.jpg", "timestamp": "2024-06-01T18:00:00Z"})

    assert item.uploaded_at.year == 2024
    assert item.uploader_name is None
    assert item.to_dict()["uploadedAt"] == "2024-06-01T18:00:00Z"


def test_is_new_does_not_affect_equality() -> None:
    stamp = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert MediaItem("a", "a.jpg", stamp, is_new=True) == MediaItem("a", "a.jpg", stamp)


def test_wall_settings_defaults_and_coercion() -> None:
    settings = WallSettings.from_dict({"displayMode": "mosaic", "transitionDuration": None})

    assert settings.display_mode is DisplayMode.MOSAIC
    assert settings.auto_advance is True
    assert settings.transition_duration_ms == 0
    assert settings.new_image_insertion is InsertionStrategy.END_OF_QUEUE
    assert WallSettings.from_dict(settings.to_dict()) == settings


def test_unknown_display_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        DisplayMode.coerce("carousel")


@pytest.mark.parametrize(
    "overrides",
    [
        {"throttle_interval": -1},
        {"fallback_interval": 0},
        {"smart_priority_min_offset": 6},
        {"pull_max_items": 0},
        {"role": " "},
    ],
)
def test_sync_config_rejects_invalid_values(overrides: dict) -> None:
    with pytest.raises(ValueError):
        SyncConfig(**overrides)


def test_signal_connect_is_idempotent() -> None:
    signal: Signal[int] = Signal()
    received: list[int] = []

    signal.connect(received.append)
    signal.connect(received.append)
    signal.emit(1)
    signal.disconnect(received.append)
    signal.disconnect(received.append)
    signal.emit(2)

    assert received == [1]
