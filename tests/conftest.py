"""Pytest configuration shared by the live wall tests."""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Disable auto-loading external pytest plugins; the suite only needs pytest itself.
os.environ.setdefault("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from livewall_kit.models import MediaItem  # noqa: E402
from livewall_kit.scheduler import ManualScheduler  # noqa: E402

BASE_TIME = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)


def make_item(media_id: str, *, minutes: int = 0, is_new: bool = False) -> MediaItem:
    return MediaItem(
        id=media_id,
        image_url=f"https://cdn.example/{media_id}.jpg",
        uploaded_at=BASE_TIME + timedelta(minutes=minutes),
        is_new=is_new,
    )


def make_items(count: int, prefix: str = "m") -> list[MediaItem]:
    return [make_item(f"{prefix}{index}", minutes=index) for index in range(count)]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
