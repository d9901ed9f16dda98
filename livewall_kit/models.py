"""Data model shared by the live wall engine components."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class DisplayMode(str, Enum):
    """Presentation modes supported by the photo wall."""

    SLIDESHOW = "slideshow"
    GRID = "grid"
    MOSAIC = "mosaic"

    @classmethod
    def coerce(cls, value: "DisplayMode | str") -> "DisplayMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown display mode: {value!r}") from exc


class InsertionStrategy(str, Enum):
    """Placement policies for media pushed while the wall is running."""

    IMMEDIATE = "immediate"
    AFTER_CURRENT = "after_current"
    END_OF_QUEUE = "end_of_queue"
    SMART_PRIORITY = "smart_priority"

    @classmethod
    def coerce(cls, value: "InsertionStrategy | str | None") -> "InsertionStrategy":
        """Return the matching strategy, defaulting to ``END_OF_QUEUE``."""

        if isinstance(value, cls):
            return value
        if value is None:
            return cls.END_OF_QUEUE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.END_OF_QUEUE


class RefreshReason(str, Enum):
    """Why a full snapshot pull was requested."""

    INITIAL = "initial"
    MANUAL = "manual"
    PERIODIC_FALLBACK = "periodic_fallback"


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_timestamp(value: datetime | str | float | int | None) -> datetime:
    """Parse ISO-8601 strings, epoch seconds or datetimes into UTC datetimes.

    ``None`` and empty strings resolve to the current time.
    """

    if value is None:
        return datetime.now(tz=UTC)
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise TypeError("Unsupported timestamp type; expected datetime, str, or float")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return datetime.now(tz=UTC)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid ISO timestamp: {value!r}") from exc
        return ensure_utc(parsed)
    raise TypeError("Unsupported timestamp type; expected datetime, str, or float")


def isoformat(dt: datetime) -> str:
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class MediaItem:
    """One displayable photo.

    ``image_url`` is upgraded in place when a better rendition arrives.
    ``is_new`` is a transient display hint and takes no part in equality.
    """

    id: str
    image_url: str
    uploaded_at: datetime
    uploader_name: Optional[str] = None
    is_new: bool = field(default=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "imageUrl": self.image_url,
            "uploaderName": self.uploader_name,
            "uploadedAt": isoformat(self.uploaded_at),
            "isNew": self.is_new,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaItem":
        uploaded = data.get("uploadedAt") or data.get("timestamp")
        uploader = data.get("uploaderName")
        return cls(
            id=str(data["id"]),
            image_url=str(data.get("imageUrl") or ""),
            uploaded_at=parse_timestamp(uploaded),
            uploader_name=str(uploader) if uploader else None,
            is_new=bool(data.get("isNew", False)),
        )


@dataclass(slots=True)
class WallSettings:
    """Display settings delivered with every snapshot pull."""

    display_mode: DisplayMode = DisplayMode.SLIDESHOW
    auto_advance: bool = True
    transition_duration_ms: int = 0
    is_enabled: bool = True
    show_uploader_names: bool = False
    new_image_insertion: InsertionStrategy = InsertionStrategy.END_OF_QUEUE

    @property
    def transition_seconds(self) -> float:
        return max(0, self.transition_duration_ms) / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayMode": self.display_mode.value,
            "autoAdvance": self.auto_advance,
            "transitionDuration": self.transition_duration_ms,
            "isEnabled": self.is_enabled,
            "showUploaderNames": self.show_uploader_names,
            "newImageInsertion": self.new_image_insertion.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WallSettings":
        duration = data.get("transitionDuration") or 0
        return cls(
            display_mode=DisplayMode.coerce(data.get("displayMode", DisplayMode.SLIDESHOW)),
            auto_advance=bool(data.get("autoAdvance", True)),
            transition_duration_ms=max(0, int(duration)),
            is_enabled=bool(data.get("isEnabled", True)),
            show_uploader_names=bool(data.get("showUploaderNames", False)),
            new_image_insertion=InsertionStrategy.coerce(data.get("newImageInsertion")),
        )


@dataclass(slots=True)
class SyncMeta:
    """Bookkeeping for the snapshot pull throttle and in-flight guard."""

    last_pull_at: Optional[float] = None
    pull_in_flight: bool = False
    initial_load_complete: bool = False


@dataclass(slots=True)
class ViewerStats:
    """Display-only counters; never drive sequence mutation."""

    total_images: int = 0
    viewer_count: int = 0
    # Unix epoch seconds.
    last_updated: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalImages": self.total_images,
            "viewerCount": self.viewer_count,
            "lastUpdated": self.last_updated,
        }


@dataclass(slots=True)
class WallSnapshot:
    """Result of a successful full pull."""

    items: List[MediaItem]
    settings: WallSettings
    session_id: Optional[str] = None


__all__ = [
    "DisplayMode",
    "InsertionStrategy",
    "MediaItem",
    "RefreshReason",
    "SyncMeta",
    "ViewerStats",
    "WallSettings",
    "WallSnapshot",
    "ensure_utc",
    "isoformat",
    "parse_timestamp",
]
