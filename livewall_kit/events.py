"""Normalisation of raw push payloads into typed lifecycle events.

Transports deliver loosely shaped mappings under several historical event
names.  :func:`normalize_event` is the single place where those payloads are
checked against ``livewall.schema.json`` and turned into the frozen dataclasses
below; everything downstream works with the typed shapes only.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from jsonschema import exceptions as jsonschema_exceptions

from .models import parse_timestamp
from .schema import validate_event

MEDIA_UPLOADED = "media-uploaded"
MEDIA_QUALITY_UPGRADED = "media-quality-upgraded"
MEDIA_REMOVED = "media-removed"
STATS_UPDATED = "stats-updated"
VIEWER_COUNT_UPDATED = "viewer-count-updated"

LIFECYCLE_EVENTS = (
    MEDIA_UPLOADED,
    MEDIA_QUALITY_UPGRADED,
    MEDIA_REMOVED,
    STATS_UPDATED,
    VIEWER_COUNT_UPDATED,
)

EVENT_ALIASES: Dict[str, str] = {
    MEDIA_UPLOADED: MEDIA_UPLOADED,
    "new_media_uploaded": MEDIA_UPLOADED,
    MEDIA_QUALITY_UPGRADED: MEDIA_QUALITY_UPGRADED,
    "media_processing_complete": MEDIA_QUALITY_UPGRADED,
    MEDIA_REMOVED: MEDIA_REMOVED,
    "media_removed": MEDIA_REMOVED,
    "guest_media_removed": MEDIA_REMOVED,
    STATS_UPDATED: STATS_UPDATED,
    "event_stats_update": STATS_UPDATED,
    VIEWER_COUNT_UPDATED: VIEWER_COUNT_UPDATED,
    "room_user_counts": VIEWER_COUNT_UPDATED,
}

DEFAULT_REMOVAL_REASON = "Content moderated"


class PayloadError(ValueError):
    """Raised when a push payload does not match its event's shape."""

    def __init__(self, event: str, message: str) -> None:
        super().__init__(f"{event}: {message}")
        self.event = event


@dataclass(slots=True, frozen=True)
class MediaUploaded:
    media_id: str
    url: Optional[str]
    thumbnail_url: Optional[str]
    uploader_name: Optional[str]
    uploaded_at: datetime

    @property
    def image_url(self) -> str:
        return self.url or self.thumbnail_url or ""


@dataclass(slots=True, frozen=True)
class MediaQualityUpgraded:
    media_id: str
    display_url: Optional[str]
    full_url: Optional[str]

    @property
    def best_url(self) -> Optional[str]:
        return self.display_url or self.full_url or None


@dataclass(slots=True, frozen=True)
class MediaRemoved:
    media_id: str
    reason: str = DEFAULT_REMOVAL_REASON


@dataclass(slots=True, frozen=True)
class StatsUpdated:
    # None keeps the previously known total
    total_media: Optional[int]


@dataclass(slots=True, frozen=True)
class ViewerCountUpdated:
    viewer_count: int


LifecycleEvent = Union[
    MediaUploaded, MediaQualityUpgraded, MediaRemoved, StatsUpdated, ViewerCountUpdated
]


def canonical_event_name(name: str) -> Optional[str]:
    """Map a transport event name onto its canonical lifecycle name."""

    return EVENT_ALIASES.get(str(name).strip())


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_event(name: str, data: Any) -> LifecycleEvent:
    """Validate *data* for event *name* and return the typed payload.

    *name* may be any alias listed in :data:`EVENT_ALIASES`.  A
    :class:`PayloadError` is raised for unknown names, missing data or payloads
    that fail schema validation.
    """

    canonical = canonical_event_name(name)
    if canonical is None:
        raise PayloadError(str(name), "unknown event name")
    if not isinstance(data, Mapping):
        raise PayloadError(canonical, "event data is missing or not a mapping")
    try:
        validate_event(canonical, dict(data))
    except jsonschema_exceptions.ValidationError as exc:
        raise PayloadError(canonical, exc.message) from exc

    if canonical == MEDIA_UPLOADED:
        media = _section(data, "media")
        try:
            uploaded_at = parse_timestamp(data.get("uploadedAt"))
        except (TypeError, ValueError) as exc:
            raise PayloadError(canonical, str(exc)) from exc
        return MediaUploaded(
            media_id=data["mediaId"],
            url=_text(media.get("url")),
            thumbnail_url=_text(media.get("thumbnailUrl")),
            uploader_name=_text(_section(data, "uploadedBy").get("name")),
            uploaded_at=uploaded_at,
        )
    if canonical == MEDIA_QUALITY_UPGRADED:
        variants = _section(data, "variants")
        return MediaQualityUpgraded(
            media_id=data["mediaId"],
            display_url=_text(variants.get("display")),
            full_url=_text(variants.get("full")),
        )
    if canonical == MEDIA_REMOVED:
        reason = _text(_section(data, "guestContext").get("reasonDisplay"))
        return MediaRemoved(media_id=data["mediaId"], reason=reason or DEFAULT_REMOVAL_REASON)
    if canonical == STATS_UPDATED:
        stats = _section(data, "stats")
        total = stats.get("approved") or stats.get("totalMedia") or None
        return StatsUpdated(total_media=total)
    return ViewerCountUpdated(viewer_count=data.get("guestCount") or data.get("total") or 0)


__all__ = [
    "DEFAULT_REMOVAL_REASON",
    "EVENT_ALIASES",
    "LIFECYCLE_EVENTS",
    "LifecycleEvent",
    "MEDIA_QUALITY_UPGRADED",
    "MEDIA_REMOVED",
    "MEDIA_UPLOADED",
    "MediaQualityUpgraded",
    "MediaRemoved",
    "MediaUploaded",
    "PayloadError",
    "STATS_UPDATED",
    "StatsUpdated",
    "VIEWER_COUNT_UPDATED",
    "ViewerCountUpdated",
    "canonical_event_name",
    "normalize_event",
]
