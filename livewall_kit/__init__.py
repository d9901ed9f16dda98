"""Live media synchronisation primitives for the photo wall display."""

from .config import SyncConfig
from .models import (
    DisplayMode,
    InsertionStrategy,
    MediaItem,
    RefreshReason,
    SyncMeta,
    ViewerStats,
    WallSettings,
    WallSnapshot,
)
from .signals import Signal
from .scheduler import LoopScheduler, ManualScheduler, ScheduledCall, Scheduler, TimerSet
from .schema import load_schema, validate_event, validate_snapshot
from .events import (
    EVENT_ALIASES,
    LIFECYCLE_EVENTS,
    MediaQualityUpgraded,
    MediaRemoved,
    MediaUploaded,
    PayloadError,
    StatsUpdated,
    ViewerCountUpdated,
    canonical_event_name,
    normalize_event,
)
from .sequence import MediaSequenceStore
from .stream import CONNECTION, ConnectionState, EventStreamAdapter, PushChannel, validate_share_token
from .snapshot import PhotoWallClient, PullError, SnapshotSource, parse_snapshot
from .reconcile import ReconciliationController
from .playback import PlaybackController, PlaybackState, PlaybackStatus
from .activity import ActivityNotifier, ActivitySnapshot
from .engine import EngineSnapshot, Notification, PhotoWallEngine
from .nats_channel import NatsPushChannel
from .sim import InMemoryPushChannel, InMemorySnapshotSource, InMemoryWallServer

__all__ = [
    "SyncConfig",
    "DisplayMode",
    "InsertionStrategy",
    "MediaItem",
    "RefreshReason",
    "SyncMeta",
    "ViewerStats",
    "WallSettings",
    "WallSnapshot",
    "Signal",
    "LoopScheduler",
    "ManualScheduler",
    "ScheduledCall",
    "Scheduler",
    "TimerSet",
    "load_schema",
    "validate_event",
    "validate_snapshot",
    "EVENT_ALIASES",
    "LIFECYCLE_EVENTS",
    "MediaQualityUpgraded",
    "MediaRemoved",
    "MediaUploaded",
    "PayloadError",
    "StatsUpdated",
    "ViewerCountUpdated",
    "canonical_event_name",
    "normalize_event",
    "MediaSequenceStore",
    "CONNECTION",
    "ConnectionState",
    "EventStreamAdapter",
    "PushChannel",
    "validate_share_token",
    "PhotoWallClient",
    "PullError",
    "SnapshotSource",
    "parse_snapshot",
    "ReconciliationController",
    "PlaybackController",
    "PlaybackState",
    "PlaybackStatus",
    "ActivityNotifier",
    "ActivitySnapshot",
    "EngineSnapshot",
    "Notification",
    "PhotoWallEngine",
    "NatsPushChannel",
    "InMemoryPushChannel",
    "InMemorySnapshotSource",
    "InMemoryWallServer",
]
