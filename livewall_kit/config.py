"""Shared configuration values for the live wall engine."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SyncConfig:
    """Runtime tunables for synchronisation, playback and activity timers.

    Delays are expressed in seconds.  The insertion offsets are the empirical
    values used by the photo wall display; they are kept configurable rather
    than derived.
    """

    throttle_interval: float = 5.0
    fallback_interval: float = 60.0
    new_flag_ttl: float = 10.0
    upload_flag_ttl: float = 3.0
    removal_flag_ttl: float = 3.0
    upgrade_flag_ttl: float = 2.0
    after_current_offset: int = 3
    smart_priority_min_offset: int = 1
    smart_priority_max_offset: int = 5
    pull_quality: str = "large"
    pull_max_items: int = 100
    request_timeout: float = 15.0
    role: str = "photowall"

    def __post_init__(self) -> None:
        for name in (
            "throttle_interval",
            "new_flag_ttl",
            "upload_flag_ttl",
            "removal_flag_ttl",
            "upgrade_flag_ttl",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.fallback_interval <= 0:
            raise ValueError("fallback_interval must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.after_current_offset < 0:
            raise ValueError("after_current_offset must be non-negative")
        if self.smart_priority_min_offset < 0:
            raise ValueError("smart_priority_min_offset must be non-negative")
        if self.smart_priority_min_offset > self.smart_priority_max_offset:
            raise ValueError("smart_priority_min_offset may not exceed smart_priority_max_offset")
        if self.pull_max_items < 1:
            raise ValueError("pull_max_items must be at least 1")
        if not self.role or not self.role.strip():
            raise ValueError("role must be a non-empty string")


__all__ = ["SyncConfig"]
