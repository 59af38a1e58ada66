"""Freshness decisions for cached entries.

TTL classes:
  SHORT      issue / pull request lists, anything that changes often
  LONG       repository metadata, users, labels
  PERMANENT  data that never changes once observed (org membership)

Negative entries ("not found") always use the negative window, which must be
strictly shorter than every bounded class.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .store import CacheEntry


class TtlClass(Enum):
    SHORT = "short"
    LONG = "long"
    PERMANENT = "permanent"


class FreshnessLevel(Enum):
    """Caller tolerance for staleness."""
    CACHED_OK = "cached-ok"
    FRESH = "fresh"
    FORCE_REFRESH = "force-refresh"


@dataclass(frozen=True)
class TtlSettings:
    short_sec: int = 3600
    long_sec: int = 86400
    permanent_sec: Optional[int] = None  # None = never stale
    negative_sec: int = 60
    hard_expiry_multiplier: int = 10

    def __post_init__(self) -> None:
        if self.short_sec is None or self.long_sec is None:
            raise ValueError("short and long TTL classes must be bounded")
        if self.negative_sec <= 0:
            raise ValueError("negative_sec must be positive")
        if self.hard_expiry_multiplier < 1:
            raise ValueError("hard_expiry_multiplier must be at least 1")
        for name in ("short_sec", "long_sec", "permanent_sec"):
            value = getattr(self, name)
            if value is None:
                continue
            if value <= 0:
                raise ValueError(f"{name} must be positive")
            if self.negative_sec >= value:
                raise ValueError(
                    f"negative_sec ({self.negative_sec}) must be shorter than {name} ({value})"
                )

    def duration(self, ttl_class: TtlClass) -> Optional[int]:
        if ttl_class is TtlClass.SHORT:
            return self.short_sec
        if ttl_class is TtlClass.LONG:
            return self.long_sec
        return self.permanent_sec


class FreshnessPolicy:
    """Pure function of entry age, TTL class and requested level."""

    def __init__(self, settings: Optional[TtlSettings] = None) -> None:
        self.settings = settings or TtlSettings()

    def window(self, entry: "CacheEntry") -> Optional[float]:
        """Seconds an entry counts as fresh, None when it never goes stale."""
        if entry.negative:
            return float(self.settings.negative_sec)
        duration = self.settings.duration(entry.ttl_class)
        return None if duration is None else float(duration)

    def hard_expires_at(self, entry: "CacheEntry") -> Optional[float]:
        window = self.window(entry)
        if window is None:
            return None
        return entry.stored_at + window * self.settings.hard_expiry_multiplier

    def is_expired(self, entry: "CacheEntry", now: Optional[float] = None) -> bool:
        expires_at = self.hard_expires_at(entry)
        if expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= expires_at

    def is_fresh(
        self,
        entry: "CacheEntry",
        level: FreshnessLevel,
        now: Optional[float] = None,
    ) -> bool:
        if level is FreshnessLevel.FORCE_REFRESH:
            return False

        now = time.time() if now is None else now

        # Negative entries never get the cached-ok grace period.
        if level is FreshnessLevel.FRESH or entry.negative:
            window = self.window(entry)
            return window is None or entry.age(now) < window

        return not self.is_expired(entry, now)
