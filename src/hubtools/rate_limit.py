#!/usr/bin/env python3
"""
Rate Limit Tracker for the GitHub API budget

Reads x-ratelimit-* headers from responses we already get. No polling.
The client consults it before every request and fails fast while the
budget is exhausted, so a refresh turns into a stale serve instead of a
wasted call.

Health states:
  GREEN  (>20% remaining)   use normally
  YELLOW (1-20% remaining)  still usable, logged
  RED    (0 remaining / 403 / 429) no requests until reset
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def _now_epoch() -> int:
    return int(time.time())


def _parse_int(raw, default: int = -1) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return default


def parse_retry_after(raw, default: int = 60) -> int:
    """Retry-After is either delta-seconds or an HTTP date; we only trust seconds."""
    value = _parse_int(raw, default)
    return max(value, 1)


class RateLimitTracker:
    """
    Per-resource view of the GitHub rate limit ("core", "search", "graphql").

    In-memory only; the numbers are rebuilt from the next response anyway.
    """

    def __init__(self) -> None:
        self._resources: Dict[str, dict] = {}
        self._lock = threading.Lock()

    # ── Parse headers ──

    def parse_headers(self, headers: Mapping[str, str]) -> dict:
        """Normalize GitHub rate limit headers."""
        lowered = {str(k).lower(): v for k, v in headers.items()}
        if "x-ratelimit-limit" not in lowered:
            return {"health": "unknown"}

        limit = _parse_int(lowered.get("x-ratelimit-limit"))
        remaining = _parse_int(lowered.get("x-ratelimit-remaining"))
        reset_at = _parse_int(lowered.get("x-ratelimit-reset"), _now_epoch() + 60)

        pct = (remaining / limit * 100) if limit > 0 else 100
        if remaining == 0:
            health = "red"
        elif pct > 20:
            health = "green"
        else:
            health = "yellow"

        return {
            "resource": lowered.get("x-ratelimit-resource", "core"),
            "limit": limit,
            "remaining": remaining,
            "used": _parse_int(lowered.get("x-ratelimit-used"), max(limit - remaining, 0)),
            "remaining_pct": round(pct, 1),
            "reset_at": reset_at,
            "health": health,
            "updated_at": _now_epoch(),
        }

    # ── Update from API response ──

    def update(self, headers: Mapping[str, str]) -> Optional[dict]:
        """Called after every API response."""
        parsed = self.parse_headers(headers)
        if parsed.get("health") == "unknown":
            return None

        with self._lock:
            self._resources[parsed["resource"]] = parsed

        if parsed["health"] == "yellow":
            logger.info(
                "GitHub rate limit %s low: %d/%d remaining",
                parsed["resource"], parsed["remaining"], parsed["limit"],
            )
        elif parsed["health"] == "red":
            logger.warning(
                "GitHub rate limit %s exhausted, resets at %s",
                parsed["resource"], _format_epoch(parsed["reset_at"]),
            )
        return parsed

    def update_on_limit(self, resource: str = "core", retry_after: int = 60) -> None:
        """Called on 403/429 rate-limit responses. Marks the resource RED."""
        reset_at = _now_epoch() + retry_after
        with self._lock:
            previous = self._resources.get(resource, {})
            self._resources[resource] = {
                "resource": resource,
                "limit": previous.get("limit", 0),
                "remaining": 0,
                "used": previous.get("limit", 0),
                "remaining_pct": 0,
                "reset_at": max(reset_at, previous.get("reset_at", 0)),
                "health": "red",
                "updated_at": _now_epoch(),
            }

        logger.warning(
            "RATE LIMITED: %s is RED for %ds (resets at %s)",
            resource, retry_after, _format_epoch(reset_at),
        )

    # ── Query health ──

    def get_health(self, resource: str = "core") -> str:
        """Current health. RED becomes YELLOW once the reset time has passed."""
        with self._lock:
            info = self._resources.get(resource)
            if not info:
                return "green"  # no data = assume healthy

            if info["health"] == "red" and _now_epoch() >= info["reset_at"]:
                info["health"] = "yellow"
                info["updated_at"] = _now_epoch()
                logger.info("Rate limit %s reset: RED → YELLOW", resource)

            return info["health"]

    def is_available(self, resource: str = "core") -> bool:
        return self.get_health(resource) in ("green", "yellow")

    def seconds_until_available(self, resource: str = "core") -> int:
        if self.is_available(resource):
            return 0
        with self._lock:
            reset_at = self._resources[resource]["reset_at"]
        return max(reset_at - _now_epoch(), 0)

    def get_stats(self) -> dict:
        with self._lock:
            resources = list(self._resources)
        return {resource: self.get_health(resource) for resource in resources}


def _format_epoch(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()
