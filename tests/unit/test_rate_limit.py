#!/usr/bin/env python3
"""
Unit tests for the GitHub Rate Limit Tracker
"""

import pytest
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from hubtools.rate_limit import RateLimitTracker, parse_retry_after


def github_headers(remaining, limit=5000, resource="core", reset_in=3600):
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Used": str(limit - remaining),
        "X-RateLimit-Reset": str(int(time.time()) + reset_in),
        "X-RateLimit-Resource": resource,
    }


class TestRetryAfterParser:
    def test_seconds(self):
        assert parse_retry_after("30") == 30

    def test_http_date_falls_back(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 60

    def test_none(self):
        assert parse_retry_after(None) == 60

    def test_never_below_one(self):
        assert parse_retry_after("0") == 1


class TestRateLimitTracker:
    """Test rate limit tracking, health states, and auto-recovery."""

    @pytest.fixture
    def tracker(self):
        return RateLimitTracker()

    def test_default_health_is_green(self, tracker):
        """No data = assume healthy."""
        assert tracker.get_health() == "green"
        assert tracker.is_available()

    def test_update_green(self, tracker):
        tracker.update(github_headers(4000))
        assert tracker.get_health() == "green"

    def test_update_yellow(self, tracker):
        """Low remaining → yellow, still available."""
        tracker.update(github_headers(500))
        assert tracker.get_health() == "yellow"
        assert tracker.is_available()

    def test_update_red(self, tracker):
        """Nothing remaining → red."""
        tracker.update(github_headers(0))
        assert tracker.get_health() == "red"
        assert not tracker.is_available()

    def test_headers_without_rate_limit_ignored(self, tracker):
        assert tracker.update({"Content-Type": "application/json"}) is None
        assert tracker.get_stats() == {}

    def test_resources_tracked_separately(self, tracker):
        tracker.update(github_headers(0, limit=30, resource="search"))
        assert tracker.get_health("search") == "red"
        assert tracker.get_health("core") == "green"

    def test_limit_marks_red(self, tracker):
        """403/429 → immediate red."""
        tracker.update_on_limit("core", retry_after=60)
        assert tracker.get_health() == "red"
        assert not tracker.is_available()

    def test_auto_recovery(self, tracker):
        """After reset time passes, RED → YELLOW."""
        tracker.update_on_limit("core", retry_after=1)
        assert tracker.get_health() == "red"

        time.sleep(1.1)
        assert tracker.get_health() == "yellow"
        assert tracker.is_available()

    def test_seconds_until_available(self, tracker):
        tracker.update_on_limit("core", retry_after=120)
        remaining = tracker.seconds_until_available()
        assert 118 <= remaining <= 120

    def test_seconds_until_available_when_healthy(self, tracker):
        assert tracker.seconds_until_available() == 0

    def test_get_stats(self, tracker):
        tracker.update(github_headers(4000))
        tracker.update_on_limit("search", retry_after=300)
        assert tracker.get_stats() == {"core": "green", "search": "red"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
