#!/usr/bin/env python3
"""
Unit tests for the hubcache Store
get / put / invalidate / sweep, persistence and memory-only fallback
"""

import pytest
import sqlite3
import time
import tempfile
import os
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from hubcache.freshness import FreshnessPolicy, TtlClass, TtlSettings
from hubcache.store import CacheStore, MEMORY


class TestCacheStore:
    """Test SQLite-backed store CRUD operations."""

    @pytest.fixture
    def db_path(self):
        with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
            path = f.name
        yield path
        try:
            os.unlink(path)
        except OSError:
            pass

    @pytest.fixture
    def store(self, db_path):
        store = CacheStore(db_path)
        yield store
        store.close()

    def test_write_and_read(self, store):
        """Test: write entry, read it back."""
        value = {"full_name": "octo/hello", "fork": False}

        store.put("repo:octo/hello:repository?@", value, TtlClass.LONG)

        entry = store.get("repo:octo/hello:repository?@")
        assert entry is not None
        assert entry.value == value
        assert entry.ttl_class is TtlClass.LONG
        assert entry.negative is False
        assert entry.age() >= 0

    def test_missing_key(self, store):
        assert store.get("nope") is None

    def test_put_overwrites(self, store):
        store.put("k", {"v": 1}, TtlClass.SHORT)
        store.put("k", {"v": 2}, TtlClass.SHORT)
        assert store.get("k").value == {"v": 2}
        assert len(store) == 1

    def test_negative_entry(self, store):
        store.put("k", {"ignored": True}, TtlClass.SHORT, negative=True)
        entry = store.get("k")
        assert entry.negative is True
        assert entry.value is None

    def test_callers_get_copies(self, store):
        """Test: mutating a value never reaches back into the store."""
        value = {"labels": ["bug"]}
        store.put("k", value, TtlClass.SHORT)
        value["labels"].append("mutated-after-put")

        entry = store.get("k")
        entry.value["labels"].append("mutated-after-get")

        assert store.get("k").value == {"labels": ["bug"]}

    def test_invalidate(self, store):
        store.put("k", 1, TtlClass.SHORT)
        assert store.invalidate("k") is True
        assert store.get("k") is None
        assert store.invalidate("k") is False

    def test_invalidate_prefix(self, store):
        """Test: prefix invalidation removes only matching keys."""
        store.put("repo:octo/hello:repository?@", {"a": 1}, TtlClass.LONG)
        store.put("repo:octo/hello:issues?state=open@", [], TtlClass.SHORT)
        store.put("repo:octo/other:repository?@", {"c": 3}, TtlClass.LONG)

        cleared = store.invalidate_prefix("repo:octo/hello")
        assert cleared == 2

        assert store.get("repo:octo/hello:repository?@") is None
        assert store.get("repo:octo/hello:issues?state=open@") is None
        assert store.get("repo:octo/other:repository?@") is not None

    def test_sweep_removes_hard_expired(self, store, monkeypatch):
        """Test: sweep() removes entries past hard expiry only."""
        now = time.time()
        store.put("short", 1, TtlClass.SHORT)
        store.put("long", 2, TtlClass.LONG)
        store.put("forever", 3, TtlClass.PERMANENT)

        # short hard expiry = 3600 * 10
        removed = store.sweep(now + 3600 * 10 + 1)
        assert removed == 1
        assert store.get("short") is None
        assert store.get("long") is not None
        assert store.get("forever") is not None

    def test_sweep_never_removes_permanent(self, store):
        store.put("forever", 3, TtlClass.PERMANENT)
        assert store.sweep(time.time() + 10 ** 9) == 0

    def test_sweep_negative_uses_negative_window(self, store):
        store.put("gone", None, TtlClass.LONG, negative=True)
        # negative hard expiry = 60 * 10
        assert store.sweep(time.time() + 601) == 1

    def test_entries_survive_restart(self, db_path):
        """Test: persisted entries are loaded by a new store."""
        first = CacheStore(db_path)
        first.put("k", {"v": [1, 2]}, TtlClass.LONG)
        first.put("missing", None, TtlClass.SHORT, negative=True)
        stored_at = first.get("k").stored_at
        first.close()

        second = CacheStore(db_path)
        try:
            entry = second.get("k")
            assert entry.value == {"v": [1, 2]}
            assert entry.stored_at == stored_at
            assert second.get("missing").negative is True
        finally:
            second.close()

    def test_invalidation_persisted(self, db_path):
        first = CacheStore(db_path)
        first.put("repo:a/b:repository?@", 1, TtlClass.LONG)
        first.put("repo:a/c:repository?@", 2, TtlClass.LONG)
        first.invalidate_prefix("repo:a/b")
        first.close()

        second = CacheStore(db_path)
        try:
            assert second.keys() == ["repo:a/c:repository?@"]
        finally:
            second.close()

    def test_unencodable_value_kept_in_memory(self, db_path):
        store = CacheStore(db_path)
        store.put("k", {"when": object()}, TtlClass.SHORT)
        assert store.get("k") is not None
        store.close()

        reopened = CacheStore(db_path)
        try:
            assert reopened.get("k") is None
        finally:
            reopened.close()


class TestStorageFallback:
    """Test degradation to memory-only when SQLite is unusable."""

    def test_memory_store(self):
        store = CacheStore(MEMORY)
        store.put("k", 1, TtlClass.SHORT)
        assert store.get("k").value == 1
        assert store.persistent is False
        assert store.degraded is False

    def test_corrupt_database_degrades(self, tmp_path):
        """Test: a corrupt file is reported, not raised."""
        db = tmp_path / "corrupt.db"
        db.write_bytes(b"this is definitely not a sqlite database" * 100)

        store = CacheStore(str(db))

        assert store.degraded is True
        assert store.persistent is False
        store.put("k", {"still": "works"}, TtlClass.SHORT)
        assert store.get("k").value == {"still": "works"}

    def test_unopenable_path_degrades(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        store = CacheStore(str(blocker / "nested" / "cache.db"))

        assert store.degraded is True
        store.put("k", 1, TtlClass.SHORT)
        assert store.get("k").value == 1

    def test_write_failure_degrades(self, tmp_path):
        store = CacheStore(str(tmp_path / "cache.db"))
        store.put("before", 1, TtlClass.SHORT)

        # Break the connection under the store
        store._db.close()

        store.put("after", 2, TtlClass.SHORT)
        assert store.degraded is True
        assert store.get("before").value == 1
        assert store.get("after").value == 2

    def test_custom_policy_drives_sweep(self):
        policy = FreshnessPolicy(TtlSettings(short_sec=10, long_sec=20, negative_sec=5, hard_expiry_multiplier=2))
        store = CacheStore(MEMORY, policy)
        store.put("short", 1, TtlClass.SHORT)
        assert store.sweep(time.time() + 21) == 1


if __name__ == "__main__":
    # Run tests
    pytest.main([__file__, "-v"])
