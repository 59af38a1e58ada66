#!/usr/bin/env python3
"""
hubcache Store
SQLite persistence behind an in-memory read path

Implements:
- get(key) → CacheEntry | None
- put(key, value, ttl_class, negative=False)
- invalidate(key) / invalidate_prefix(prefix)
- sweep(now) → removed count (entries past hard expiry)

Reads never touch SQLite: every entry is loaded into memory at start and
written through on change. If the database cannot be opened or written the
store keeps going in memory only.
"""

import copy
import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import StorageUnavailable
from .freshness import FreshnessPolicy, TtlClass

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser("~/.cache/hubcache/responses.db")
MEMORY = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key TEXT PRIMARY KEY,
    value TEXT,                  -- JSON payload, NULL for negative entries
    stored_at REAL NOT NULL,
    ttl_class TEXT NOT NULL,     -- short, long, permanent
    negative INTEGER DEFAULT 0,
    expires_at REAL              -- hard expiry, NULL = never
);

CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at);
"""


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl_class: TtlClass
    negative: bool = False

    def age(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return now - self.stored_at


class CacheStore:
    """
    Durable mapping from cache key to CacheEntry.

    Design principles:
    - Fast reads: dict lookup, no I/O
    - Callers get copies, never aliases into the store
    - Graceful degradation: storage trouble = memory-only + warning, not error
    """

    def __init__(self, db_path: str = None, policy: FreshnessPolicy = None):
        if db_path is None:
            db_path = DEFAULT_DB_PATH

        self.db_path = db_path
        self.policy = policy or FreshnessPolicy()
        self._mu = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._db: Optional[sqlite3.Connection] = None
        self.degraded = False

        if db_path != MEMORY:
            try:
                self._db = self._open(db_path)
                self._load()
            except StorageUnavailable as e:
                self._degrade(e)

        logger.info(
            f"CacheStore initialized at {db_path} "
            f"({len(self._entries)} entries, {'persistent' if self.persistent else 'memory-only'})"
        )

    @property
    def persistent(self) -> bool:
        return self._db is not None

    # ── Persistence ──

    def _open(self, db_path: str) -> sqlite3.Connection:
        conn = None
        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10.0)
            conn.row_factory = sqlite3.Row
            conn.executescript(SCHEMA)
            conn.commit()
            return conn
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            raise StorageUnavailable(f"cannot open cache database {db_path}: {e}") from e

    def _load(self) -> None:
        try:
            rows = self._db.execute(
                "SELECT cache_key, value, stored_at, ttl_class, negative FROM cache_entries"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"cannot read cache database: {e}") from e

        for row in rows:
            try:
                self._entries[row["cache_key"]] = CacheEntry(
                    key=row["cache_key"],
                    value=json.loads(row["value"]) if row["value"] is not None else None,
                    stored_at=float(row["stored_at"]),
                    ttl_class=TtlClass(row["ttl_class"]),
                    negative=bool(row["negative"]),
                )
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable cache row {row['cache_key']}: {e}")

    def _execute(self, sql: str, params: tuple = ()) -> int:
        try:
            with self._db:
                cursor = self._db.execute(sql, params)
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageUnavailable(f"cache database write failed: {e}") from e

    def _persist(self, sql: str, params: tuple = ()) -> None:
        if self._db is None:
            return
        try:
            self._execute(sql, params)
        except StorageUnavailable as e:
            self._degrade(e)

    def _degrade(self, error: StorageUnavailable) -> None:
        logger.warning(f"{error}; continuing with memory-only cache")
        self.degraded = True
        if self._db is not None:
            try:
                self._db.close()
            except sqlite3.Error:
                pass
        self._db = None

    # ── Public API ──

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._mu:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return replace(entry, value=copy.deepcopy(entry.value))

    def put(self, key: str, value: Any, ttl_class: TtlClass, negative: bool = False) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            value=None if negative else copy.deepcopy(value),
            stored_at=time.time(),
            ttl_class=ttl_class,
            negative=negative,
        )

        payload: Optional[str] = None
        encodable = True
        if not negative:
            try:
                payload = json.dumps(entry.value, separators=(",", ":"))
            except (TypeError, ValueError) as e:
                logger.warning(f"Value for {key} is not JSON-encodable, keeping it in memory only: {e}")
                encodable = False

        with self._mu:
            self._entries[key] = entry
            if encodable:
                self._persist(
                    """
                    INSERT OR REPLACE INTO cache_entries
                    (cache_key, value, stored_at, ttl_class, negative, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        key,
                        payload,
                        entry.stored_at,
                        ttl_class.value,
                        int(negative),
                        self.policy.hard_expires_at(entry),
                    ),
                )
            else:
                self._persist("DELETE FROM cache_entries WHERE cache_key = ?", (key,))

        logger.debug(f"Stored {key} (ttl_class={ttl_class.value}, negative={negative})")
        return replace(entry, value=copy.deepcopy(entry.value))

    def invalidate(self, key: str) -> bool:
        with self._mu:
            removed = self._entries.pop(key, None) is not None
            self._persist("DELETE FROM cache_entries WHERE cache_key = ?", (key,))
        if removed:
            logger.debug(f"Invalidated {key}")
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        with self._mu:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            self._persist(
                "DELETE FROM cache_entries WHERE substr(cache_key, 1, ?) = ?",
                (len(prefix), prefix),
            )
        if doomed:
            logger.info(f"Invalidated {len(doomed)} cache entries with prefix {prefix}")
        return len(doomed)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove entries past their hard expiry. Should be called periodically."""
        now = time.time() if now is None else now
        with self._mu:
            doomed = [key for key, entry in self._entries.items() if self.policy.is_expired(entry, now)]
            for key in doomed:
                del self._entries[key]
                self._persist("DELETE FROM cache_entries WHERE cache_key = ?", (key,))
        if doomed:
            logger.info(f"Swept {len(doomed)} expired cache entries")
        return len(doomed)

    def keys(self) -> List[str]:
        with self._mu:
            return list(self._entries)

    def __len__(self) -> int:
        with self._mu:
            return len(self._entries)

    def close(self) -> None:
        """Close database connection."""
        with self._mu:
            if self._db is not None:
                self._db.close()
                self._db = None
                logger.info("CacheStore closed")
