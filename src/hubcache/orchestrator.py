#!/usr/bin/env python3
"""
hubcache Orchestrator
The single entry point between actions and the network.

request(logical_request, level):
  1. key = KeyCodec.encode(request)
  2. entry = Store.get(key)
  3. offline → serve entry (possibly stale) or UNAVAILABLE, never fetch
  4. fresh enough → HIT
  5. refresh already in flight for key → wait for it, reuse its result;
     a refresh invalidated since it started is waited out, not reused
  6. otherwise fetch; success / not-found are stored, transient failures
     fall back to the stale entry, everything else propagates
  7. return CacheResult

At most one fetch per key is in flight at any time. The fetch itself runs
outside the lock; store writes and in-flight bookkeeping happen together
under it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .errors import HubCacheError, NotFoundError, TransientError, UnavailableError, UnexpectedError
from .fetcher import Fetcher
from .freshness import FreshnessLevel, FreshnessPolicy
from .keys import KeyCodec, LogicalRequest
from .observability import CacheDecisionRecord
from .offline import OfflineGate
from .store import CacheEntry, CacheStore

logger = logging.getLogger(__name__)


class Outcome(Enum):
    HIT = "hit"                  # served from the store, fresh enough
    FETCHED = "fetched"          # fetched from the network just now
    OFFLINE = "offline"          # served from the store while offline, maybe stale
    STALE = "stale"              # fetch failed transiently, stale entry served
    UNAVAILABLE = "unavailable"  # offline and nothing stored


@dataclass(frozen=True)
class CacheResult:
    key: str
    outcome: Outcome
    value: Any = None
    not_found: bool = False
    stored_at: Optional[float] = None
    error: Optional[HubCacheError] = None

    @property
    def stale(self) -> bool:
        return self.outcome in (Outcome.OFFLINE, Outcome.STALE)

    @property
    def available(self) -> bool:
        return self.outcome is not Outcome.UNAVAILABLE and not self.not_found

    def unwrap(self) -> Any:
        """Return the value, raising for not-found and unavailable results."""
        if self.outcome is Outcome.UNAVAILABLE:
            raise UnavailableError(f"offline and nothing cached for {self.key}")
        if self.not_found:
            raise NotFoundError(f"not found: {self.key}")
        return self.value


@dataclass
class _Refresh:
    future: Future
    invalidated: bool = False


def _from_entry(entry: CacheEntry, outcome: Outcome, error: Optional[HubCacheError] = None) -> CacheResult:
    return CacheResult(
        key=entry.key,
        outcome=outcome,
        value=entry.value,
        not_found=entry.negative,
        stored_at=entry.stored_at,
        error=error,
    )


class CacheOrchestrator:
    """
    Facade over KeyCodec, Store, FreshnessPolicy, OfflineGate and Fetcher.

    Design principles:
    - One network call per key at a time, concurrent callers share it
    - Offline means offline: the fetcher is never called
    - Transient failures degrade to stale data when there is any
    - No retries: one fetch attempt per request
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: Fetcher,
        policy: Optional[FreshnessPolicy] = None,
        gate: Optional[OfflineGate] = None,
        codec: Optional[KeyCodec] = None,
        sweep_interval_sec: Optional[int] = 300,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.policy = policy or store.policy
        self.gate = gate or OfflineGate()
        self.codec = codec or KeyCodec()
        self._sweep_interval = sweep_interval_sec
        self._last_sweep = time.time()
        self._lock = threading.RLock()
        self._in_flight: Dict[str, _Refresh] = {}
        self._decisions: Deque[Dict[str, Any]] = deque(maxlen=100)

        self.stats = {
            "hits": 0,
            "misses": 0,
            "fetches": 0,
            "negative_fetches": 0,
            "stale_served": 0,
            "offline_served": 0,
            "unavailable": 0,
            "coalesced": 0,
            "errors": 0,
            "invalidations": 0,
            "swept": 0,
            "start_time": time.time(),
        }

    # ── Requests ──

    def request(
        self,
        request: LogicalRequest,
        level: FreshnessLevel = FreshnessLevel.CACHED_OK,
    ) -> CacheResult:
        started = time.time()
        key = self.codec.encode(request)
        self._maybe_sweep(started)

        while True:
            with self._lock:
                entry = self.store.get(key)

                if self.gate.is_offline():
                    if entry is None:
                        self._count("unavailable")
                        result = CacheResult(key=key, outcome=Outcome.UNAVAILABLE)
                    else:
                        self._count("offline_served")
                        result = _from_entry(entry, Outcome.OFFLINE)
                    return self._record(request, level, result, started)

                if entry is not None and self.policy.is_fresh(entry, level):
                    self._count("hits")
                    return self._record(request, level, _from_entry(entry, Outcome.HIT), started)

                refresh = self._in_flight.get(key)
                if refresh is None:
                    leader = True
                    refresh = _Refresh(future=Future())
                    self._in_flight[key] = refresh
                    self._count("misses")
                    break
                if not refresh.invalidated:
                    leader = False
                    self._count("coalesced")
                    break

            # invalidated since it started: wait it out, never join it
            wait([refresh.future])

        if not leader:
            try:
                result = refresh.future.result()
            except HubCacheError as e:
                self._record_failure(request, level, key, e, started, coalesced=True)
                raise
            return self._record(request, level, result, started, coalesced=True)

        try:
            result = self._refresh(request, key, entry, refresh)
        except BaseException as e:
            with self._lock:
                self._release(key, refresh)
            refresh.future.set_exception(e)
            if isinstance(e, HubCacheError):
                self._record_failure(request, level, key, e, started)
            raise

        refresh.future.set_result(result)
        return self._record(request, level, result, started)

    def _refresh(
        self,
        request: LogicalRequest,
        key: str,
        stale: Optional[CacheEntry],
        refresh: _Refresh,
    ) -> CacheResult:
        ttl_class = request.ttl_class
        self._count("fetches")

        try:
            value = self.fetcher.fetch(request)
        except NotFoundError:
            with self._lock:
                if refresh.invalidated:
                    entry = CacheEntry(key, None, time.time(), ttl_class, negative=True)
                else:
                    entry = self.store.put(key, None, ttl_class, negative=True)
                self._release(key, refresh)
            self._count("negative_fetches")
            return _from_entry(entry, Outcome.FETCHED)
        except TransientError as e:
            with self._lock:
                self._release(key, refresh)
                usable = stale is not None and not refresh.invalidated
            if not usable:
                self._count("errors")
                raise
            self._count("stale_served")
            logger.warning(f"Serving stale {key} (age {stale.age():.0f}s) after fetch failure: {e}")
            return _from_entry(stale, Outcome.STALE, error=e)
        except UnexpectedError:
            self._count("errors")
            raise
        except Exception as e:
            self._count("errors")
            logger.error(f"Unexpected fetch failure for {key}: {e}")
            raise UnexpectedError(f"fetch failed for {key}: {e}") from e

        with self._lock:
            if refresh.invalidated:
                logger.debug(f"{key} was invalidated during refresh, not storing result")
                entry = CacheEntry(key, value, time.time(), ttl_class)
            else:
                entry = self.store.put(key, value, ttl_class)
            self._release(key, refresh)
        return CacheResult(key=key, outcome=Outcome.FETCHED, value=value, stored_at=entry.stored_at)

    def _release(self, key: str, refresh: _Refresh) -> None:
        if self._in_flight.get(key) is refresh:
            del self._in_flight[key]

    # ── Invalidation / offline / maintenance ──

    def invalidate(self, key: str) -> bool:
        with self._lock:
            removed = self.store.invalidate(key)
            refresh = self._in_flight.get(key)
            if refresh is not None:
                refresh.invalidated = True
            self._count("invalidations")
        return removed

    def invalidate_request(self, request: LogicalRequest) -> bool:
        return self.invalidate(self.codec.encode(request))

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            cleared = self.store.invalidate_prefix(prefix)
            for key, refresh in self._in_flight.items():
                if key.startswith(prefix):
                    refresh.invalidated = True
            self._count("invalidations")
        return cleared

    def set_offline(self, offline: bool) -> None:
        self.gate.set_offline(offline)

    def is_offline(self) -> bool:
        return self.gate.is_offline()

    def sweep(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            removed = self.store.sweep(now)
            self._last_sweep = now
            self.stats["swept"] += removed
        return removed

    def _maybe_sweep(self, now: float) -> None:
        if not self._sweep_interval:
            return
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep(now)

    # ── Metrics ──

    def _count(self, name: str) -> None:
        with self._lock:
            self.stats[name] += 1

    def _record(
        self,
        request: LogicalRequest,
        level: FreshnessLevel,
        result: CacheResult,
        started: float,
        coalesced: bool = False,
    ) -> CacheResult:
        record = CacheDecisionRecord(
            key=result.key,
            endpoint=request.endpoint.value,
            level=level.value,
            outcome=result.outcome.value,
            offline=result.outcome in (Outcome.OFFLINE, Outcome.UNAVAILABLE),
            latency_ms=(time.time() - started) * 1000,
            not_found=result.not_found,
            stale=result.stale,
            coalesced=coalesced,
            stored_at=result.stored_at,
            error=str(result.error) if result.error else None,
        )
        self._log_decision(record)
        return result

    def _record_failure(
        self,
        request: LogicalRequest,
        level: FreshnessLevel,
        key: str,
        error: HubCacheError,
        started: float,
        coalesced: bool = False,
    ) -> None:
        record = CacheDecisionRecord(
            key=key,
            endpoint=request.endpoint.value,
            level=level.value,
            outcome="error",
            offline=False,
            latency_ms=(time.time() - started) * 1000,
            coalesced=coalesced,
            error=f"{type(error).__name__}: {error}",
        )
        self._log_decision(record)

    def _log_decision(self, record: CacheDecisionRecord) -> None:
        payload = record.to_dict()
        with self._lock:
            self._decisions.append(payload)
        logger.debug("cache decision %s", json.dumps(payload, sort_keys=True))

    def recent_decisions(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._decisions)[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self.stats)
            in_flight = len(self._in_flight)

        served = stats["hits"] + stats["misses"]
        hit_rate = (stats["hits"] / served * 100) if served > 0 else 0
        uptime = time.time() - stats.pop("start_time")

        stats.update({
            "hit_rate_percent": round(hit_rate, 1),
            "entries": len(self.store),
            "in_flight": in_flight,
            "offline": self.gate.is_offline(),
            "persistent": self.store.persistent,
            "uptime_seconds": int(uptime),
        })
        return stats


class AsyncCacheOrchestrator:
    """
    asyncio front for CacheOrchestrator.

    Requests run in worker threads so the single-flight guarantee is the
    one the synchronous orchestrator already provides.
    """

    def __init__(self, orchestrator: CacheOrchestrator) -> None:
        self.orchestrator = orchestrator

    async def request(
        self,
        request: LogicalRequest,
        level: FreshnessLevel = FreshnessLevel.CACHED_OK,
    ) -> CacheResult:
        return await asyncio.to_thread(self.orchestrator.request, request, level)

    def invalidate(self, key: str) -> bool:
        return self.orchestrator.invalidate(key)

    def invalidate_prefix(self, prefix: str) -> int:
        return self.orchestrator.invalidate_prefix(prefix)

    def set_offline(self, offline: bool) -> None:
        self.orchestrator.set_offline(offline)
