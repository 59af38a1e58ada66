"""Application context: owns the store, offline gate and clients for one process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from hubcache.fetcher import Fetcher
from hubcache.freshness import FreshnessPolicy
from hubcache.offline import OfflineGate
from hubcache.orchestrator import AsyncCacheOrchestrator, CacheOrchestrator
from hubcache.store import CacheStore

from .actions import DecisionProvider, RepositoryActions
from .config import HubConfig, load_config
from .github import GitHubClient, GitHubFetcher
from .rate_limit import RateLimitTracker

logger = logging.getLogger(__name__)


class HubContext:
    """
    Everything process-wide lives here instead of in module globals.
    Start it once, pass it around, close it on shutdown.
    """

    def __init__(
        self,
        config: HubConfig,
        fetcher: Optional[Fetcher] = None,
        decisions: Optional[DecisionProvider] = None,
    ) -> None:
        self.config = config
        self.policy = FreshnessPolicy(config.ttl)
        self.store = CacheStore(config.db_path, self.policy)
        self.gate = OfflineGate(config.offline)
        self.rate_limits = RateLimitTracker()
        self.client = GitHubClient(
            base_url=config.github.api_url,
            token=config.github.token,
            timeout=config.github.timeout_sec,
            rate_limits=self.rate_limits,
        )
        self.cache = CacheOrchestrator(
            self.store,
            fetcher or GitHubFetcher(self.client),
            policy=self.policy,
            gate=self.gate,
            sweep_interval_sec=config.sweep_interval_sec,
        )
        self.actions = RepositoryActions(
            self.cache,
            self.client,
            decisions=decisions,
            identity=config.github.user,
            git_protocol=config.git_protocol,
            web_url=config.github.web_url,
            clone_root=config.clone_root,
        )
        self._closed = False
        logger.info(f"HubContext started (offline={config.offline}, db={config.db_path})")

    @classmethod
    def from_path(
        cls,
        config_path: Optional[Path] = None,
        decisions: Optional[DecisionProvider] = None,
    ) -> "HubContext":
        return cls(load_config(config_path), decisions=decisions)

    def async_cache(self) -> AsyncCacheOrchestrator:
        return AsyncCacheOrchestrator(self.cache)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.store.close()
        logger.info("HubContext closed")

    def __enter__(self) -> "HubContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
