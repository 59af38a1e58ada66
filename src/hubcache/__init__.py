"""
hubcache: response cache for GitHub front-ends
Per-key freshness, offline degradation, single-flight refresh
"""

from .errors import (
    HubCacheError,
    NotFoundError,
    StorageUnavailable,
    TransientError,
    UnavailableError,
    UnexpectedError,
)
from .freshness import FreshnessLevel, FreshnessPolicy, TtlClass, TtlSettings
from .keys import Endpoint, KeyCodec, LogicalRequest
from .offline import OfflineGate
from .orchestrator import AsyncCacheOrchestrator, CacheOrchestrator, CacheResult, Outcome
from .store import CacheEntry, CacheStore

__all__ = [
    'AsyncCacheOrchestrator',
    'CacheEntry',
    'CacheOrchestrator',
    'CacheResult',
    'CacheStore',
    'Endpoint',
    'FreshnessLevel',
    'FreshnessPolicy',
    'HubCacheError',
    'KeyCodec',
    'LogicalRequest',
    'NotFoundError',
    'OfflineGate',
    'Outcome',
    'StorageUnavailable',
    'TransientError',
    'TtlClass',
    'TtlSettings',
    'UnavailableError',
    'UnexpectedError',
]
