"""Failure taxonomy shared by the cache core and its fetchers."""

from __future__ import annotations

from typing import Optional


class HubCacheError(Exception):
    """Base class for every failure surfaced by hubcache."""


class NotFoundError(HubCacheError):
    """The remote resource does not exist (cached briefly as a negative entry)."""


class TransientError(HubCacheError):
    """Network trouble or rate limiting. Stale data may be served instead."""

    def __init__(self, message: str, retry_after: Optional[int] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UnexpectedError(HubCacheError):
    """Malformed response or logic error. Always propagated, never cached."""


class UnavailableError(HubCacheError):
    """Offline mode is engaged and nothing is cached for the request."""


class StorageUnavailable(HubCacheError):
    """The persistent backing store cannot be used."""
