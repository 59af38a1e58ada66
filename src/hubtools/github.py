#!/usr/bin/env python3
"""
GitHub REST Client + Fetcher

Implements:
- GitHubClient.get(path, params) / post(path, body) → decoded JSON
- GitHubFetcher.fetch(logical_request) → value for the cache

Every failure is classified:
- 404 / 410                         → NotFoundError
- rate limited (403/429), 5xx,
  timeouts, connection errors       → TransientError
- anything else, undecodable bodies → UnexpectedError
"""

import logging
import os
from typing import Any, Dict, Optional

import requests

from hubcache.errors import NotFoundError, TransientError, UnexpectedError
from hubcache.keys import LogicalRequest

from .rate_limit import RateLimitTracker, parse_retry_after

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class GitHubClient:
    """
    Thin GitHub REST client.

    Design principles:
    - Token from argument or GITHUB_TOKEN, never hardcoded
    - One attempt per call, no retries (callers decide)
    - Fail fast while the rate limit budget is exhausted
    """

    DEFAULT_TIMEOUT = 30  # seconds
    ACCEPT = "application/vnd.github+json"
    API_VERSION = "2022-11-28"

    def __init__(
        self,
        base_url: str = None,
        token: str = None,
        timeout: int = None,
        rate_limits: RateLimitTracker = None,
    ):
        self.base_url = (base_url or os.environ.get("GITHUB_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.token = token or os.environ.get("GITHUB_TOKEN")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.rate_limits = rate_limits or RateLimitTracker()

        self._request_count = 0
        self._error_count = 0

        if not self.token:
            logger.warning("No GitHub token configured. Set GITHUB_TOKEN for authenticated requests.")

        logger.info(
            f"GitHubClient initialized (base_url={self.base_url}, "
            f"token={'configured' if self.token else 'missing'})"
        )

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": self.ACCEPT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self.rate_limits.is_available("core"):
            wait = self.rate_limits.seconds_until_available("core")
            raise TransientError(f"GitHub rate limit exhausted, retry in {wait}s", retry_after=wait)

        url = f"{self.base_url}{path}"
        self._request_count += 1

        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                params=params,
                json=body,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            self._error_count += 1
            logger.error(f"GitHub API timeout: {method} {path} (>{self.timeout}s)")
            raise TransientError(f"timeout: {method} {path}") from e
        except requests.ConnectionError as e:
            self._error_count += 1
            logger.error(f"GitHub API connection error: {method} {path}")
            raise TransientError(f"connection error: {method} {path}") from e
        except requests.RequestException as e:
            self._error_count += 1
            logger.error(f"GitHub API request error: {method} {path}: {e}")
            raise UnexpectedError(f"request error: {method} {path}: {e}") from e

        self.rate_limits.update(response.headers or {})
        return self._decode(method, path, response)

    def _decode(self, method: str, path: str, response: requests.Response) -> Any:
        status = response.status_code

        if status == 204:
            return True

        if 200 <= status < 300:
            try:
                return response.json()
            except ValueError as e:
                self._error_count += 1
                raise UnexpectedError(f"invalid JSON from {method} {path}: {e}") from e

        self._error_count += 1
        text = (response.text or "")[:200]
        logger.warning(f"GitHub API error: {method} {path} -> {status} {text}")

        if status in (404, 410):
            raise NotFoundError(f"{method} {path} -> {status}")

        headers = {str(k).lower(): v for k, v in (response.headers or {}).items()}
        rate_limited = status == 429 or (
            status == 403
            and (headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers)
        )
        if rate_limited:
            if "retry-after" in headers:
                retry_after = parse_retry_after(headers["retry-after"])
                self.rate_limits.update_on_limit(headers.get("x-ratelimit-resource", "core"), retry_after)
            else:
                retry_after = self.rate_limits.seconds_until_available("core") or 60
            raise TransientError(f"{method} {path} rate limited ({status})", retry_after=retry_after)

        if status >= 500:
            raise TransientError(f"{method} {path} -> {status}")

        raise UnexpectedError(f"{method} {path} -> {status}: {text}")

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        logger.info(f"POST {path}")
        return self._request("POST", path, body=body or {})

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests": self._request_count,
            "errors": self._error_count,
            "rate_limits": self.rate_limits.get_stats(),
        }


class GitHubFetcher:
    """Fetcher that turns a LogicalRequest into a GitHub GET."""

    def __init__(self, client: GitHubClient):
        self.client = client

    def fetch(self, request: LogicalRequest) -> Any:
        # GitHub wants lowercase booleans in query strings
        params = {
            name: ("true" if value else "false") if isinstance(value, bool) else value
            for name, value in request.query().items()
        }
        return self.client.get(request.path(), params=params or None)
