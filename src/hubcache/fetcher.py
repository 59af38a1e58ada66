"""Contract for the component that actually performs a logical request."""

from __future__ import annotations

from typing import Any, Protocol

from .keys import LogicalRequest


class Fetcher(Protocol):
    def fetch(self, request: LogicalRequest) -> Any:
        """Perform the request and return the decoded result.

        Failures must be classified by raising NotFoundError, TransientError
        or UnexpectedError. Any other exception is treated as unexpected.
        """
