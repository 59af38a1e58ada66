"""Offline toggle owned by the host process."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class OfflineGate:
    """
    When engaged, the orchestrator serves everything from the store and never
    reaches the network. Going back online refreshes nothing by itself.
    """

    def __init__(self, offline: bool = False) -> None:
        self._offline = bool(offline)
        self._lock = threading.Lock()

    def is_offline(self) -> bool:
        with self._lock:
            return self._offline

    def set_offline(self, offline: bool) -> None:
        with self._lock:
            changed = self._offline != bool(offline)
            self._offline = bool(offline)
        if changed:
            logger.info("Offline mode %s", "enabled" if offline else "disabled")
