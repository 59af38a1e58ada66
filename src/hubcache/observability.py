"""Decision record schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

DECISION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "key",
        "endpoint",
        "level",
        "outcome",
        "offline",
        "not_found",
        "stale",
        "coalesced",
        "latency_ms",
        "recorded_at",
    ],
    "properties": {
        "key": {"type": "string", "minLength": 1},
        "endpoint": {"type": "string"},
        "level": {"type": "string", "enum": ["cached-ok", "fresh", "force-refresh"]},
        "outcome": {
            "type": "string",
            "enum": ["hit", "fetched", "offline", "stale", "unavailable", "error"],
        },
        "offline": {"type": "boolean"},
        "not_found": {"type": "boolean"},
        "stale": {"type": "boolean"},
        "coalesced": {"type": "boolean"},
        "latency_ms": {"type": "number", "minimum": 0},
        "stored_at": {"type": ["number", "null"]},
        "error": {"type": ["string", "null"]},
        "recorded_at": {"type": "string", "format": "date-time"},
    },
}

_validator = Draft7Validator(DECISION_SCHEMA)


def validate_decision(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"decision record validation failed: {messages}")


@dataclass
class CacheDecisionRecord:
    key: str
    endpoint: str
    level: str
    outcome: str
    offline: bool
    latency_ms: float
    not_found: bool = False
    stale: bool = False
    coalesced: bool = False
    stored_at: Optional[float] = None
    error: Optional[str] = None
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "key": self.key,
            "endpoint": self.endpoint,
            "level": self.level,
            "outcome": self.outcome,
            "offline": self.offline,
            "not_found": self.not_found,
            "stale": self.stale,
            "coalesced": self.coalesced,
            "latency_ms": max(self.latency_ms, 0.0),
            "stored_at": self.stored_at,
            "error": self.error,
            "recorded_at": self.recorded_at,
        }
        validate_decision(payload)
        return payload
