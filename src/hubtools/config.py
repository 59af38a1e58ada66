"""Configuration loader for hubcache tools."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hubcache.freshness import TtlSettings
from hubcache.store import DEFAULT_DB_PATH


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "hubcache.defaults.yml"


class ConfigError(ValueError):
    pass


def _as_int(value: Any, name: str, allow_none: bool = False) -> Optional[int]:
    if value is None and allow_none:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class GitHubConfig:
    api_url: str
    web_url: str
    token: Optional[str]
    user: Optional[str]
    timeout_sec: int


@dataclass(frozen=True)
class HubConfig:
    db_path: str
    offline: bool
    sweep_interval_sec: Optional[int]
    git_protocol: str
    clone_root: Path
    ttl: TtlSettings
    github: GitHubConfig

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HubConfig":
        ttl_data = data.get("ttl", {}) or {}
        gh_data = data.get("github", {}) or {}

        protocol = data.get("git_protocol") or "https"
        if protocol not in ("https", "ssh"):
            raise ConfigError(f"git_protocol must be 'https' or 'ssh', got {protocol!r}")

        short_sec = _as_int(ttl_data.get("short_sec", 3600), "ttl.short_sec")
        long_sec = _as_int(ttl_data.get("long_sec", 86400), "ttl.long_sec")
        permanent_sec = _as_int(ttl_data.get("permanent_sec"), "ttl.permanent_sec", allow_none=True)
        negative_sec = _as_int(ttl_data.get("negative_sec", 60), "ttl.negative_sec")
        multiplier = _as_int(ttl_data.get("hard_expiry_multiplier", 10), "ttl.hard_expiry_multiplier")
        try:
            ttl = TtlSettings(
                short_sec=short_sec,
                long_sec=long_sec,
                permanent_sec=permanent_sec,
                negative_sec=negative_sec,
                hard_expiry_multiplier=multiplier,
            )
        except ValueError as exc:
            raise ConfigError(f"invalid ttl settings: {exc}") from exc

        return cls(
            db_path=os.path.expanduser(str(data.get("db_path") or DEFAULT_DB_PATH)),
            offline=_as_bool(data.get("offline", False)),
            # null or 0 disables the periodic sweep
            sweep_interval_sec=_as_int(data.get("sweep_interval_sec", 300), "sweep_interval_sec", allow_none=True),
            git_protocol=protocol,
            clone_root=Path(os.path.expanduser(str(data.get("clone_root") or "~/src"))),
            ttl=ttl,
            github=GitHubConfig(
                api_url=str(gh_data.get("api_url") or "https://api.github.com").rstrip("/"),
                web_url=str(gh_data.get("web_url") or "https://github.com").rstrip("/"),
                token=gh_data.get("token") or None,
                user=gh_data.get("user") or None,
                timeout_sec=_as_int(gh_data.get("timeout_sec", 30), "github.timeout_sec"),
            ),
        )


ENV_MAP = {
    "db_path": "HUBCACHE_DB_PATH",
    "offline": "HUBCACHE_OFFLINE",
    "sweep_interval_sec": "HUBCACHE_SWEEP_INTERVAL_SEC",
    "git_protocol": "HUBCACHE_GIT_PROTOCOL",
    "clone_root": "HUBCACHE_CLONE_ROOT",
    "ttl.short_sec": "HUBCACHE_TTL_SHORT_SEC",
    "ttl.long_sec": "HUBCACHE_TTL_LONG_SEC",
    "ttl.permanent_sec": "HUBCACHE_TTL_PERMANENT_SEC",
    "ttl.negative_sec": "HUBCACHE_TTL_NEGATIVE_SEC",
    "ttl.hard_expiry_multiplier": "HUBCACHE_HARD_EXPIRY_MULTIPLIER",
    "github.api_url": "GITHUB_API_URL",
    "github.web_url": "GITHUB_WEB_URL",
    "github.token": "GITHUB_TOKEN",
    "github.user": "GITHUB_USER",
    "github.timeout_sec": "GITHUB_TIMEOUT_SEC",
}

_INT_KEYS = {
    "sweep_interval_sec",
    "short_sec",
    "long_sec",
    "permanent_sec",
    "negative_sec",
    "hard_expiry_multiplier",
    "timeout_sec",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        last = parts[-1]
        if last in _INT_KEYS:
            try:
                value = int(value)
            except ValueError as exc:
                raise ConfigError(f"{env_name} must be an integer, got {value!r}") from exc
        elif last == "offline":
            value = _as_bool(value)
        target[last] = value

    return merged


def load_config(config_path: str | Path | None = None) -> HubConfig:
    """Load YAML config and apply environment overrides.

    Without an explicit path the shipped defaults file is used when present.
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = load_yaml(path)
    elif DEFAULT_CONFIG_PATH.exists():
        data = load_yaml(DEFAULT_CONFIG_PATH)

    data = merge_env_overrides(data)
    return HubConfig.from_dict(data)
