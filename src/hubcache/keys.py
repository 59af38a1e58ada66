#!/usr/bin/env python3
"""
Cache Key Generation for Logical Requests

Implements:
- LogicalRequest(endpoint, params, identity) → immutable request description
- KeyCodec.encode(request) → deterministic key
- Same endpoint + same params (any order) + same identity = identical key
- Keys about one repository share the prefix "repo:{owner}/{repo}:"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from .freshness import TtlClass

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool, None]
SCALAR_TYPES = (str, int, float, bool, type(None))

_TEMPLATE_FIELD = re.compile(r"\{(\w+)\}")


class Endpoint(Enum):
    REPOSITORY = "repository"
    FORKS = "forks"
    ISSUES = "issues"
    ISSUE = "issue"
    ISSUE_COMMENTS = "issue_comments"
    PULL_REQUESTS = "pull_requests"
    PULL_REQUEST = "pull_request"
    LABELS = "labels"
    ASSIGNEES = "assignees"
    CURRENT_USER = "current_user"
    USER_REPOS = "user_repos"
    USER_ORGS = "user_orgs"
    USER = "user"
    ORG_MEMBERSHIP = "org_membership"


@dataclass(frozen=True)
class EndpointSpec:
    path: str
    ttl_class: TtlClass
    scope: str

    @property
    def path_params(self) -> Tuple[str, ...]:
        return tuple(_TEMPLATE_FIELD.findall(self.path))

    @property
    def scope_params(self) -> Tuple[str, ...]:
        return tuple(_TEMPLATE_FIELD.findall(self.scope))


_REPO_SCOPE = "repo:{owner}/{repo}"

ENDPOINTS: Dict[Endpoint, EndpointSpec] = {
    Endpoint.REPOSITORY: EndpointSpec("/repos/{owner}/{repo}", TtlClass.LONG, _REPO_SCOPE),
    Endpoint.FORKS: EndpointSpec("/repos/{owner}/{repo}/forks", TtlClass.SHORT, _REPO_SCOPE),
    Endpoint.ISSUES: EndpointSpec("/repos/{owner}/{repo}/issues", TtlClass.SHORT, _REPO_SCOPE),
    Endpoint.ISSUE: EndpointSpec("/repos/{owner}/{repo}/issues/{number}", TtlClass.SHORT, _REPO_SCOPE),
    Endpoint.ISSUE_COMMENTS: EndpointSpec(
        "/repos/{owner}/{repo}/issues/{number}/comments", TtlClass.SHORT, _REPO_SCOPE
    ),
    Endpoint.PULL_REQUESTS: EndpointSpec("/repos/{owner}/{repo}/pulls", TtlClass.SHORT, _REPO_SCOPE),
    Endpoint.PULL_REQUEST: EndpointSpec("/repos/{owner}/{repo}/pulls/{number}", TtlClass.SHORT, _REPO_SCOPE),
    Endpoint.LABELS: EndpointSpec("/repos/{owner}/{repo}/labels", TtlClass.LONG, _REPO_SCOPE),
    Endpoint.ASSIGNEES: EndpointSpec("/repos/{owner}/{repo}/assignees", TtlClass.LONG, _REPO_SCOPE),
    Endpoint.CURRENT_USER: EndpointSpec("/user", TtlClass.LONG, "user"),
    Endpoint.USER_REPOS: EndpointSpec("/user/repos", TtlClass.SHORT, "user"),
    Endpoint.USER_ORGS: EndpointSpec("/user/orgs", TtlClass.LONG, "user"),
    Endpoint.USER: EndpointSpec("/users/{username}", TtlClass.LONG, "user:{username}"),
    Endpoint.ORG_MEMBERSHIP: EndpointSpec(
        "/orgs/{org}/members/{username}", TtlClass.PERMANENT, "org:{org}"
    ),
}


def _quote(value: Any) -> str:
    return quote(str(value), safe="")


def _encode_scalar(value: Scalar) -> str:
    """Strings are percent-encoded (never contain ':'); everything else is tagged."""
    if isinstance(value, str):
        return _quote(value)
    if value is None:
        return "n:"
    if isinstance(value, bool):
        return "b:true" if value else "b:false"
    if isinstance(value, int):
        return f"i:{value}"
    return f"f:{value!r}"


@dataclass(frozen=True)
class LogicalRequest:
    """
    Transport-independent description of a piece of remote data.

    ``params`` may be given as a mapping or as (name, value) pairs; it is
    normalized into a tuple sorted by name, so construction order never
    matters.
    """
    endpoint: Endpoint
    params: Tuple[Tuple[str, Scalar], ...] = ()
    identity: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.endpoint, Endpoint):
            raise TypeError(f"endpoint must be an Endpoint, got {self.endpoint!r}")

        raw = self.params
        items = raw.items() if isinstance(raw, Mapping) else raw
        normalized: Dict[str, Scalar] = {}
        for name, value in items:
            if not isinstance(name, str) or not name:
                raise ValueError(f"invalid parameter name: {name!r}")
            if name in normalized:
                raise ValueError(f"duplicate parameter: {name}")
            if not isinstance(value, SCALAR_TYPES):
                raise TypeError(f"parameter {name} must be a scalar, got {type(value).__name__}")
            normalized[name] = value

        for name in self.spec.path_params:
            value = normalized.get(name)
            if value is None or isinstance(value, bool) or not isinstance(value, (str, int)):
                raise ValueError(f"{self.endpoint.value} requires parameter '{name}'")
            if isinstance(value, str) and not value:
                raise ValueError(f"{self.endpoint.value} parameter '{name}' is empty")

        object.__setattr__(self, "params", tuple(sorted(normalized.items())))
        object.__setattr__(self, "identity", self.identity or None)

    @classmethod
    def of(cls, endpoint: Endpoint, identity: Optional[str] = None, **params: Scalar) -> "LogicalRequest":
        return cls(endpoint, params, identity)

    @property
    def spec(self) -> EndpointSpec:
        return ENDPOINTS[self.endpoint]

    @property
    def ttl_class(self) -> TtlClass:
        return self.spec.ttl_class

    def get(self, name: str, default: Scalar = None) -> Scalar:
        for param, value in self.params:
            if param == name:
                return value
        return default

    def param_map(self) -> Dict[str, Scalar]:
        return dict(self.params)

    def path(self) -> str:
        """REST path with path parameters substituted."""
        values = self.param_map()
        return self.spec.path.format(**{name: _quote(values[name]) for name in self.spec.path_params})

    def query(self) -> Dict[str, Scalar]:
        """Parameters that are not part of the path (None values dropped)."""
        path_params = set(self.spec.path_params)
        return {
            name: value
            for name, value in self.params
            if name not in path_params and value is not None
        }


class KeyCodec:
    """
    Deterministic cache keys for logical requests.

    Layout: ``{scope}:{endpoint}?{name=value&...}@{identity}``

    - scope comes from the endpoint ("repo:octo/hello", "user", "org:acme")
    - remaining params are sorted by name and encoded by type
    - identity is empty when the request is anonymous
    """

    def encode(self, request: LogicalRequest) -> str:
        spec = request.spec
        scope_params = spec.scope_params
        rest = "&".join(
            f"{_quote(name)}={_encode_scalar(value)}"
            for name, value in request.params
            if name not in scope_params
        )
        identity = _quote(request.identity) if request.identity else ""
        key = f"{self._scope(request.endpoint, request.param_map())}:{request.endpoint.value}?{rest}@{identity}"
        logger.debug(f"Encoded key: {key}")
        return key

    def scope_prefix(self, endpoint: Endpoint, **scope_values: Scalar) -> str:
        """Prefix shared by every key in the endpoint's scope."""
        return f"{self._scope(endpoint, scope_values)}:"

    def endpoint_prefix(self, endpoint: Endpoint, **scope_values: Scalar) -> str:
        """Prefix shared by every key of one endpoint within a scope."""
        return f"{self._scope(endpoint, scope_values)}:{endpoint.value}?"

    def repository_prefix(self, owner: str, repo: str) -> str:
        return self.scope_prefix(Endpoint.REPOSITORY, owner=owner, repo=repo)

    def _scope(self, endpoint: Endpoint, values: Mapping[str, Scalar]) -> str:
        spec = ENDPOINTS[endpoint]
        missing = [name for name in spec.scope_params if values.get(name) is None]
        if missing:
            raise ValueError(f"{endpoint.value} scope requires {', '.join(missing)}")
        return spec.scope.format(**{name: _quote(values[name]) for name in spec.scope_params})
