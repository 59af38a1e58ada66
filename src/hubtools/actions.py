#!/usr/bin/env python3
"""
Repository Actions
What a user does from the version-control UI: create, fork, clone, browse,
list and open issues / pull requests.

Reads go through the cache orchestrator; mutations go straight to the
GitHub client and then invalidate whatever they changed. Local repository
changes go through GitClient. Questions for the user go through a
DecisionProvider so the actions never depend on a UI.
"""

from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from hubcache.errors import UnavailableError
from hubcache.freshness import FreshnessLevel
from hubcache.keys import Endpoint, LogicalRequest
from hubcache.orchestrator import CacheOrchestrator, Outcome

from .git import GitClient, parse_github_remote
from .github import GitHubClient

logger = logging.getLogger(__name__)


class DecisionProvider(Protocol):
    def confirm(self, prompt: str, default: bool = True) -> bool: ...

    def ask(self, prompt: str, default: Optional[str] = None) -> Optional[str]: ...


class AssumeDefaults:
    """Non-interactive decisions: every question gets its default answer."""

    def confirm(self, prompt: str, default: bool = True) -> bool:
        logger.debug(f"{prompt} → {default}")
        return default

    def ask(self, prompt: str, default: Optional[str] = None) -> Optional[str]:
        logger.debug(f"{prompt} → {default}")
        return default


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    name: str

    @classmethod
    def parse(cls, text: str) -> "RepositoryRef":
        parts = (text or "").strip().strip("/").split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"expected OWNER/NAME, got {text!r}")
        name = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
        return cls(parts[0], name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass
class CloneResult:
    repository: RepositoryRef
    path: Path
    upstream: Optional[RepositoryRef] = None


class RepositoryActions:
    def __init__(
        self,
        cache: CacheOrchestrator,
        client: GitHubClient,
        decisions: Optional[DecisionProvider] = None,
        identity: Optional[str] = None,
        git_protocol: str = "https",
        web_url: str = "https://github.com",
        clone_root: Path = Path("."),
        opener: Callable[[str], Any] = webbrowser.open,
        git_factory: Callable[[Path], GitClient] = GitClient,
    ):
        self.cache = cache
        self.client = client
        self.decisions = decisions or AssumeDefaults()
        self.identity = identity
        self.git_protocol = git_protocol
        self.web_url = web_url.rstrip("/")
        self.clone_root = Path(clone_root)
        self.opener = opener
        self.git_factory = git_factory

    # ── Cached reads ──

    def _read(self, endpoint: Endpoint, level: FreshnessLevel = FreshnessLevel.CACHED_OK, **params) -> Any:
        request = LogicalRequest.of(endpoint, identity=self.identity, **params)
        result = self.cache.request(request, level)
        if result.stale:
            logger.warning(f"Using possibly stale data for {result.key} ({result.outcome.value})")
        return result.unwrap()

    def whoami(self) -> str:
        return self._read(Endpoint.CURRENT_USER)["login"]

    def repository(self, ref: RepositoryRef, level: FreshnessLevel = FreshnessLevel.CACHED_OK) -> Dict[str, Any]:
        return self._read(Endpoint.REPOSITORY, level, owner=ref.owner, repo=ref.name)

    def issues(
        self,
        ref: RepositoryRef,
        state: str = "open",
        level: FreshnessLevel = FreshnessLevel.FRESH,
    ) -> List[Dict[str, Any]]:
        # the issues endpoint also returns pull requests
        items = self._read(Endpoint.ISSUES, level, owner=ref.owner, repo=ref.name, state=state)
        return [item for item in items if "pull_request" not in item]

    def issue(self, ref: RepositoryRef, number: int, level: FreshnessLevel = FreshnessLevel.FRESH) -> Dict[str, Any]:
        return self._read(Endpoint.ISSUE, level, owner=ref.owner, repo=ref.name, number=number)

    def issue_comments(
        self, ref: RepositoryRef, number: int, level: FreshnessLevel = FreshnessLevel.FRESH
    ) -> List[Dict[str, Any]]:
        return self._read(Endpoint.ISSUE_COMMENTS, level, owner=ref.owner, repo=ref.name, number=number)

    def pull_requests(
        self,
        ref: RepositoryRef,
        state: str = "open",
        level: FreshnessLevel = FreshnessLevel.FRESH,
    ) -> List[Dict[str, Any]]:
        return self._read(Endpoint.PULL_REQUESTS, level, owner=ref.owner, repo=ref.name, state=state)

    def pull_request(
        self, ref: RepositoryRef, number: int, level: FreshnessLevel = FreshnessLevel.FRESH
    ) -> Dict[str, Any]:
        return self._read(Endpoint.PULL_REQUEST, level, owner=ref.owner, repo=ref.name, number=number)

    def labels(self, ref: RepositoryRef) -> List[Dict[str, Any]]:
        return self._read(Endpoint.LABELS, owner=ref.owner, repo=ref.name)

    def assignees(self, ref: RepositoryRef) -> List[Dict[str, Any]]:
        return self._read(Endpoint.ASSIGNEES, owner=ref.owner, repo=ref.name)

    def is_member(self, org: str, username: str) -> bool:
        request = LogicalRequest.of(Endpoint.ORG_MEMBERSHIP, identity=self.identity, org=org, username=username)
        result = self.cache.request(request)
        if result.outcome is Outcome.UNAVAILABLE:
            raise UnavailableError(f"offline and membership of {username} in {org} unknown")
        return not result.not_found and bool(result.value)

    # ── Mutations ──

    def _invalidate_repository(self, ref: RepositoryRef) -> None:
        self.cache.invalidate_prefix(self.cache.codec.repository_prefix(ref.owner, ref.name))

    def _invalidate_user_listings(self) -> None:
        self.cache.invalidate_prefix(self.cache.codec.endpoint_prefix(Endpoint.USER_REPOS))

    def _clone_url(self, repo: Dict[str, Any]) -> str:
        if self.git_protocol == "ssh":
            return repo["ssh_url"]
        return repo["clone_url"]

    def create_repository(
        self,
        name: str,
        private: bool = False,
        description: Optional[str] = None,
        org: Optional[str] = None,
        repo_dir: Optional[Path] = None,
        push: bool = True,
    ) -> RepositoryRef:
        """Create a repository on GitHub and wire the local checkout to it."""
        body: Dict[str, Any] = {"name": name, "private": private}
        if description:
            body["description"] = description

        path = f"/orgs/{org}/repos" if org else "/user/repos"
        data = self.client.post(path, body)
        ref = RepositoryRef.parse(data["full_name"])
        logger.info(f"Created repository {ref}")

        # a negative entry for the new name would hide it
        self._invalidate_repository(ref)
        self._invalidate_user_listings()

        if repo_dir is None:
            return ref

        git = self.git_factory(Path(repo_dir))
        if not git.is_repository():
            git.init()

        remote = "origin"
        if git.remote_url("origin"):
            remote = self.decisions.ask("Remote name for the new repository", default=ref.owner)
            if not remote:
                return ref
        git.add_remote(remote, self._clone_url(data))

        if push and self.decisions.confirm(f"Push to {remote} and set upstream?", default=True):
            git.push(remote, set_upstream=True)
        return ref

    def fork(
        self,
        ref: RepositoryRef,
        org: Optional[str] = None,
        repo_dir: Optional[Path] = None,
    ) -> RepositoryRef:
        """Fork ref on GitHub; optionally add the fork as a remote of repo_dir."""
        body = {"organization": org} if org else {}
        data = self.client.post(f"/repos/{ref.owner}/{ref.name}/forks", body)
        fork = RepositoryRef.parse(data["full_name"])
        logger.info(f"Forked {ref} → {fork}")

        self._invalidate_repository(ref)
        self._invalidate_repository(fork)
        self._invalidate_user_listings()

        if repo_dir is not None:
            git = self.git_factory(Path(repo_dir))
            git.add_remote(fork.owner, self._clone_url(data))
            if self.decisions.confirm(f"Push current branch to {fork.owner} and track it?", default=False):
                git.push(fork.owner, set_upstream=True)
        return fork

    def clone(self, ref: RepositoryRef, directory: Optional[Path] = None) -> CloneResult:
        """Clone using cached repository metadata; forks get an upstream remote."""
        repo = self.repository(ref)
        directory = Path(directory) if directory is not None else self.clone_root / ref.name
        git = self.git_factory(directory.parent).clone(self._clone_url(repo), directory)

        result = CloneResult(repository=ref, path=directory)
        parent = repo.get("parent") if repo.get("fork") else None
        if parent and self.decisions.confirm(f"Add {parent['full_name']} as remote 'upstream'?", default=True):
            git.add_remote("upstream", self._clone_url(parent))
            result.upstream = RepositoryRef.parse(parent["full_name"])
        return result

    def create_issue(
        self,
        ref: RepositoryRef,
        title: str,
        body: Optional[str] = None,
        labels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title}
        if body:
            payload["body"] = body
        if labels:
            payload["labels"] = list(labels)
        issue = self.client.post(f"/repos/{ref.owner}/{ref.name}/issues", payload)
        logger.info(f"Created issue {ref}#{issue.get('number')}")
        self._invalidate_repository(ref)
        return issue

    def create_pull_request(
        self,
        ref: RepositoryRef,
        title: str,
        head: str,
        base: str,
        body: Optional[str] = None,
        draft: bool = False,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title, "head": head, "base": base, "draft": draft}
        if body:
            payload["body"] = body
        pull = self.client.post(f"/repos/{ref.owner}/{ref.name}/pulls", payload)
        logger.info(f"Created pull request {ref}#{pull.get('number')}")
        self._invalidate_repository(ref)
        return pull

    # ── Browsing ──

    def browse_url(self, ref: RepositoryRef, issue: Optional[int] = None, pull: Optional[int] = None) -> str:
        url = f"{self.web_url}/{ref.owner}/{ref.name}"
        if issue is not None:
            return f"{url}/issues/{issue}"
        if pull is not None:
            return f"{url}/pull/{pull}"
        return url

    def browse(self, ref: RepositoryRef, issue: Optional[int] = None, pull: Optional[int] = None) -> str:
        url = self.browse_url(ref, issue=issue, pull=pull)
        logger.info(f"Opening {url}")
        self.opener(url)
        return url

    def repository_from_remote(self, repo_dir: Optional[Path] = None, remote: str = "origin") -> Optional[RepositoryRef]:
        git = self.git_factory(Path(repo_dir) if repo_dir is not None else Path.cwd())
        url = git.remote_url(remote)
        if not url:
            return None
        host = self.web_url.split("://", 1)[-1].split("/", 1)[0]
        parsed = parse_github_remote(url, host=host)
        return RepositoryRef(*parsed) if parsed else None
