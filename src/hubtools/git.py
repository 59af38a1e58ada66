#!/usr/bin/env python3
"""
Git Client
Local repository operations used after the cache supplies repository data.

Implements:
- clone(url, directory) → GitClient for the new checkout
- add_remote / remote_url / remotes
- current_branch / set_upstream / push
- parse_github_remote(url) → (owner, repo)
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

_REMOTE_PATTERNS = (
    # https://github.com/org/project(.git)
    r"^(?:https?|git)://(?:[^@/]+@)?{host}/(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$",
    # git@github.com:org/project(.git)
    r"^[^@/]+@{host}:(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$",
    # ssh://git@github.com/org/project(.git)
    r"^ssh://(?:[^@/]+@)?{host}(?::\d+)?/(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$",
)


class GitCommandError(Exception):
    def __init__(self, command: List[str], returncode: Optional[int], stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no output"
        super().__init__(f"{' '.join(command)} failed ({returncode}): {detail}")


def parse_github_remote(url: str, host: str = "github.com") -> Optional[Tuple[str, str]]:
    """Extract (owner, repo) from a GitHub remote URL, None for other hosts."""
    url = (url or "").strip()
    for pattern in _REMOTE_PATTERNS:
        match = re.match(pattern.format(host=re.escape(host)), url)
        if match:
            return match.group("owner"), match.group("repo")
    return None


class GitClient:
    """Runs git in one working directory."""

    DEFAULT_TIMEOUT = 300  # clones can be slow

    def __init__(self, repo_dir: Optional[Path] = None, git: str = "git", timeout: int = None):
        self.repo_dir = Path(repo_dir) if repo_dir is not None else Path.cwd()
        self.git = git
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    def _run(self, *args: str, cwd: Optional[Path] = None) -> str:
        command = [self.git, *args]
        try:
            result = subprocess.run(
                command,
                cwd=str(cwd or self.repo_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Git command timeout: {' '.join(command)}")
            raise GitCommandError(command, None, f"timed out after {self.timeout}s") from e
        except OSError as e:
            logger.error(f"Cannot run git: {e}")
            raise GitCommandError(command, None, str(e)) from e

        if result.returncode != 0:
            logger.error(f"Git command failed: {' '.join(command)}: {result.stderr.strip()}")
            raise GitCommandError(command, result.returncode, result.stderr)

        return result.stdout.strip()

    def is_repository(self) -> bool:
        try:
            return self._run("rev-parse", "--is-inside-work-tree") == "true"
        except GitCommandError:
            return False

    def init(self) -> None:
        self.repo_dir.mkdir(parents=True, exist_ok=True)
        self._run("init")
        logger.info(f"Initialized repository in {self.repo_dir}")

    def clone(self, url: str, directory: Path, origin: str = "origin") -> "GitClient":
        directory = Path(directory)
        directory.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {url} into {directory}")
        self._run("clone", "--origin", origin, url, str(directory), cwd=directory.parent)
        return GitClient(directory, git=self.git, timeout=self.timeout)

    def add_remote(self, name: str, url: str) -> None:
        self._run("remote", "add", name, url)
        logger.info(f"Added remote {name} → {url}")

    def remote_url(self, name: str = "origin") -> Optional[str]:
        try:
            return self._run("remote", "get-url", name) or None
        except GitCommandError:
            return None

    def remotes(self) -> List[str]:
        output = self._run("remote")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD")

    def set_upstream(self, remote: str, branch: Optional[str] = None) -> None:
        branch = branch or self.current_branch()
        self._run("branch", f"--set-upstream-to={remote}/{branch}", branch)

    def push(self, remote: str, branch: Optional[str] = None, set_upstream: bool = False) -> None:
        branch = branch or self.current_branch()
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        self._run(*args, remote, branch)
        logger.info(f"Pushed {branch} to {remote}")
