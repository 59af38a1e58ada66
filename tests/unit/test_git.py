#!/usr/bin/env python3
"""
Unit tests for the git client
"""

import subprocess
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from hubtools.git import GitClient, GitCommandError, parse_github_remote


def completed(stdout="", returncode=0, stderr=""):
    result = MagicMock()
    result.stdout = stdout
    result.returncode = returncode
    result.stderr = stderr
    return result


class TestParseGithubRemote:
    @pytest.mark.parametrize("url", [
        "https://github.com/octo/hello.git",
        "https://github.com/octo/hello",
        "https://token@github.com/octo/hello.git",
        "git@github.com:octo/hello.git",
        "git@github.com:octo/hello",
        "ssh://git@github.com/octo/hello.git",
        "ssh://git@github.com:22/octo/hello.git",
    ])
    def test_github_urls(self, url):
        assert parse_github_remote(url) == ("octo", "hello")

    def test_other_host(self):
        assert parse_github_remote("https://gitlab.com/octo/hello.git") is None

    def test_enterprise_host(self):
        assert parse_github_remote("git@git.corp.test:team/tool.git", host="git.corp.test") == ("team", "tool")

    def test_garbage(self):
        assert parse_github_remote("") is None
        assert parse_github_remote(None) is None


class TestGitClient:
    @pytest.fixture
    def git(self, tmp_path):
        return GitClient(tmp_path)

    @patch("hubtools.git.subprocess.run")
    def test_run_in_repo_dir(self, mock_run, git, tmp_path):
        mock_run.return_value = completed("main\n")

        assert git.current_branch() == "main"

        args, kwargs = mock_run.call_args
        assert args[0] == ["git", "rev-parse", "--abbrev-ref", "HEAD"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == GitClient.DEFAULT_TIMEOUT

    @patch("hubtools.git.subprocess.run")
    def test_failure_raises(self, mock_run, git):
        mock_run.return_value = completed(returncode=128, stderr="fatal: not a git repository")

        with pytest.raises(GitCommandError) as excinfo:
            git.remotes()

        assert excinfo.value.returncode == 128
        assert "not a git repository" in str(excinfo.value)

    @patch("hubtools.git.subprocess.run")
    def test_timeout_raises(self, mock_run, git):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=1)
        with pytest.raises(GitCommandError) as excinfo:
            git.push("origin", "main")
        assert excinfo.value.returncode is None

    @patch("hubtools.git.subprocess.run")
    def test_missing_git_binary(self, mock_run, git):
        mock_run.side_effect = FileNotFoundError("git")
        with pytest.raises(GitCommandError):
            git.remotes()

    @patch("hubtools.git.subprocess.run")
    def test_is_repository(self, mock_run, git):
        mock_run.return_value = completed("true\n")
        assert git.is_repository() is True

        mock_run.return_value = completed(returncode=128, stderr="fatal")
        assert git.is_repository() is False

    @patch("hubtools.git.subprocess.run")
    def test_remotes(self, mock_run, git):
        mock_run.return_value = completed("origin\nupstream\n")
        assert git.remotes() == ["origin", "upstream"]

    @patch("hubtools.git.subprocess.run")
    def test_remote_url_missing(self, mock_run, git):
        mock_run.return_value = completed(returncode=2, stderr="error: No such remote 'origin'")
        assert git.remote_url() is None

    @patch("hubtools.git.subprocess.run")
    def test_clone_returns_client_for_checkout(self, mock_run, git, tmp_path):
        mock_run.return_value = completed()
        target = tmp_path / "src" / "hello"

        checkout = git.clone("https://github.com/octo/hello.git", target)

        assert checkout.repo_dir == target
        args, kwargs = mock_run.call_args
        assert args[0] == ["git", "clone", "--origin", "origin", "https://github.com/octo/hello.git", str(target)]
        assert kwargs["cwd"] == str(target.parent)

    @patch("hubtools.git.subprocess.run")
    def test_push_with_upstream(self, mock_run, git):
        mock_run.side_effect = [completed("feature\n"), completed()]

        git.push("origin", set_upstream=True)

        assert mock_run.call_args_list[-1][0][0] == ["git", "push", "--set-upstream", "origin", "feature"]

    @patch("hubtools.git.subprocess.run")
    def test_add_remote(self, mock_run, git):
        mock_run.return_value = completed()
        git.add_remote("upstream", "https://github.com/octo/hello.git")
        assert mock_run.call_args[0][0] == ["git", "remote", "add", "upstream", "https://github.com/octo/hello.git"]

    @patch("hubtools.git.subprocess.run")
    def test_set_upstream(self, mock_run, git):
        mock_run.return_value = completed()
        git.set_upstream("origin", "main")
        assert mock_run.call_args[0][0] == ["git", "branch", "--set-upstream-to=origin/main", "main"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
