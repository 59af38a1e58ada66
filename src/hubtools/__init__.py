"""
hubtools: GitHub repository operations on top of hubcache
Config, GitHub client, git client, actions, CLI
"""

from .actions import AssumeDefaults, DecisionProvider, RepositoryActions, RepositoryRef
from .config import HubConfig, load_config
from .context import HubContext
from .git import GitClient, GitCommandError
from .github import GitHubClient, GitHubFetcher

__all__ = [
    'AssumeDefaults',
    'DecisionProvider',
    'GitClient',
    'GitCommandError',
    'GitHubClient',
    'GitHubFetcher',
    'HubConfig',
    'HubContext',
    'RepositoryActions',
    'RepositoryRef',
    'load_config',
]
