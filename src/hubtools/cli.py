#!/usr/bin/env python3
"""
hubcache command line

Usage:
    hubcache repo octo/hello
    hubcache issues octo/hello --state all --refresh
    hubcache clone octo/hello ~/src/hello
    hubcache --offline pulls octo/hello
    hubcache invalidate repo:octo/hello
    hubcache sweep | stats
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from hubcache.errors import HubCacheError
from hubcache.freshness import FreshnessLevel

from .actions import AssumeDefaults, RepositoryRef
from .config import ConfigError
from .context import HubContext
from .git import GitCommandError

logger = logging.getLogger(__name__)


class PromptDecisions:
    """Ask on the terminal."""

    def confirm(self, prompt: str, default: bool = True) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        answer = input(f"{prompt} {suffix} ").strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")

    def ask(self, prompt: str, default: Optional[str] = None) -> Optional[str]:
        suffix = f" [{default}]" if default else ""
        answer = input(f"{prompt}{suffix}: ").strip()
        return answer or default


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hubcache", description="GitHub repository operations with a response cache")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--offline", action="store_true", help="serve from cache only")
    parser.add_argument("--yes", "-y", action="store_true", help="accept default answers")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    def refresh_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("--refresh", action="store_true", help="always hit the network")
        p.add_argument("--cached", action="store_true", help="accept any cached data")

    p = sub.add_parser("repo", help="show repository metadata")
    p.add_argument("repository")
    refresh_flags(p)

    for name in ("issues", "pulls"):
        p = sub.add_parser(name, help=f"list {name}")
        p.add_argument("repository")
        p.add_argument("--state", default="open", choices=("open", "closed", "all"))
        refresh_flags(p)

    p = sub.add_parser("clone", help="clone a repository")
    p.add_argument("repository")
    p.add_argument("directory", nargs="?", type=Path)

    p = sub.add_parser("fork", help="fork a repository")
    p.add_argument("repository")
    p.add_argument("--org")
    p.add_argument("--repo-dir", type=Path, help="add the fork as a remote of this checkout")

    p = sub.add_parser("create", help="create a repository")
    p.add_argument("name")
    p.add_argument("--private", action="store_true")
    p.add_argument("--description")
    p.add_argument("--org")
    p.add_argument("--repo-dir", type=Path, default=Path("."))
    p.add_argument("--no-push", action="store_true")

    p = sub.add_parser("browse", help="open a repository, issue or pull request in the browser")
    p.add_argument("repository", nargs="?", help="defaults to the origin remote of the current directory")
    target = p.add_mutually_exclusive_group()
    target.add_argument("--issue", type=int)
    target.add_argument("--pull", type=int)
    p.add_argument("--print", action="store_true", help="print the URL instead of opening it")

    p = sub.add_parser("invalidate", help="drop cached entries")
    p.add_argument("prefix", nargs="?", help="raw key prefix, e.g. repo:octo/hello")
    p.add_argument("--repo", help="drop everything cached about OWNER/NAME")

    sub.add_parser("sweep", help="remove entries past hard expiry")
    sub.add_parser("stats", help="print cache statistics")
    return parser


def _level(args: argparse.Namespace, default: FreshnessLevel) -> FreshnessLevel:
    if getattr(args, "refresh", False):
        return FreshnessLevel.FORCE_REFRESH
    if getattr(args, "cached", False):
        return FreshnessLevel.CACHED_OK
    return default


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def print_report(ctx: HubContext) -> None:
    stats = ctx.cache.get_stats()
    print("\n" + "=" * 60)
    print("HUBCACHE REPORT")
    print("=" * 60)
    print(f"Hit Rate: {stats['hit_rate_percent']}% ({stats['hits']}/{stats['hits'] + stats['misses']})")
    print(f"Entries: {stats['entries']} ({'persistent' if stats['persistent'] else 'memory-only'})")
    print(f"Fetches: {stats['fetches']} | Negative: {stats['negative_fetches']} | Errors: {stats['errors']}")
    print(f"Stale served: {stats['stale_served']} | Offline served: {stats['offline_served']}")
    print(f"Rate limits: {ctx.rate_limits.get_stats() or 'no data'}")
    print("=" * 60 + "\n")


def run(ctx: HubContext, args: argparse.Namespace) -> int:
    actions = ctx.actions

    if args.command == "repo":
        repo = actions.repository(RepositoryRef.parse(args.repository), _level(args, FreshnessLevel.CACHED_OK))
        _print_json({k: repo.get(k) for k in ("full_name", "description", "private", "fork", "html_url", "clone_url")})
    elif args.command in ("issues", "pulls"):
        ref = RepositoryRef.parse(args.repository)
        level = _level(args, FreshnessLevel.FRESH)
        items = actions.issues(ref, args.state, level) if args.command == "issues" else \
            actions.pull_requests(ref, args.state, level)
        for item in items:
            print(f"#{item['number']:<6} {item['title']}")
    elif args.command == "clone":
        result = actions.clone(RepositoryRef.parse(args.repository), args.directory)
        print(f"Cloned {result.repository} into {result.path}")
        if result.upstream:
            print(f"Added upstream remote for {result.upstream}")
    elif args.command == "fork":
        fork = actions.fork(RepositoryRef.parse(args.repository), org=args.org, repo_dir=args.repo_dir)
        print(f"Forked to {fork}")
    elif args.command == "create":
        ref = actions.create_repository(
            args.name,
            private=args.private,
            description=args.description,
            org=args.org,
            repo_dir=args.repo_dir,
            push=not args.no_push,
        )
        print(f"Created {ref}")
    elif args.command == "browse":
        ref = RepositoryRef.parse(args.repository) if args.repository else actions.repository_from_remote()
        if ref is None:
            print("No GitHub remote found; pass OWNER/NAME", file=sys.stderr)
            return 2
        if args.print:
            print(actions.browse_url(ref, issue=args.issue, pull=args.pull))
        else:
            actions.browse(ref, issue=args.issue, pull=args.pull)
    elif args.command == "invalidate":
        if args.repo:
            ref = RepositoryRef.parse(args.repo)
            prefix = ctx.cache.codec.repository_prefix(ref.owner, ref.name)
        elif args.prefix:
            prefix = args.prefix
        else:
            print("Pass a key prefix or --repo OWNER/NAME", file=sys.stderr)
            return 2
        print(f"Invalidated {ctx.cache.invalidate_prefix(prefix)} entries")
    elif args.command == "sweep":
        print(f"Swept {ctx.cache.sweep()} entries")
    elif args.command == "stats":
        print_report(ctx)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    decisions = AssumeDefaults() if args.yes else PromptDecisions()
    try:
        ctx = HubContext.from_path(args.config, decisions=decisions)
    except (FileNotFoundError, ConfigError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    with ctx:
        if args.offline:
            ctx.cache.set_offline(True)
        try:
            return run(ctx, args)
        except (HubCacheError, GitCommandError, ValueError) as e:
            logger.debug("command failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1


if __name__ == "__main__":
    sys.exit(main())
