"""Version maintenance CLI.

Usage:
    stack-driver version <component> <new-version> [--dry-run]
    stack-driver version --check <component> <new-version>
    stack-driver version --list [N|all] <component>
    stack-driver version --current <component>
"""

import argparse
import logging
import sys

from config import load_stack_config
from errors import (
    ConfigError,
    InvalidVersionError,
    NotFoundError,
    TransportError,
)
from versions.pinned import validate_version
from versions.registry import VersionRegistry
from versions.rewriter import RewriteMode, RewriteReport, VersionRewriter

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stack-driver version',
        description='Update component versions in kustomization files',
    )
    parser.add_argument('component', nargs='?', help='Component to update (e.g. strimzi)')
    parser.add_argument('new_version', nargs='?', help='Version to update to (e.g. 0.50.0)')
    parser.add_argument(
        '--check', '-c',
        action='store_true',
        help='Only check if the release exists upstream (no changes made)',
    )
    parser.add_argument(
        '--dry-run', '-d',
        action='store_true',
        help='Show what would be changed without making changes',
    )
    parser.add_argument(
        '--list', '-l',
        nargs='?',
        const='default',
        metavar='N|all',
        help='List available versions (default: 20, or "all")',
    )
    parser.add_argument(
        '--current',
        action='store_true',
        help='Print the currently pinned version',
    )
    parser.add_argument('--root', help='Stack directory (default: discovered)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser


def _normalize_list_arg(args) -> None:
    """Let '--list strimzi' mean "list strimzi releases", not a count of 'strimzi'."""
    if args.list is None or args.list in ('default', 'all') or args.list.isdigit():
        return
    args.component, args.new_version = args.list, args.component
    args.list = 'default'


def list_releases(registry: VersionRegistry, component: str, limit: str) -> int:
    """Print available releases, marking the pinned one."""
    config = registry.config
    entry = config.component(component)
    fetch_all = limit == 'all'
    count = 'all' if fetch_all else int(config.settings.list_limit if limit == 'default' else limit)

    logger.info(f"Fetching available {entry.label} releases...")
    try:
        releases = registry.available(component, count)
    except (TransportError, NotFoundError) as e:
        print(f"Error: Failed to fetch releases: {e.message}", file=sys.stderr)
        return 1
    if not releases:
        print(f"Error: No releases found for {entry.repo}", file=sys.stderr)
        return 1

    try:
        current = registry.pinned(component).version
    except (NotFoundError, InvalidVersionError):
        current = None

    if fetch_all:
        print(f"Available {entry.label} versions (all {len(releases)}):")
    else:
        print(f"Available {entry.label} versions (latest {count}):")
    print()
    for version in releases:
        suffix = '  (current)' if version == current else ''
        print(f"  {version}{suffix}")
    print()
    logger.info(f"View all releases: {config.settings.github_url}/{entry.repo}/releases")
    return 0


def _print_report(report: RewriteReport, label: str) -> None:
    if report.mode == RewriteMode.DRY_RUN:
        for change in report.files:
            print(f"Would update: {change.path}")
            print(f"  Old version: {report.old_version}")
            print(f"  New version: {report.new_version}")
            print("  Changes:")
            for line in change.lines:
                print(f"    - {line.old}")
                print(f"    + {line.new}")
        print()
        logger.info(f"Dry run complete. {report.file_count} file(s) would be updated.")
        return

    print()
    logger.info(
        f"Updated {len(report.written)} file(s) from {report.old_version} to {report.new_version}"
    )
    print()
    print("Next steps:")
    print("  1. Review the changes: git diff")
    print("  2. Test the deployment: kubectl apply -k <overlay-dir> --dry-run=client")
    print(f"  3. Commit the changes: git add -A && git commit -m "
          f"'Update {label} to {report.new_version}'")


def main(argv: list) -> int:
    """Version CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _normalize_list_arg(args)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.component:
        print("Error: No component specified", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        config = load_stack_config(args.root)
        entry = config.component(args.component)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    registry = VersionRegistry(config)
    rewriter = VersionRewriter(config, registry)

    if args.list is not None:
        return list_releases(registry, args.component, args.list)

    if args.current:
        try:
            print(rewriter.current_version(args.component))
        except NotFoundError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        return 0

    if not args.new_version:
        print("Error: No version specified", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        validate_version(args.new_version)
    except InvalidVersionError:
        print(f"Error: Invalid version format: {args.new_version}", file=sys.stderr)
        print("Expected format: X.Y.Z (e.g., 0.50.0)", file=sys.stderr)
        return 1

    try:
        current = rewriter.current_version(args.component)
    except NotFoundError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.check:
        logger.info(f"Current {entry.label} version: {current}")
        try:
            rewriter.exists(args.component, args.new_version)
        except NotFoundError:
            print(f"Error: {entry.label} release {args.new_version} not found upstream",
                  file=sys.stderr)
            print(f"Check available releases at: "
                  f"{config.settings.github_url}/{entry.repo}/releases", file=sys.stderr)
            return 1
        except TransportError as e:
            print(f"Error: Could not reach release index: {e.message}", file=sys.stderr)
            return 1
        return 0

    mode = RewriteMode.DRY_RUN if args.dry_run else RewriteMode.APPLY
    try:
        report = rewriter.rewrite(args.component, args.new_version, mode)
    except NotFoundError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if report.no_op:
        return 0

    _print_report(report, entry.label)
    return 0
