#!/usr/bin/env python3
"""CLI entry point for stack-driver.

Supports noun-action subcommands:
- Install: stack-driver install apply -P dev
- Version: stack-driver version strimzi 0.50.0

Nouns:
- install: Apply a plan in dependency order and wait for readiness (apply/plan/validate)
- version: Pinned component versions (update/check/list)
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from common import run_command

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "install": "Apply a plan in dependency order (apply/plan/validate)",
    "version": "Pinned component versions (update/check/list)",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def dispatch_install(argv: list) -> int:
    """Dispatch 'install' noun to action-specific handler.

    Args:
        argv: Arguments after 'install' (e.g., ['apply', '-P', 'dev'])

    Returns:
        Exit code
    """
    if not argv or argv[0].startswith('-'):
        print("Usage: stack-driver install <action> [options]")
        print()
        print("Actions:")
        print("  apply     Apply each unit and wait for it to be ready")
        print("  plan      Show the apply order without touching the cluster")
        print("  validate  Validate plan structure and references")
        print()
        print("Run 'stack-driver install <action> --help' for action-specific options.")
        return 1 if not argv else 0

    action = argv[0]
    rest = argv[1:]

    if action == "apply":
        from orchestrator.cli import apply_main
        rc: int = apply_main(rest)
        return rc
    if action == "plan":
        from orchestrator.cli import plan_main
        rc = plan_main(rest)
        return rc
    if action == "validate":
        from orchestrator.cli import validate_main
        rc = validate_main(rest)
        return rc

    print(f"Error: Unknown install action '{action}'")
    print("Available actions: apply, plan, validate")
    return 1


def dispatch_noun(noun: str, argv: list) -> int:
    """Dispatch to noun-specific CLI handler.

    Args:
        noun: The noun command (e.g., "install", "version")
        argv: Remaining command line arguments

    Returns:
        Exit code
    """
    if noun == "install":
        return dispatch_install(argv)

    if noun == "version":
        from versions.cli import main as version_main
        rc: int = version_main(argv)
        return rc

    print(f"Error: Noun '{noun}' not yet implemented")
    return 1


def get_version() -> str:
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    rc, out, _ = run_command(
        ['git', 'describe', '--tags', '--abbrev=0'],
        cwd=Path(__file__).parent,
        timeout=10,
    )
    return out.strip() if rc == 0 and out.strip() else 'dev'


def print_usage() -> None:
    """Print top-level usage showing noun commands."""
    print(f"stack-driver {get_version()}")
    print()
    print("Usage: stack-driver <noun> <action> [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<12} {desc}")
    print()
    print("Run 'stack-driver <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  stack-driver install apply -P dev")
    print("  stack-driver install plan -P dev --json-output")
    print("  stack-driver version strimzi 0.50.0 --dry-run")
    print("  stack-driver version --list 10 apicurio-registry")


def main(argv: Optional[list] = None) -> int:
    """CLI entry point: dispatch to noun-action handlers."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0

    first_arg = argv[0]
    if first_arg == '--version':
        print(f"stack-driver {get_version()}")
        return 0

    if first_arg in NOUN_COMMANDS:
        return dispatch_noun(first_arg, argv[1:])

    print(f"Error: Unknown command '{first_arg}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
