"""CLI handlers for install verbs (apply, plan, validate).

Usage:
    stack-driver install apply -P <plan> [--dry-run] [--json-output] [--verbose]
    stack-driver install plan -P <plan> [--json-output]
    stack-driver install validate -P <plan> [--verbose]
"""

import argparse
import json
import logging
import sys
import time

from cluster import KubectlClient
from common import CancelToken, install_signal_handlers
from config import StackConfig, clamp_poll_interval, load_stack_config, parse_duration
from errors import ConfigError, NotFoundError
from orchestrator.executor import Orchestrator
from orchestrator.graph import DependencyGraph
from orchestrator.state import RunState
from plan import Plan, load_plan, validate_plan_refs
from readiness import format_preflight_results, run_preflight_checks
from resolver.manifests import ManifestSetResolver
from versions.registry import VersionRegistry

logger = logging.getLogger(__name__)


def _common_parser(verb: str, description: str) -> argparse.ArgumentParser:
    """Build argument parser with common options for all verbs."""
    parser = argparse.ArgumentParser(
        prog=f'stack-driver install {verb}',
        description=description,
    )
    parser.add_argument(
        '--plan', '-P',
        help='Plan name from the stack plans/ directory',
    )
    parser.add_argument(
        '--plan-file',
        help='Path to plan file',
    )
    parser.add_argument(
        '--plan-json',
        help='Inline plan JSON',
    )
    parser.add_argument(
        '--root',
        help='Stack directory (default: STACK_DRIVER_ROOT or nearest stack.yaml)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    return parser


def _run_parser(verb: str, description: str) -> argparse.ArgumentParser:
    """Parser for verbs that walk the plan (apply, plan)."""
    parser = _common_parser(verb, description)
    parser.add_argument(
        '--timeout',
        help='Default readiness timeout per unit (e.g. 120 or 120s)',
    )
    parser.add_argument(
        '--poll-interval',
        type=float,
        help='Seconds between readiness polls (clamped to 2-5)',
    )
    parser.add_argument(
        '--context',
        help='kube context (default: current context)',
    )
    parser.add_argument(
        '--repo',
        help='Render targets from this GitHub repo (owner/name) instead of the stack directory',
    )
    parser.add_argument(
        '--ref',
        help='Git ref of --repo to render (default: main)',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    return parser


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    if json_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_plan_and_config(args) -> tuple[Plan, StackConfig]:
    """Load stack config and plan from parsed args.

    Raises:
        SystemExit: On missing or invalid configuration
    """
    if not args.plan and not args.plan_file and not args.plan_json:
        print("Error: specify a plan with -P, --plan-file, or --plan-json", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_stack_config(args.root)
        plan = load_plan(config, name=args.plan, file_path=args.plan_file,
                         json_str=args.plan_json)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    return plan, config


def _apply_overrides(args, config: StackConfig) -> None:
    """Apply command-line overrides to the stack settings."""
    settings = config.settings
    if getattr(args, 'timeout', None):
        settings.timeout = parse_duration(args.timeout)
    if getattr(args, 'poll_interval', None) is not None:
        settings.poll_interval = clamp_poll_interval(args.poll_interval)
    if getattr(args, 'context', None):
        settings.context = args.context
    if getattr(args, 'repo', None):
        settings.repo = args.repo
    if getattr(args, 'ref', None):
        settings.ref = args.ref


def _plan_components(plan: Plan, config: StackConfig) -> list[str]:
    """Components whose pinned versions the plan's units consume."""
    if any(unit.components is None for unit in plan.units):
        return list(config.components)
    names: dict[str, None] = {}
    for unit in plan.units:
        names.update(dict.fromkeys(unit.components or ()))
    return list(names)


def _build_orchestrator(plan: Plan, config: StackConfig, dry_run: bool,
                        cancel: CancelToken) -> Orchestrator:
    """Build graph, pins and client for a plan.

    Raises:
        ConfigError: On graph errors or unknown components
        NotFoundError: If a pinned version cannot be read
    """
    graph = DependencyGraph.from_plan(plan)
    settings = config.settings
    if settings.remote:
        # the ref fixes the versions; local pins would not match it
        logger.info(f"Rendering from {settings.repo} at {settings.ref}; local pins not applied")
        pinned = []
    else:
        pinned = VersionRegistry(config).pinned_all(_plan_components(plan, config))
    for pin in pinned:
        logger.debug(f"Pinned {pin}")

    return Orchestrator(
        client=KubectlClient(settings.kubectl, settings.context),
        resolver=ManifestSetResolver(config),
        graph=graph,
        pinned=pinned,
        settings=settings,
        dry_run=dry_run,
        cancel=cancel,
        plan_name=plan.name,
        default_timeout=plan.timeout,
    )


def _run_preflight(args, config: StackConfig, plan: Plan) -> int | None:
    """Run preflight checks for apply.

    Returns:
        None if checks pass or are skipped, else the exit code
    """
    if args.skip_preflight or args.dry_run:
        return None

    success, results = run_preflight_checks(config, sorted({u.target for u in plan.units}))
    if not success:
        print(format_preflight_results(results), file=sys.stderr)
        print("\nUse --skip-preflight to bypass these checks", file=sys.stderr)
        return 1

    logger.info("Pre-flight validation passed")
    return None


def _emit_json(verb: str, success: bool, state: RunState, duration: float) -> None:
    """Emit structured JSON output."""
    output = {
        'verb': verb,
        'success': success,
        'duration_seconds': round(duration, 2),
        **state.to_dict(),
    }
    print(json.dumps(output, indent=2))


def _print_summary(state: RunState) -> None:
    print("")
    print(f"Install summary for plan '{state.plan_name}':")
    for name, unit_state in state.units.items():
        duration = f" ({unit_state.duration:.1f}s)" if unit_state.duration is not None else ""
        print(f"  {unit_state.status:<10} {name}{duration}")
        if unit_state.error:
            print(f"             {unit_state.error}")
    print("")


def _print_deployed(orchestrator: Orchestrator, state: RunState) -> None:
    """List what a successful run installed and how to check it by hand."""
    settings = orchestrator.settings
    context = f" --context {settings.context}" if settings.context else ""
    units = [orchestrator.graph.get_unit(name) for name in state.completed()]

    print("Deployed components:")
    for unit in units:
        pins = ' '.join(str(p) for p in orchestrator.pins_for(unit))
        print(f"  - {unit.name:<20} (target: {unit.target}{', ' + pins if pins else ''})")
    print("")

    commands: dict[str, None] = {}
    for unit in units:
        for condition in unit.ready_when:
            commands[f"kubectl{context} get {condition.kind.lower()} "
                     f"-n {condition.namespace} {condition.name}"] = None
    if commands:
        print("Verify with:")
        for command in commands:
            print(f"  {command}")
        print("")


def apply_main(argv: list) -> int:
    """Handle 'install apply' verb."""
    parser = _run_parser('apply', 'Apply a plan: each unit, then wait for it to be ready')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview operations without executing',
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip pre-flight validation checks',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    plan, config = _load_plan_and_config(args)
    try:
        _apply_overrides(args, config)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    errors = validate_plan_refs(plan, config)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    preflight_rc = _run_preflight(args, config, plan)
    if preflight_rc is not None:
        return preflight_rc

    cancel = CancelToken()
    try:
        orchestrator = _build_orchestrator(plan, config, args.dry_run, cancel)
    except (ConfigError, NotFoundError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not args.dry_run:
        install_signal_handlers(cancel)

    source = f"{config.settings.repo} at {config.settings.ref}" if config.settings.remote else config.root
    logger.info(f"Installing plan '{plan.name}' from {source}")

    start = time.time()
    success, state = orchestrator.run()
    duration = time.time() - start

    if args.json_output:
        _emit_json('apply', success, state, duration)
    elif not args.dry_run:
        _print_summary(state)
        if success:
            _print_deployed(orchestrator, state)

    return 0 if success else 1


def plan_main(argv: list) -> int:
    """Handle 'install plan' verb: show the apply order without touching the cluster."""
    parser = _run_parser('plan', 'Show the order a plan would be applied in')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    plan, config = _load_plan_and_config(args)
    try:
        _apply_overrides(args, config)
        orchestrator = _build_orchestrator(plan, config, True, CancelToken())
    except (ConfigError, NotFoundError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.json_output:
        order = orchestrator.run_order()
        output = {
            'plan': plan.name,
            'order': [
                {
                    'name': unit.name,
                    'target': unit.target,
                    'depth': orchestrator.graph.depth(unit.name),
                    'requires': orchestrator.graph.prerequisites_of(unit.name),
                    'ready_when': [str(c) for c in unit.ready_when],
                    'pins': [str(p) for p in orchestrator.pins_for(unit)],
                    'timeout': orchestrator.timeout_for(unit),
                }
                for unit in order
            ],
        }
        print(json.dumps(output, indent=2))
        return 0

    orchestrator.run()
    return 0


def validate_main(argv: list) -> int:
    """Handle 'install validate' verb.

    Validates plan structure, the dependency graph, and references to
    stack.yaml:
    - target: registered in stack.yaml and its directory exists
    - components: registered in stack.yaml
    """
    parser = _common_parser('validate', 'Validate plan structure and references')
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    plan, config = _load_plan_and_config(args)

    try:
        graph = DependencyGraph.from_plan(plan)
    except ConfigError as e:
        print(f"Plan '{plan.name}' is invalid:", file=sys.stderr)
        print(f"  ✗ {e.message}", file=sys.stderr)
        return 1

    errors = validate_plan_refs(plan, config)
    if errors:
        print(f"Plan '{plan.name}' has {len(errors)} validation error(s):", file=sys.stderr)
        for error in errors:
            print(f"  ✗ {error}", file=sys.stderr)
        return 1

    for unit in graph.topological_order():
        logger.debug(f"Unit '{unit.name}' -> target {config.target_dir(unit.target)}")

    unit_count = len(graph)
    print(f"Plan '{plan.name}' is valid ({unit_count} unit{'s' if unit_count != 1 else ''})")
    return 0
