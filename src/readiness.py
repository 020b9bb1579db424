"""Pre-flight readiness checks for install runs.

Validates prerequisites before anything is applied:
- kubectl installed
- Cluster API reachable
- Target overlays present in the stack directory
- IngressClass present (warning only)
"""

import logging
import shutil
from typing import Optional

from cluster import KubectlClient
from common import run_command
from config import StackConfig
from errors import TransportError

logger = logging.getLogger(__name__)


def validate_kubectl_installed(kubectl: str = 'kubectl') -> tuple[bool, str]:
    """Check that the kubectl binary is on PATH and runs.

    Args:
        kubectl: Binary name or path

    Returns:
        (success, message) tuple
    """
    if shutil.which(kubectl) is None:
        return False, (
            f"{kubectl} not found on PATH. "
            "Install it from https://kubernetes.io/docs/tasks/tools/ "
            "or set STACK_DRIVER_KUBECTL"
        )
    rc, out, err = run_command([kubectl, 'version', '--client'], timeout=15)
    if rc != 0:
        return False, f"{kubectl} is installed but failed to run: {err.strip() or out.strip()}"
    first_line = out.strip().splitlines()[0] if out.strip() else 'client ok'
    return True, f"{kubectl} available ({first_line})"


def validate_cluster_reachable(client: KubectlClient) -> tuple[bool, str]:
    """Check that the cluster API answers.

    Args:
        client: Configured kubectl client (context already selected)

    Returns:
        (success, message) tuple
    """
    success, message = client.version()
    if success:
        return True, message
    context = client.context or 'current context'
    return False, (
        f"Cannot reach cluster ({context}): {message}\n"
        "Check KUBECONFIG or pass --context"
    )


def validate_targets_present(config: StackConfig, targets: list[str]) -> tuple[bool, str]:
    """Check that every target's overlay directory exists.

    Args:
        config: Loaded stack configuration
        targets: Target names referenced by the plan

    Returns:
        (success, message) tuple
    """
    settings = config.settings
    if settings.remote:
        return True, f"{len(targets)} target(s) rendered from {settings.repo} at {settings.ref}"
    missing = []
    for name in targets:
        path = config.target_dir(name)
        if not path.is_dir():
            missing.append(f"{name} ({path})")
    if missing:
        return False, f"Missing overlay directories: {', '.join(missing)}"
    return True, f"{len(targets)} target overlay(s) present"


def validate_ingress_class(client: KubectlClient) -> tuple[bool, str]:
    """Check that the cluster has an IngressClass (the console needs one).

    Returns:
        (success, message) tuple; a failure here is only a warning
    """
    try:
        names = client.list_names('ingressclass')
    except TransportError as e:
        return False, f"Could not list IngressClasses: {e.message}"
    if not names:
        return False, (
            "No IngressClass found in the cluster\n"
            "StreamsHub Console requires an Ingress controller "
            "(e.g. 'minikube addons enable ingress')"
        )
    return True, f"IngressClass available: {', '.join(names)}"


def run_preflight_checks(config: StackConfig, targets: list[str],
                         client: Optional[KubectlClient] = None) -> tuple[bool, dict]:
    """Run install pre-flight checks.

    Cluster reachability is only checked when kubectl itself works.

    Returns:
        (success, results) tuple where results maps category to
        {'passed': [...], 'failed': [...]}
    """
    settings = config.settings
    results: dict[str, dict[str, list[str]]] = {
        'stack': {'passed': [], 'failed': []},
        'kubectl': {'passed': [], 'failed': []},
        'cluster': {'passed': [], 'failed': []},
    }

    ok, message = validate_targets_present(config, targets)
    results['stack']['passed' if ok else 'failed'].append(message)

    ok, message = validate_kubectl_installed(settings.kubectl)
    results['kubectl']['passed' if ok else 'failed'].append(message)

    if ok:
        if client is None:
            client = KubectlClient(settings.kubectl, settings.context)
        ok, message = validate_cluster_reachable(client)
        results['cluster']['passed' if ok else 'failed'].append(message)
        if ok:
            ok, message = validate_ingress_class(client)
            if ok:
                results['cluster']['passed'].append(message)
            else:
                for line in message.split('\n'):
                    logger.warning(line)

    success = all(not category['failed'] for category in results.values())
    return success, results


def format_preflight_results(results: dict) -> str:
    """Format preflight check results for display."""
    lines = ["\nPreflight checks:\n"]

    category_names = {
        'stack': 'Stack directory',
        'kubectl': 'kubectl',
        'cluster': 'Cluster connectivity',
    }

    for key, name in category_names.items():
        category = results.get(key, {'passed': [], 'failed': []})
        if category['passed'] or category['failed']:
            lines.append(f"{name}:")
            for item in category['passed']:
                lines.append(f"✓ {item}")
            for item in category['failed']:
                first_line, *rest = item.split('\n')
                lines.append(f"✗ {first_line}")
                for line in rest:
                    lines.append(f"  {line}")
            lines.append("")

    if all(not cat['failed'] for cat in results.values()):
        lines.append("All checks passed. Ready to install.")
    else:
        lines.append("Some checks failed. Fix issues before installing.")

    return '\n'.join(lines)
