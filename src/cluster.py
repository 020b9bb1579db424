"""Cluster API client.

The orchestrator needs exactly two operations from the cluster: apply a
manifest document, and read one status condition. Both go through kubectl so
the user's kubeconfig, contexts and auth plugins apply unchanged.
"""

import json
import logging
import re
from typing import Optional, Protocol, runtime_checkable

import yaml

from common import run_command
from errors import ClusterError, ResourceTypeUnknownError, TransportError

logger = logging.getLogger(__name__)

# kubectl stderr fragments that mean "could not reach the API server"
_TRANSPORT_MARKERS = (
    'unable to connect to the server',
    'connection refused',
    'i/o timeout',
    'tls handshake timeout',
    'no route to host',
    'connection reset by peer',
    'context deadline exceeded',
    'the server is currently unable to handle the request',
    'command timed out',
)

# kubectl stderr fragments that mean "this kind is not registered (yet)"
_UNKNOWN_KIND_MARKERS = (
    'no matches for kind',
    'ensure crds are installed first',
    "the server doesn't have a resource type",
    'could not find the requested resource',
)

# kubectl stderr fragments that mean "credentials lack permission"
_ACCESS_DENIED_MARKERS = (
    '(forbidden)',
    'is forbidden:',
    '(unauthorized)',
    'you must be logged in to the server',
)

_NO_MATCH_KIND_RE = re.compile(r'no matches for kind "([^"]+)"')


@runtime_checkable
class ClusterClient(Protocol):
    """The two cluster operations the orchestrator consumes."""

    def apply(self, document: dict) -> None:
        """Submit one manifest document."""

    def get_condition(self, kind: str, namespace: str, name: str, condition: str) -> bool:
        """True if the object's status condition is True."""


def _is_transport_failure(rc: int, stderr: str) -> bool:
    lowered = stderr.lower()
    return rc == -1 or any(marker in lowered for marker in _TRANSPORT_MARKERS)


def _is_unknown_kind(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _UNKNOWN_KIND_MARKERS)


def _is_access_denied(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _ACCESS_DENIED_MARKERS)


def condition_status(obj: dict, condition: str) -> bool:
    """Read status.conditions[type=condition].status == 'True' from an object."""
    for entry in (obj.get('status') or {}).get('conditions') or []:
        if entry.get('type') == condition:
            return str(entry.get('status')) == 'True'
    return False


def describe_document(document: dict) -> str:
    """Short kind/name (namespace) label for log and error messages."""
    kind = document.get('kind', '?')
    metadata = document.get('metadata') or {}
    label = f"{kind}/{metadata.get('name', '?')}"
    if metadata.get('namespace'):
        label += f" -n {metadata['namespace']}"
    return label


class KubectlClient:
    """ClusterClient backed by the kubectl binary."""

    def __init__(self, kubectl: str = 'kubectl', context: Optional[str] = None,
                 timeout: int = 60):
        """Initialize kubectl client.

        Args:
            kubectl: kubectl binary
            context: kube context (None = current context)
            timeout: Per-command timeout in seconds
        """
        self.kubectl = kubectl
        self.context = context
        self.timeout = timeout

    def _base_cmd(self) -> list[str]:
        cmd = [self.kubectl]
        if self.context:
            cmd += ['--context', self.context]
        return cmd

    def apply(self, document: dict) -> None:
        """Apply one document (client-side apply, as `kubectl apply -f`).

        Raises:
            ResourceTypeUnknownError: If the document's kind is not registered yet
            TransportError: If the API server cannot be reached
            ClusterError: If the API server rejects the document
        """
        label = describe_document(document)
        manifest = yaml.safe_dump(document, sort_keys=False)
        rc, out, err = run_command(
            self._base_cmd() + ['apply', '-f', '-'],
            timeout=self.timeout,
            input_text=manifest,
        )
        if rc == 0:
            logger.debug(f"Applied {label}: {out.strip()}")
            return

        detail = err.strip() or out.strip() or f'kubectl exited {rc}'
        if _is_unknown_kind(detail):
            match = _NO_MATCH_KIND_RE.search(detail)
            raise ResourceTypeUnknownError(match.group(1) if match else document.get('kind', '?'),
                                           detail)
        if _is_transport_failure(rc, detail):
            raise TransportError(f"Cannot reach cluster applying {label}: {detail}")
        raise ClusterError(f"{label} rejected: {detail}")

    def get_condition(self, kind: str, namespace: str, name: str, condition: str) -> bool:
        """Read a status condition.

        A missing object, or a kind the server does not know yet, reads as
        False: it simply has not become ready.

        Raises:
            TransportError: If the API server cannot be reached or the
                response cannot be parsed
            ClusterError: If the credentials may not read the object
        """
        rc, out, err = run_command(
            self._base_cmd() + ['get', f'{kind.lower()}/{name}', '-n', namespace, '-o', 'json'],
            timeout=self.timeout,
        )
        if rc != 0:
            detail = err.strip() or f'kubectl exited {rc}'
            if _is_access_denied(detail):
                raise ClusterError(f"Cannot read {kind}/{name} -n {namespace}: {detail}")
            if 'notfound' in detail.lower().replace(' ', '') or _is_unknown_kind(detail):
                logger.debug(f"{kind}/{name} -n {namespace} not present yet")
                return False
            raise TransportError(f"Cannot read {kind}/{name} -n {namespace}: {detail}")

        try:
            obj = json.loads(out)
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON for {kind}/{name} -n {namespace}: {e}")
        return condition_status(obj, condition)

    def version(self) -> tuple[bool, str]:
        """Server reachability check used by pre-flight checks."""
        rc, out, err = run_command(self._base_cmd() + ['version', '-o', 'json'], timeout=15)
        if rc != 0:
            return False, err.strip() or f'kubectl exited {rc}'
        try:
            data = json.loads(out)
        except json.JSONDecodeError:
            return True, out.strip()
        server = (data.get('serverVersion') or {}).get('gitVersion', 'unknown')
        return True, f"Kubernetes API reachable (server {server})"

    def list_names(self, resource: str, namespace: Optional[str] = None) -> list[str]:
        """Names of every object of a resource type (kubectl get -o name).

        Raises:
            TransportError: If the listing fails
        """
        cmd = self._base_cmd() + ['get', resource, '-o', 'name']
        if namespace:
            cmd += ['-n', namespace]
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            raise TransportError(f"Cannot list {resource}: {err.strip() or f'kubectl exited {rc}'}")
        return [line.split('/', 1)[-1] for line in out.split() if line]
