"""Error taxonomy for stack-driver.

Configuration errors are raised before anything is mutated. Apply and
readiness errors abort an install run; everything applied before the failure
stays applied. Version errors abort a rewrite before any file is written.

Each error carries a short code so CLI output and JSON reports can be
matched without parsing messages.
"""

from pathlib import Path
from typing import Optional


class StackError(Exception):
    """Base exception for stack-driver errors."""

    code = 'E000'

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code}: {message}")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

class ConfigError(StackError):
    """Invalid or missing configuration."""

    code = 'E100'


class CycleError(ConfigError):
    """Adding a dependency edge would close a cycle."""

    code = 'E101'

    def __init__(self, unit: str, path: list[str]):
        self.unit = unit
        self.path = path
        super().__init__(
            f"Dependency cycle involving '{unit}': {' -> '.join(path)}"
        )


class UnknownPrerequisiteError(ConfigError):
    """A prerequisite name was not registered in the graph."""

    code = 'E102'

    def __init__(self, unit: str, prerequisite: str):
        self.unit = unit
        self.prerequisite = prerequisite
        super().__init__(
            f"Unit '{unit}' requires unknown unit '{prerequisite}'"
        )


class UnknownTargetError(ConfigError):
    """A target name has no overlay registered in stack.yaml."""

    code = 'E103'

    def __init__(self, target: str, available: Optional[list[str]] = None):
        self.target = target
        hint = f". Available: {', '.join(available)}" if available else ''
        super().__init__(f"Unknown target '{target}'{hint}")


class UnknownComponentError(ConfigError):
    """A component name is not registered in stack.yaml."""

    code = 'E104'

    def __init__(self, component: str, available: Optional[list[str]] = None):
        self.component = component
        hint = f". Valid components: {', '.join(available)}" if available else ''
        super().__init__(f"Unknown component: {component}{hint}")


class InvalidVersionError(ConfigError):
    """A version string is not of the form MAJOR.MINOR.PATCH."""

    code = 'E105'

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            f"Invalid version format: {version!r} (expected X.Y.Z, e.g. 0.50.0)"
        )


class RenderError(ConfigError):
    """The overlay renderer failed to produce manifests."""

    code = 'E106'


# -----------------------------------------------------------------------------
# Cluster
# -----------------------------------------------------------------------------

class ClusterError(StackError):
    """The cluster rejected a request."""

    code = 'E200'


class ResourceTypeUnknownError(ClusterError):
    """The cluster does not know a document's kind yet (CRD not registered)."""

    code = 'E201'

    def __init__(self, kind: str, detail: str = ''):
        self.kind = kind
        suffix = f": {detail}" if detail else ''
        super().__init__(f"Resource type '{kind}' not registered{suffix}")


class TransportError(StackError):
    """Transient network failure talking to the cluster or release index."""

    code = 'E300'


class ApplyError(StackError):
    """A unit's manifests were rejected. Fatal for the run."""

    code = 'E210'

    def __init__(self, unit: str, cause: str):
        self.unit = unit
        self.cause = cause
        super().__init__(f"Apply failed for unit '{unit}': {cause}")


class ReadinessTimeoutError(StackError):
    """A unit's readiness condition was not observed before the deadline."""

    code = 'E220'

    def __init__(self, unit: str, elapsed: float, pending: str = '',
                 last_error: Optional[Exception] = None):
        self.unit = unit
        self.elapsed = elapsed
        self.pending = pending
        self.last_error = last_error
        msg = f"Unit '{unit}' not ready after {elapsed:.1f}s"
        if pending:
            msg += f" (waiting for {pending})"
        if last_error is not None:
            msg += f"; first transport error: {last_error}"
        super().__init__(msg)


class RunCancelledError(StackError):
    """The run was cancelled while waiting."""

    code = 'E230'

    def __init__(self, unit: str):
        self.unit = unit
        super().__init__(f"Cancelled while waiting for unit '{unit}'")


# -----------------------------------------------------------------------------
# Versions
# -----------------------------------------------------------------------------

class NotFoundError(StackError):
    """A version is missing from a file or from the release index."""

    code = 'E400'

    def __init__(self, message: str, file: Optional[Path] = None):
        self.file = file
        super().__init__(message)
