"""Version rewriter for pinned component versions.

Rewrites the version token in every file registered to a component. A
rewrite either validates every file and then writes them all, or aborts
before writing anything:

    IDLE -> VERSION_RESOLVED -> FILES_VALIDATED -> FILES_WRITTEN
                             \\-> ABORTED (a file lacks the current version)

Nothing carries over between invocations.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from config import StackConfig
from errors import NotFoundError
from versions.pinned import read_current_version, validate_version, version_occurrences
from versions.registry import VersionRegistry

logger = logging.getLogger(__name__)


class RewriteMode(str, Enum):
    APPLY = 'apply'
    DRY_RUN = 'dry-run'


class RewriteState(str, Enum):
    IDLE = 'idle'
    VERSION_RESOLVED = 'version-resolved'
    FILES_VALIDATED = 'files-validated'
    FILES_WRITTEN = 'files-written'
    ABORTED = 'aborted'


@dataclass
class LineChange:
    """One changed line: 1-based line number, before and after."""
    line_no: int
    old: str
    new: str


@dataclass
class FileChange:
    """Planned (or performed) rewrite of one file."""
    path: Path
    occurrences: int
    lines: list[LineChange] = field(default_factory=list)
    new_text: str = field(default='', repr=False)


@dataclass
class RewriteReport:
    """Outcome of one rewrite invocation."""
    component: str
    old_version: str
    new_version: str
    mode: RewriteMode
    state: RewriteState = RewriteState.IDLE
    files: list[FileChange] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    @property
    def no_op(self) -> bool:
        return self.old_version == self.new_version

    @property
    def file_count(self) -> int:
        return len(self.files)


def _read(path: Path) -> str:
    # newline='' keeps line endings intact so rewrites round-trip byte for byte
    with open(path, encoding='utf-8', newline='') as f:
        return f.read()


def _write_atomic(path: Path, text: str) -> None:
    """Write text next to path, then rename over it."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
        shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class VersionRewriter:
    """Rewrites a component's pinned version across its registered files."""

    def __init__(self, config: StackConfig, registry: Optional[VersionRegistry] = None):
        self.config = config
        self.registry = registry or VersionRegistry(config)

    def current_version(self, component: str) -> str:
        """Version token in the first file registered to the component."""
        return read_current_version(self.config, component)

    def plan_changes(self, component: str, old_version: str, new_version: str) -> list[FileChange]:
        """Compute the rewrite of every registered file without writing.

        Raises:
            NotFoundError: If a file is missing or lacks old_version
        """
        token = version_occurrences(old_version)
        changes = []
        for path in self.config.component(component).paths(self.config.root):
            if not path.is_file():
                raise NotFoundError(f"File not found: {path}", file=path)
            text = _read(path)
            occurrences = len(token.findall(text))
            if occurrences == 0:
                raise NotFoundError(f"Version {old_version} not found in {path}", file=path)

            lines = [
                LineChange(line_no=i, old=line, new=token.sub(new_version, line))
                for i, line in enumerate(text.splitlines(), start=1)
                if token.search(line)
            ]
            changes.append(FileChange(
                path=path,
                occurrences=occurrences,
                lines=lines,
                new_text=token.sub(new_version, text),
            ))
        return changes

    def rewrite(self, component: str, new_version: str,
                mode: RewriteMode = RewriteMode.APPLY) -> RewriteReport:
        """Move a component from its current version to new_version.

        Raises:
            UnknownComponentError: If the component is not registered
            InvalidVersionError: If new_version is malformed (nothing touched)
            NotFoundError: If any registered file lacks the current version
                (nothing written)
        """
        mode = RewriteMode(mode)
        validate_version(new_version)
        entry = self.config.component(component)

        old_version = self.current_version(component)
        report = RewriteReport(
            component=component,
            old_version=old_version,
            new_version=new_version,
            mode=mode,
            state=RewriteState.VERSION_RESOLVED,
        )
        logger.info(f"Current {entry.label} version: {old_version}")
        logger.info(f"Target {entry.label} version: {new_version}")

        if report.no_op:
            logger.warning(f"Already at version {new_version}")
            return report

        try:
            report.files = self.plan_changes(component, old_version, new_version)
        except NotFoundError:
            report.state = RewriteState.ABORTED
            logger.error(f"Rewrite of {entry.label} aborted; no files were changed")
            raise
        report.state = RewriteState.FILES_VALIDATED

        if mode == RewriteMode.DRY_RUN:
            return report

        for change in report.files:
            try:
                _write_atomic(change.path, change.new_text)
            except OSError:
                report.state = RewriteState.ABORTED
                logger.error(
                    f"Write failed for {change.path}; already updated: "
                    f"{', '.join(str(p) for p in report.written) or 'none'}"
                )
                raise
            report.written.append(change.path)
            logger.info(f"Updated: {change.path}")

        report.state = RewriteState.FILES_WRITTEN
        return report

    def exists(self, component: str, version: str) -> bool:
        """Confirm the release index lists the version.

        Raises:
            NotFoundError: If the index does not list it
            TransportError: If the index cannot be reached
        """
        self.registry.require(component, version)
        return True
