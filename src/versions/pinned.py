"""Pinned component versions and version-token scanning."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import Component, StackConfig
from errors import InvalidVersionError, NotFoundError

VERSION_RE = re.compile(r'^[0-9]+\.[0-9]+\.[0-9]+$')


def is_valid_version(version: str) -> bool:
    return bool(VERSION_RE.match(version or ''))


def validate_version(version: str) -> str:
    """Return version unchanged if it is MAJOR.MINOR.PATCH.

    Raises:
        InvalidVersionError: If the version is malformed
    """
    if not is_valid_version(version):
        raise InvalidVersionError(version)
    return version


def version_occurrences(version: str) -> re.Pattern:
    """Match version as a whole token: 0.45.0 but not 10.45.0 or 0.45.01."""
    return re.compile(rf'(?<![0-9.]){re.escape(version)}(?![0-9])')


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for a MAJOR.MINOR.PATCH string."""
    return tuple(int(part) for part in validate_version(version).split('.'))


@dataclass(frozen=True)
class PinnedVersion:
    """A component version recorded in the stack's manifests.

    Construction validates the version, so a PinnedVersion in hand is always
    well-formed.
    """
    component: str
    version: str

    def __post_init__(self):
        validate_version(self.version)

    def __str__(self) -> str:
        return f"{self.component}={self.version}"

    @classmethod
    def parse(cls, text: str) -> 'PinnedVersion':
        """Parse 'component=X.Y.Z'."""
        component, sep, version = text.partition('=')
        if not sep or not component:
            raise InvalidVersionError(text)
        return cls(component=component.strip(), version=version.strip())


def find_version_token(text: str, component: Component) -> Optional[str]:
    """Return the first version matched by any of the component's patterns."""
    for pattern in component.compiled_patterns():
        match = pattern.search(text)
        if match:
            return match.group('version')
    return None


def read_current_version(config: StackConfig, name: str) -> str:
    """Scan the first file registered to a component for its version token.

    Raises:
        UnknownComponentError: If the component is not registered
        NotFoundError: If the file is missing or carries no version token
    """
    component = config.component(name)
    path: Path = component.paths(config.root)[0]
    if not path.is_file():
        raise NotFoundError(f"File not found: {path}", file=path)
    version = find_version_token(path.read_text(encoding='utf-8'), component)
    if version is None:
        raise NotFoundError(
            f"Could not determine current {component.label} version from {path}",
            file=path,
        )
    return version
