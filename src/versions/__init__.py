"""Pinned version maintenance: registry lookups and file rewrites."""

from versions.pinned import PinnedVersion, is_valid_version, validate_version
from versions.registry import VersionRegistry
from versions.releases import ReleaseIndexClient
from versions.rewriter import RewriteMode, RewriteReport, RewriteState, VersionRewriter

__all__ = [
    "PinnedVersion",
    "is_valid_version",
    "validate_version",
    "VersionRegistry",
    "ReleaseIndexClient",
    "RewriteMode",
    "RewriteReport",
    "RewriteState",
    "VersionRewriter",
]
