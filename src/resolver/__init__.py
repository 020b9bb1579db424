"""Resolver package: targets to manifest documents with pinned versions."""

from resolver.manifests import ManifestSetResolver, substitute_version
from resolver.renderers import DirectoryRenderer, KustomizeRenderer, Renderer

__all__ = [
    "ManifestSetResolver",
    "substitute_version",
    "DirectoryRenderer",
    "KustomizeRenderer",
    "Renderer",
]
