"""Version registry: pinned versions on disk, available versions upstream."""

import logging
from typing import Iterable, Optional, Union

from config import StackConfig
from errors import NotFoundError
from versions.pinned import PinnedVersion, read_current_version, validate_version
from versions.releases import ReleaseIndexClient

logger = logging.getLogger(__name__)


class VersionRegistry:
    """Answers "what is pinned" and "what exists" for stack components."""

    def __init__(self, config: StackConfig, index: Optional[ReleaseIndexClient] = None):
        self.config = config
        self.index = index

    def _index(self) -> ReleaseIndexClient:
        if self.index is None:
            settings = self.config.settings
            self.index = ReleaseIndexClient(
                api_url=settings.github_api,
                timeout=settings.request_timeout,
                max_pages=settings.max_pages,
            )
        return self.index

    def pinned(self, component: str) -> PinnedVersion:
        """Version currently recorded in the component's manifests."""
        return PinnedVersion(component, read_current_version(self.config, component))

    def pinned_all(self, components: Optional[Iterable[str]] = None) -> list[PinnedVersion]:
        """Pinned versions for the given components (default: all registered)."""
        names = list(components) if components is not None else list(self.config.components)
        return [self.pinned(name) for name in names]

    def available(self, component: str, limit: Union[int, str] = 20) -> list[str]:
        """Release tags listed upstream for a component, newest first."""
        repo = self.config.component(component).repo
        return self._index().iter_releases(repo, limit)

    def require(self, component: str, version: str) -> PinnedVersion:
        """Validate a requested version and confirm the index lists it.

        Raises:
            InvalidVersionError: If the version is malformed
            NotFoundError: If the index does not list the version
            TransportError: If the index cannot be reached
        """
        validate_version(version)
        entry = self.config.component(component)
        logger.info(f"Checking if {entry.label} release {version} exists...")
        if not self._index().release_exists(entry.repo, version):
            raise NotFoundError(
                f"{entry.label} release {version} not found upstream ({entry.repo})"
            )
        logger.info(f"Release {version} exists upstream")
        return PinnedVersion(component, version)
