"""Release index client (GitHub releases API).

Lists release tags and checks whether a tag exists. Network failures are
reported as TransportError so callers can tell "could not ask" apart from
"asked, and it is not there".
"""

import logging
import os
from typing import Optional, Union

import requests

from errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

# GitHub API page size limit
MAX_PER_PAGE = 100


class ReleaseIndexClient:
    """HTTP client for a GitHub-compatible release index."""

    def __init__(
        self,
        api_url: str = 'https://api.github.com',
        token: Optional[str] = None,
        timeout: int = 10,
        max_pages: int = 10,
        session: Optional[requests.Session] = None,
    ):
        """Initialize release index client.

        Args:
            api_url: API base URL
            token: Bearer token (default: GITHUB_TOKEN env var) for rate limits
            timeout: Per-request timeout in seconds
            max_pages: Page limit when listing all releases
            session: Optional requests session (tests inject one)
        """
        self.api_url = api_url.rstrip('/')
        self.token = token if token is not None else os.environ.get('GITHUB_TOKEN')
        self.timeout = timeout
        self.max_pages = max_pages
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {'Accept': 'application/vnd.github+json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _get(self, url: str, params: Optional[dict] = None) -> requests.Response:
        try:
            return self.session.get(
                url, params=params, headers=self._headers(), timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise TransportError(f"Timeout connecting to {url}")
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Cannot connect to {url}: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}")

    def list_releases(self, repo: str, page: int = 1, per_page: int = MAX_PER_PAGE) -> list[str]:
        """List release tags on one page, in index order (newest first).

        Raises:
            NotFoundError: If the repository does not exist
            TransportError: On network failure or unexpected response
        """
        url = f'{self.api_url}/repos/{repo}/releases'
        resp = self._get(url, params={'per_page': min(per_page, MAX_PER_PAGE), 'page': page})

        if resp.status_code == 404:
            raise NotFoundError(f"Repository {repo} not found in release index")
        if resp.status_code == 403:
            raise TransportError(
                f"Release index refused request for {repo} (HTTP 403, rate limited?). "
                "Set GITHUB_TOKEN to raise the limit."
            )
        if resp.status_code != 200:
            raise TransportError(
                f"Unexpected release index response for {repo}: HTTP {resp.status_code}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from release index for {repo}: {e}")
        return [r['tag_name'] for r in data if isinstance(r, dict) and r.get('tag_name')]

    def iter_releases(self, repo: str, limit: Union[int, str] = 20) -> list[str]:
        """List up to limit release tags, or every tag when limit is 'all'.

        Paginates until an empty page or max_pages pages have been read.
        """
        fetch_all = limit == 'all'
        wanted = None if fetch_all else int(limit)
        per_page = MAX_PER_PAGE if fetch_all else min(wanted, MAX_PER_PAGE)

        releases: list[str] = []
        for page in range(1, self.max_pages + 1):
            page_releases = self.list_releases(repo, page=page, per_page=per_page)
            if not page_releases:
                break
            releases.extend(page_releases)
            if wanted is not None and len(releases) >= wanted:
                return releases[:wanted]
            if len(page_releases) < per_page:
                break
        else:
            logger.debug(f"Stopped listing {repo} releases after {self.max_pages} pages")
        return releases

    def release_exists(self, repo: str, version: str) -> bool:
        """Check whether a release tag exists.

        Returns:
            True if the index lists the tag, False if it answers 404

        Raises:
            TransportError: On network failure or any other response
        """
        url = f'{self.api_url}/repos/{repo}/releases/tags/{version}'
        resp = self._get(url)
        if resp.status_code == 200:
            return True
        if resp.status_code == 404:
            return False
        raise TransportError(
            f"Unexpected release index response for {repo} {version}: HTTP {resp.status_code}"
        )
