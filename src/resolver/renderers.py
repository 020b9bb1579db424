"""Overlay renderers.

A renderer turns a target directory into multi-document YAML text. Every
source file passes through a transform (the pinned-version substitution)
before rendering, so the rendered output never mixes versions.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol

import yaml

from common import run_command
from errors import RenderError

logger = logging.getLogger(__name__)

Transform = Callable[[str], str]

YAML_SUFFIXES = ('.yaml', '.yml')
KUSTOMIZATION_FILES = ('kustomization.yaml', 'kustomization.yml', 'Kustomization')


class Renderer(Protocol):
    def render(self, root: Path, target_path: str, transform: Transform) -> str:
        """Render root/target_path with transform applied to every source file."""


def _read_text(path: Path) -> str:
    with open(path, encoding='utf-8', newline='') as f:
        return f.read()


def _kustomization_file(directory: Path):
    for name in KUSTOMIZATION_FILES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def remote_url(repo: str, path: str, ref: str, base_url: str = 'https://github.com') -> str:
    """kustomize remote target for a sub-path of a GitHub repo at a ref."""
    return f"{base_url.rstrip('/')}/{repo}//{path.strip('/')}?ref={ref}"


class KustomizeRenderer:
    """Render a target with `kubectl kustomize`.

    The stack directory is copied to a scratch directory and transformed
    there, so bases outside the target (../../cluster-operator/base) see
    the same substitution as the overlay itself. The stack directory on
    disk is never modified.

    With a repo set, targets are rendered straight from GitHub at the given
    ref and the local stack directory is not read; the transform then runs
    over the rendered output.
    """

    def __init__(self, kubectl: str = 'kubectl', timeout: int = 120,
                 repo: Optional[str] = None, ref: str = 'main',
                 base_url: str = 'https://github.com'):
        self.kubectl = kubectl
        self.timeout = timeout
        self.repo = repo
        self.ref = ref
        self.base_url = base_url

    def render(self, root: Path, target_path: str, transform: Transform) -> str:
        if self.repo:
            return transform(self._render_remote(target_path))

        with tempfile.TemporaryDirectory(prefix='stack-driver-') as tmp:
            work = Path(tmp) / 'stack'
            shutil.copytree(root, work, ignore=shutil.ignore_patterns('.git', '__pycache__'))

            for path in sorted(work.rglob('*')):
                if path.is_file() and (path.suffix in YAML_SUFFIXES or path.name == 'Kustomization'):
                    text = _read_text(path)
                    rewritten = transform(text)
                    if rewritten != text:
                        with open(path, 'w', encoding='utf-8', newline='') as f:
                            f.write(rewritten)

            target_dir = work / target_path
            if not target_dir.is_dir():
                raise RenderError(f"Target directory not found: {root / target_path}")

            rc, out, err = run_command(
                [self.kubectl, 'kustomize', str(target_dir)],
                timeout=self.timeout,
            )
        if rc != 0:
            raise RenderError(
                f"kubectl kustomize failed for {target_path}: {err.strip() or f'exit {rc}'}"
            )
        return out

    def _render_remote(self, target_path: str) -> str:
        url = remote_url(self.repo, target_path, self.ref, self.base_url)
        logger.info(f"Rendering {url}")
        rc, out, err = run_command([self.kubectl, 'kustomize', url], timeout=self.timeout)
        if rc != 0:
            raise RenderError(f"kubectl kustomize failed for {url}: {err.strip() or f'exit {rc}'}")
        return out


class DirectoryRenderer:
    """Concatenate a target directory's YAML files.

    File order follows the kustomization's `resources:` list when one names
    local files, otherwise sorted file names. Needs no external binary.
    """

    def render(self, root: Path, target_path: str, transform: Transform) -> str:
        target_dir = root / target_path
        if not target_dir.is_dir():
            raise RenderError(f"Target directory not found: {target_dir}")

        parts = []
        for path in self._ordered_files(target_dir):
            text = transform(_read_text(path))
            if not text.endswith('\n'):
                text += '\n'
            parts.append(text)
        if not parts:
            raise RenderError(f"No manifests in {target_dir}")
        return '---\n'.join(parts)

    @staticmethod
    def _ordered_files(target_dir: Path) -> list[Path]:
        kustomization = _kustomization_file(target_dir)
        if kustomization is not None:
            try:
                data = yaml.safe_load(_read_text(kustomization)) or {}
            except yaml.YAMLError as e:
                raise RenderError(f"Invalid YAML in {kustomization}: {e}")
            listed = [target_dir / r for r in data.get('resources') or []]
            files = [p for p in listed if p.is_file()]
            if files:
                skipped = len(listed) - len(files)
                if skipped:
                    logger.debug(f"Skipping {skipped} non-file resource(s) in {kustomization}")
                return files

        return sorted(
            p for p in target_dir.iterdir()
            if p.is_file() and p.suffix in YAML_SUFFIXES and p.name not in KUSTOMIZATION_FILES
        )
