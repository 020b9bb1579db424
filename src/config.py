"""Stack configuration management.

Configuration is loaded from a stack directory:
- stack.yaml: settings, components (with the files that pin their versions)
  and targets (overlay directories)
- plans/*.yaml: install plans (see plan.py)
- overlay directories referenced by targets

Resolution order for the stack directory:
1. Explicit --root argument
2. STACK_DRIVER_ROOT environment variable
3. Nearest ancestor of the working directory containing stack.yaml
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from errors import ConfigError, UnknownComponentError, UnknownTargetError

logger = logging.getLogger(__name__)

STACK_FILE = 'stack.yaml'

# Poll interval bounds (seconds)
MIN_POLL_INTERVAL = 2.0
MAX_POLL_INTERVAL = 5.0

RENDERERS = {'kustomize', 'directory'}


@dataclass(frozen=True)
class Component:
    """A versioned component whose release is pinned inside manifest files.

    Attributes:
        name: Component identifier (e.g. strimzi)
        label: Human-readable name (e.g. Strimzi)
        repo: Release repository as owner/name (e.g. strimzi/strimzi-kafka-operator)
        patterns: Regexes locating the version token; each has a 'version' group
        files: Files (relative to the stack directory) that embed the token.
            The first file is the one scanned for the current version.
    """
    name: str
    repo: str
    patterns: tuple[str, ...]
    files: tuple[str, ...]
    label: str = ''

    def __post_init__(self):
        if not self.label:
            object.__setattr__(self, 'label', self.name)

    def compiled_patterns(self) -> list[re.Pattern]:
        return [re.compile(p) for p in self.patterns]

    def paths(self, root: Path) -> list[Path]:
        """Absolute paths of the files pinning this component."""
        return [root / f for f in self.files]

    @classmethod
    def from_dict(cls, name: str, data: dict) -> 'Component':
        """Create Component from a stack.yaml entry.

        Raises:
            ConfigError: If required fields are missing or a pattern is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Component '{name}' must be a mapping")
        for key in ('repo', 'files'):
            if not data.get(key):
                raise ConfigError(f"Component '{name}' missing required field: {key}")

        patterns = data.get('patterns') or ([data['pattern']] if data.get('pattern') else [])
        if not patterns:
            raise ConfigError(f"Component '{name}' missing required field: patterns")
        for pattern in patterns:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Component '{name}' has invalid pattern {pattern!r}: {e}")
            if 'version' not in compiled.groupindex:
                raise ConfigError(
                    f"Component '{name}' pattern {pattern!r} needs a (?P<version>...) group"
                )

        return cls(
            name=name,
            label=data.get('label', name),
            repo=data['repo'],
            patterns=tuple(patterns),
            files=tuple(data['files']),
        )


@dataclass(frozen=True)
class Target:
    """A named overlay directory the resolver can render.

    Attributes:
        name: Target identifier (e.g. operators)
        path: Directory relative to the stack directory
        renderer: 'kustomize' (kubectl kustomize) or 'directory' (plain files)
    """
    name: str
    path: str
    renderer: str = 'kustomize'

    @classmethod
    def from_dict(cls, name: str, data) -> 'Target':
        """Create Target from a stack.yaml entry (mapping or bare path)."""
        if isinstance(data, str):
            data = {'path': data}
        if not isinstance(data, dict) or not data.get('path'):
            raise ConfigError(f"Target '{name}' missing required field: path")
        renderer = data.get('renderer', 'kustomize')
        if renderer not in RENDERERS:
            raise ConfigError(
                f"Target '{name}' has unknown renderer '{renderer}'. "
                f"Supported: {', '.join(sorted(RENDERERS))}"
            )
        return cls(name=name, path=data['path'], renderer=renderer)


@dataclass
class Settings:
    """Execution settings from stack.yaml 'settings' section.

    Attributes:
        poll_interval: Seconds between readiness polls (clamped to 2-5)
        timeout: Default per-unit readiness timeout in seconds
        kubectl: kubectl binary
        context: kube context to use (None = current context)
        github_api: GitHub API base URL (release listing)
        github_url: GitHub web base URL (release page links in messages)
        request_timeout: HTTP timeout in seconds for release index calls
        list_limit: Default number of releases to list
        max_pages: Page limit when listing all releases
        repo: GitHub repo (owner/name) to render targets from instead of the
            local stack directory (None = local)
        ref: Git ref of repo to render (branch, tag or commit)
    """
    poll_interval: float = 3.0
    timeout: int = 120
    kubectl: str = 'kubectl'
    context: Optional[str] = None
    github_api: str = 'https://api.github.com'
    github_url: str = 'https://github.com'
    request_timeout: int = 10
    list_limit: int = 20
    max_pages: int = 10
    repo: Optional[str] = None
    ref: str = 'main'

    def __post_init__(self):
        self.poll_interval = clamp_poll_interval(self.poll_interval)

    @property
    def remote(self) -> bool:
        """True when targets are rendered from a GitHub repo rather than disk."""
        return self.repo is not None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Settings':
        """Create Settings from dictionary, applying environment overrides."""
        data = dict(data or {})

        # Environment overrides
        if env_timeout := os.environ.get('STACK_DRIVER_TIMEOUT'):
            data['timeout'] = parse_duration(env_timeout)
        if env_kubectl := os.environ.get('STACK_DRIVER_KUBECTL'):
            data['kubectl'] = env_kubectl
        if env_repo := os.environ.get('STACK_DRIVER_REPO'):
            data['repo'] = env_repo
        if env_ref := os.environ.get('STACK_DRIVER_REF'):
            data['ref'] = env_ref

        defaults = cls()
        return cls(
            poll_interval=float(data.get('poll_interval', defaults.poll_interval)),
            timeout=parse_duration(data.get('timeout', defaults.timeout)),
            kubectl=data.get('kubectl', defaults.kubectl),
            context=data.get('context'),
            github_api=str(data.get('github_api', defaults.github_api)).rstrip('/'),
            github_url=str(data.get('github_url', defaults.github_url)).rstrip('/'),
            request_timeout=int(data.get('request_timeout', defaults.request_timeout)),
            list_limit=int(data.get('list_limit', defaults.list_limit)),
            max_pages=int(data.get('max_pages', defaults.max_pages)),
            repo=data.get('repo') or None,
            ref=str(data.get('ref') or defaults.ref),
        )


@dataclass
class StackConfig:
    """Configuration for a stack directory."""
    root: Path
    settings: Settings = field(default_factory=Settings)
    components: dict[str, Component] = field(default_factory=dict)
    targets: dict[str, Target] = field(default_factory=dict)

    @property
    def plans_dir(self) -> Path:
        return self.root / 'plans'

    def component(self, name: str) -> Component:
        """Get a component by name.

        Raises:
            UnknownComponentError: If the component is not registered
        """
        if name not in self.components:
            raise UnknownComponentError(name, sorted(self.components))
        return self.components[name]

    def target(self, name: str) -> Target:
        """Get a target by name.

        Raises:
            UnknownTargetError: If the target is not registered
        """
        if name not in self.targets:
            raise UnknownTargetError(name, sorted(self.targets))
        return self.targets[name]

    def target_dir(self, name: str) -> Path:
        return self.root / self.target(name).path

    @classmethod
    def from_dict(cls, root: Path, data: dict) -> 'StackConfig':
        components = {
            name: Component.from_dict(name, entry)
            for name, entry in (data.get('components') or {}).items()
        }
        targets = {
            name: Target.from_dict(name, entry)
            for name, entry in (data.get('targets') or {}).items()
        }
        return cls(
            root=root,
            settings=Settings.from_dict(data.get('settings')),
            components=components,
            targets=targets,
        )


def clamp_poll_interval(value: float) -> float:
    """Keep the poll interval within 2-5 seconds."""
    clamped = min(max(float(value), MIN_POLL_INTERVAL), MAX_POLL_INTERVAL)
    if clamped != value:
        logger.debug(f"Poll interval {value}s clamped to {clamped}s")
    return clamped


def parse_duration(value) -> int:
    """Parse a duration like 120, '120' or '120s' (kubectl style) into seconds."""
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip().lower()
    match = re.fullmatch(r'(\d+)\s*([smh]?)', text)
    if not match:
        raise ConfigError(f"Invalid duration: {value!r} (expected e.g. 120 or 120s)")
    amount, unit = int(match.group(1)), match.group(2)
    return amount * {'': 1, 's': 1, 'm': 60, 'h': 3600}[unit]


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a YAML object (dict)")
    return data


def discover_stack_root(explicit: Optional[str] = None) -> Path:
    """Discover the stack directory.

    Raises:
        ConfigError: If no stack directory is found
    """
    if explicit:
        path = Path(explicit)
        if not (path / STACK_FILE).is_file():
            raise ConfigError(f"No {STACK_FILE} in {path}")
        return path

    if env_path := os.environ.get('STACK_DRIVER_ROOT'):
        path = Path(env_path)
        if (path / STACK_FILE).is_file():
            return path
        raise ConfigError(f"STACK_DRIVER_ROOT={env_path} has no {STACK_FILE}")

    cwd = Path.cwd().resolve()
    for candidate in (cwd, *cwd.parents):
        if (candidate / STACK_FILE).is_file():
            return candidate

    raise ConfigError(
        f"{STACK_FILE} not found. "
        "Run from a stack directory, pass --root, or set STACK_DRIVER_ROOT."
    )


def load_stack_config(root: Optional[str] = None) -> StackConfig:
    """Load stack.yaml from the discovered stack directory.

    Raises:
        ConfigError: If the stack directory or stack.yaml is missing or invalid
    """
    stack_root = discover_stack_root(root)
    data = _parse_yaml(stack_root / STACK_FILE)
    config = StackConfig.from_dict(stack_root, data)
    logger.debug(
        f"Loaded {stack_root / STACK_FILE}: "
        f"{len(config.components)} component(s), {len(config.targets)} target(s)"
    )
    return config
