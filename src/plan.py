"""Install plan loading and validation.

Plans define which install units to apply, what each waits for, and which
units must be ready before others are applied. They live in
plans/{name}.yaml inside the stack directory and reference targets and
components from stack.yaml.

Example:

    name: dev
    units:
      - name: operators
        target: operators
        ready_when:
          - kind: Deployment
            namespace: strimzi
            name: strimzi-cluster-operator
            condition: Available
      - name: operands
        target: operands
        requires: [operators]
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from config import StackConfig, parse_duration
from errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadinessCondition:
    """A status condition expected to become True on a cluster object.

    Attributes:
        kind: Resource kind (e.g. Deployment, Kafka)
        namespace: Namespace of the object
        name: Object name
        condition: Condition type (e.g. Available, Ready)
    """
    kind: str
    namespace: str
    name: str
    condition: str = 'Ready'

    def __str__(self) -> str:
        return f"{self.kind.lower()}/{self.name} -n {self.namespace} condition={self.condition}"

    @classmethod
    def from_dict(cls, data: dict, unit: str = '') -> 'ReadinessCondition':
        """Create ReadinessCondition from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError(f"Unit '{unit}' has an invalid ready_when entry: {data!r}")
        for key in ('kind', 'namespace', 'name'):
            if not data.get(key):
                raise ConfigError(f"Unit '{unit}' ready_when entry missing required field: {key}")
        return cls(
            kind=data['kind'],
            namespace=data['namespace'],
            name=data['name'],
            condition=data.get('condition', 'Ready'),
        )

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'namespace': self.namespace,
            'name': self.name,
            'condition': self.condition,
        }


@dataclass(frozen=True)
class InstallUnit:
    """An independently applied manifest set plus what it waits for.

    Attributes:
        name: Unit identifier
        target: Target name resolved to manifests (FK to stack.yaml targets)
        ready_when: Conditions that must all hold before dependents proceed
        requires: Names of units that must be ready before this one is applied
        components: Components pinned into this unit's manifests (None = all)
        timeout: Readiness timeout in seconds (None = plan/stack default)
    """
    name: str
    target: str
    ready_when: tuple[ReadinessCondition, ...] = ()
    requires: tuple[str, ...] = ()
    components: Optional[tuple[str, ...]] = None
    timeout: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'InstallUnit':
        """Create InstallUnit from dictionary."""
        name = data['name']
        components = data.get('components')
        timeout = data.get('timeout')
        return cls(
            name=name,
            target=data['target'],
            ready_when=tuple(
                ReadinessCondition.from_dict(c, unit=name)
                for c in (data.get('ready_when') or [])
            ),
            requires=tuple(data.get('requires') or ()),
            components=tuple(components) if components is not None else None,
            timeout=parse_duration(timeout) if timeout is not None else None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            'name': self.name,
            'target': self.target,
        }
        if self.ready_when:
            d['ready_when'] = [c.to_dict() for c in self.ready_when]
        if self.requires:
            d['requires'] = list(self.requires)
        if self.components is not None:
            d['components'] = list(self.components)
        if self.timeout is not None:
            d['timeout'] = self.timeout
        return d


@dataclass
class Plan:
    """Install plan: the units of a deployment and their dependencies.

    Attributes:
        name: Plan name
        units: Units in declaration order
        description: Optional description
        timeout: Default readiness timeout for units without their own
        source_path: Path the plan was loaded from (for messages)
    """
    name: str
    units: list[InstallUnit]
    description: str = ''
    timeout: Optional[int] = None
    source_path: Optional[Path] = None

    def get_unit(self, name: str) -> InstallUnit:
        """Get a unit by name.

        Raises:
            KeyError: If no unit has that name
        """
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(name)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.name,
            'description': self.description,
            'units': [u.to_dict() for u in self.units],
        }
        if self.timeout is not None:
            d['timeout'] = self.timeout
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Plan':
        """Create Plan from dictionary.

        Structural checks only; dependency validation (unknown prerequisites,
        cycles) happens when the dependency graph is built.

        Raises:
            ConfigError: If the plan is invalid
        """
        if 'name' not in data:
            raise ConfigError("Plan missing required field: name")
        if not data.get('units'):
            raise ConfigError(f"Plan '{data['name']}' must have at least one unit")

        units = []
        seen: set[str] = set()
        for i, unit_data in enumerate(data['units']):
            if not isinstance(unit_data, dict):
                raise ConfigError(f"Unit {i} must be a mapping")
            if 'name' not in unit_data:
                raise ConfigError(f"Unit {i} missing required field: name")
            if 'target' not in unit_data:
                raise ConfigError(
                    f"Unit {i} ({unit_data['name']}) missing required field: target"
                )
            if unit_data['name'] in seen:
                raise ConfigError(f"Duplicate unit name: '{unit_data['name']}'")
            seen.add(unit_data['name'])
            units.append(InstallUnit.from_dict(unit_data))

        timeout = data.get('timeout')
        return cls(
            name=data['name'],
            description=data.get('description', ''),
            units=units,
            timeout=parse_duration(timeout) if timeout is not None else None,
            source_path=source_path,
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'Plan':
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid plan JSON: {e}")
        return cls.from_dict(data)


class PlanLoader:
    """Loads plans from the stack's plans/ directory."""

    def __init__(self, config: StackConfig):
        self.plans_dir = config.plans_dir

    def list_plans(self) -> list[str]:
        """List available plan names."""
        if not self.plans_dir.exists():
            return []
        return sorted(f.stem for f in self.plans_dir.glob('*.yaml') if f.is_file())

    def load(self, name: str) -> Plan:
        """Load plan by name.

        Raises:
            ConfigError: If plan not found or invalid
        """
        path = self.plans_dir / f'{name}.yaml'
        if not path.exists():
            available = self.list_plans()
            raise ConfigError(
                f"Plan '{name}' not found at {path}. "
                f"Available: {', '.join(available) if available else 'none'}"
            )
        return self.load_file(path)

    def load_file(self, path: Path) -> Plan:
        """Load plan from a specific file path.

        Raises:
            ConfigError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigError(f"Plan file not found: {path}")

        try:
            with open(path, encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in plan {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Plan {path} must be a YAML object (dict)")

        return Plan.from_dict(data, source_path=path)


def load_plan(
    config: StackConfig,
    name: Optional[str] = None,
    file_path: Optional[str] = None,
    json_str: Optional[str] = None,
) -> Plan:
    """Load a plan from inline JSON, a file, or the stack's plans/ directory.

    Raises:
        ConfigError: If no source is given, or the plan is missing or invalid
    """
    if json_str:
        return Plan.from_json(json_str)
    loader = PlanLoader(config)
    if file_path:
        return loader.load_file(Path(file_path))
    if name:
        return loader.load(name)
    raise ConfigError("No plan specified")


def validate_plan_refs(plan: Plan, config: StackConfig) -> list[str]:
    """Check that every unit's target and components exist in stack.yaml.

    Target directories are only checked on disk when rendering locally.

    Returns:
        List of error messages (empty = valid)
    """
    errors = []
    for unit in plan.units:
        if unit.target not in config.targets:
            errors.append(
                f"Unit '{unit.name}' references unknown target '{unit.target}'"
            )
        elif not config.settings.remote and not config.target_dir(unit.target).is_dir():
            errors.append(
                f"Unit '{unit.name}' target '{unit.target}' has no directory at "
                f"{config.targets[unit.target].path}"
            )
        for component in unit.components or ():
            if component not in config.components:
                errors.append(
                    f"Unit '{unit.name}' references unknown component '{component}'"
                )
    return errors
