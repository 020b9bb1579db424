"""Dependency graph for install units.

Encodes which units must be ready before a dependent unit is applied, and
computes a deterministic apply order.
"""

import heapq
import logging
from typing import Iterable, Optional

from errors import ConfigError, CycleError, UnknownPrerequisiteError
from plan import InstallUnit, Plan

logger = logging.getLogger(__name__)


class DependencyGraph:
    """DAG over install units.

    Edges point from a unit to its prerequisites. The graph is acyclic at all
    times: add_unit() rejects any edge set that would close a cycle and
    leaves the graph untouched when it does.
    """

    def __init__(self):
        self._units: dict[str, InstallUnit] = {}
        self._order: dict[str, int] = {}
        self._prerequisites: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._units

    def __len__(self) -> int:
        return len(self._units)

    @property
    def units(self) -> list[InstallUnit]:
        """Units in declaration order."""
        return list(self._units.values())

    def get_unit(self, name: str) -> InstallUnit:
        """Get a unit by name.

        Raises:
            KeyError: If unit name not found
        """
        return self._units[name]

    def prerequisites_of(self, name: str) -> list[str]:
        """Direct prerequisites of a unit, in declaration order."""
        return sorted(self._prerequisites[name], key=self._order.__getitem__)

    def dependents_of(self, name: str) -> list[str]:
        """Units that directly require this one, in declaration order."""
        return sorted(self._dependents[name], key=self._order.__getitem__)

    def add_unit(self, unit: InstallUnit, prerequisites: Optional[Iterable[str]] = None) -> None:
        """Register a unit and the units it requires.

        Re-adding a name with an identical definition only adds edges.

        Args:
            unit: Unit to register
            prerequisites: Names that must be ready first (default: unit.requires)

        Raises:
            ConfigError: If the name is registered with a different definition
            UnknownPrerequisiteError: If a prerequisite is not registered
            CycleError: If the new edges would close a cycle
        """
        prereqs = list(dict.fromkeys(unit.requires if prerequisites is None else prerequisites))
        existing = self._units.get(unit.name)
        if existing is not None and existing != unit:
            raise ConfigError(f"Unit '{unit.name}' is already registered with a different definition")

        # Validate everything before touching state
        for prereq in prereqs:
            if prereq == unit.name:
                raise CycleError(unit.name, [unit.name, unit.name])
            if prereq not in self._units:
                raise UnknownPrerequisiteError(unit.name, prereq)
            if existing is not None:
                path = self._path(prereq, unit.name)
                if path is not None:
                    raise CycleError(unit.name, [unit.name] + path)

        if existing is None:
            self._units[unit.name] = unit
            self._order[unit.name] = len(self._order)
            self._prerequisites[unit.name] = set()
            self._dependents[unit.name] = set()
        for prereq in prereqs:
            self._prerequisites[unit.name].add(prereq)
            self._dependents[prereq].add(unit.name)

    def _path(self, start: str, goal: str) -> Optional[list[str]]:
        """Prerequisite chain from start to goal, or None if goal is unreachable."""
        stack = [(start, [start])]
        seen = set()
        while stack:
            name, path = stack.pop()
            if name == goal:
                return path
            if name in seen:
                continue
            seen.add(name)
            for prereq in self._prerequisites[name]:
                stack.append((prereq, path + [prereq]))
        return None

    def topological_order(self) -> list[InstallUnit]:
        """Return units so every prerequisite precedes its dependents.

        Ties are broken by declaration order, so the result is stable for a
        given plan.
        """
        remaining = {name: len(prereqs) for name, prereqs in self._prerequisites.items()}
        ready = [(self._order[name], name) for name, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        ordered: list[InstallUnit] = []
        while ready:
            _, name = heapq.heappop(ready)
            ordered.append(self._units[name])
            for dependent in self._dependents[name]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._order[dependent], dependent))
        return ordered

    def depth(self, name: str) -> int:
        """Length of the longest prerequisite chain below a unit (0 = no prerequisites)."""
        memo: dict[str, int] = {}

        def _depth(n: str) -> int:
            if n not in memo:
                memo[n] = 1 + max((_depth(p) for p in self._prerequisites[n]), default=-1)
            return memo[n]

        return _depth(name)

    @property
    def max_depth(self) -> int:
        return max((self.depth(name) for name in self._units), default=0)

    @classmethod
    def from_plan(cls, plan: Plan) -> 'DependencyGraph':
        """Build a graph from a plan.

        All units are registered before any edge is added, so plans may list
        units in any order.

        Raises:
            UnknownPrerequisiteError: If a unit requires a name the plan lacks
            CycleError: If the plan's requirements form a cycle
        """
        graph = cls()
        for unit in plan.units:
            graph.add_unit(unit, prerequisites=())
        for unit in plan.units:
            graph.add_unit(unit, prerequisites=unit.requires)
        logger.debug(f"Built dependency graph for plan '{plan.name}': {len(graph)} unit(s)")
        return graph
