"""Apply-and-wait orchestrator.

Walks the dependency graph in topological order with barrier semantics:
apply a unit, wait for its readiness conditions, then move on. The first
apply failure, readiness timeout or cancellation stops the run. Units
applied before the failure stay applied; the run state reports which prefix
succeeded.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from cluster import ClusterClient, describe_document
from common import CancelToken
from config import Settings
from errors import (
    ApplyError,
    ClusterError,
    ConfigError,
    ReadinessTimeoutError,
    ResourceTypeUnknownError,
    RunCancelledError,
    TransportError,
)
from orchestrator.graph import DependencyGraph
from orchestrator.state import ApplyResult, RunState
from plan import InstallUnit
from resolver.manifests import ManifestSetResolver
from versions.pinned import PinnedVersion

logger = logging.getLogger(__name__)

READY = 'ready'


@dataclass
class Orchestrator:
    """Applies install units against a cluster in dependency order.

    Attributes:
        client: Cluster API client
        resolver: Resolves unit targets to manifest documents
        graph: Dependency graph over the plan's units
        pinned: Pinned versions substituted into every unit's manifests
        settings: Poll interval and default timeout
        dry_run: If True, preview the run without touching the cluster
        cancel: Cancellation token checked while waiting
        clock: Monotonic clock (injectable for tests)
        sleep: Sleep function (injectable for tests); default waits on the
            cancellation token
        plan_name: Name reported in the run state
        default_timeout: Plan-level readiness timeout, overrides settings
    """
    client: ClusterClient
    resolver: ManifestSetResolver
    graph: DependencyGraph
    pinned: Sequence[PinnedVersion] = ()
    settings: Settings = field(default_factory=Settings)
    dry_run: bool = False
    cancel: CancelToken = field(default_factory=CancelToken)
    clock: Callable[[], float] = time.monotonic
    sleep: Optional[Callable[[float], None]] = None
    plan_name: str = 'adhoc'
    default_timeout: Optional[int] = None

    def timeout_for(self, unit: InstallUnit) -> int:
        if unit.timeout is not None:
            return unit.timeout
        if self.default_timeout is not None:
            return self.default_timeout
        return self.settings.timeout

    def pins_for(self, unit: InstallUnit) -> list[PinnedVersion]:
        """Pinned versions that apply to a unit (all, unless it names components)."""
        if unit.components is None:
            return list(self.pinned)
        return [p for p in self.pinned if p.component in unit.components]

    def _wait(self, seconds: float) -> bool:
        """Sleep for seconds; True if the run was cancelled meanwhile."""
        if self.sleep is None:
            return self.cancel.wait(seconds)
        self.sleep(seconds)
        return self.cancel.cancelled

    # -------------------------------------------------------------------------
    # Per-unit operations
    # -------------------------------------------------------------------------

    def apply(self, unit: InstallUnit) -> int:
        """Resolve a unit's target and submit every document.

        Documents whose kind is not registered yet are re-applied every poll
        interval until the unit's timeout; everything else is fatal.

        Returns:
            Number of documents applied

        Raises:
            ApplyError: If resolution fails or the cluster rejects a document
            RunCancelledError: If cancelled while waiting for a kind to register,
                or while kubectl was applying
        """
        try:
            documents = self.resolver.resolve(unit.target, self.pins_for(unit))
        except ConfigError as e:
            raise ApplyError(unit.name, e.message)

        deadline = self.clock() + self.timeout_for(unit)
        for document in documents:
            self._apply_document(unit, document, deadline)
        logger.info(f"[apply] {unit.name}: {len(documents)} document(s) applied")
        return len(documents)

    def _apply_document(self, unit: InstallUnit, document: dict, deadline: float) -> None:
        label = describe_document(document)
        while True:
            try:
                self.client.apply(document)
                logger.debug(f"[apply] {unit.name}: {label}")
                return
            except ResourceTypeUnknownError as e:
                remaining = deadline - self.clock()
                if remaining <= 0:
                    raise ApplyError(
                        unit.name,
                        f"resource type '{e.kind}' still not registered after "
                        f"{self.timeout_for(unit)}s ({label})",
                    )
                logger.info(
                    f"[apply] {unit.name}: {e.kind} not registered yet, "
                    f"retrying {label} in {min(self.settings.poll_interval, remaining):.0f}s"
                )
                if self._wait(min(self.settings.poll_interval, remaining)):
                    raise RunCancelledError(unit.name)
            except (TransportError, ClusterError) as e:
                # kubectl killed by the same SIGINT that cancelled the run
                if self.cancel.cancelled:
                    raise RunCancelledError(unit.name)
                raise ApplyError(unit.name, e.message)

    def await_ready(self, unit: InstallUnit, timeout: Optional[float] = None) -> str:
        """Poll a unit's readiness conditions until all hold.

        A transport error on one poll is logged and retried; the first one
        seen is attached to the timeout error if the deadline passes. Sleep
        never runs past the deadline.

        Returns:
            READY

        Raises:
            ReadinessTimeoutError: If the conditions do not all hold in time
            RunCancelledError: If the cancellation token fires
            ApplyError: If a condition cannot be read for a non-transient reason
                (e.g. RBAC forbids it)
        """
        if timeout is None:
            timeout = self.timeout_for(unit)
        interval = self.settings.poll_interval
        started = self.clock()
        deadline = started + timeout
        pending = list(unit.ready_when)
        first_error: Optional[TransportError] = None

        while pending:
            if self.cancel.cancelled:
                raise RunCancelledError(unit.name)

            still_pending = []
            for condition in pending:
                try:
                    ok = self.client.get_condition(
                        condition.kind, condition.namespace, condition.name, condition.condition
                    )
                except TransportError as e:
                    if first_error is None:
                        first_error = e
                    logger.warning(f"[wait] {unit.name}: poll of {condition} failed: {e.message}")
                    ok = False
                except ClusterError as e:
                    raise ApplyError(unit.name, f"cannot read {condition}: {e.message}")
                if ok:
                    logger.info(f"[wait] {unit.name}: {condition} met")
                else:
                    still_pending.append(condition)
            pending = still_pending
            if not pending:
                break

            now = self.clock()
            remaining = deadline - now
            if remaining <= 0:
                raise ReadinessTimeoutError(
                    unit.name,
                    elapsed=now - started,
                    pending=', '.join(str(c) for c in pending),
                    last_error=first_error,
                )
            logger.debug(
                f"[wait] {unit.name}: {len(pending)} condition(s) pending, "
                f"{remaining:.0f}s left"
            )
            if self._wait(min(interval, remaining)):
                raise RunCancelledError(unit.name)

        logger.info(f"[wait] {unit.name} ready after {self.clock() - started:.1f}s")
        return READY

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run_order(self, units: Optional[Sequence[str]] = None) -> list[InstallUnit]:
        """Units to run: topological order, or the given names validated against the graph.

        Prerequisites left out of an explicit list are taken as already ready.

        Raises:
            ConfigError: If a name is unknown or the list puts a unit before
                one of its prerequisites
        """
        if units is None:
            return self.graph.topological_order()

        ordered = []
        seen: set[str] = set()
        for name in units:
            if name not in self.graph:
                raise ConfigError(f"Unknown unit: '{name}'")
            for prereq in self.graph.prerequisites_of(name):
                if prereq in units and prereq not in seen:
                    raise ConfigError(f"Unit '{name}' listed before its prerequisite '{prereq}'")
            seen.add(name)
            ordered.append(self.graph.get_unit(name))
        return ordered

    def run(self, units: Optional[Sequence[str]] = None) -> tuple[bool, RunState]:
        """Apply units in order, waiting for each to be ready before the next.

        Returns:
            (success, state) where state reports per-unit outcomes
        """
        order = self.run_order(units)
        state = RunState(self.plan_name)
        for unit in order:
            state.add_unit(unit.name)

        if self.dry_run:
            self._preview(order)
            return True, state

        state.start(self.clock())
        for unit in order:
            if self.cancel.cancelled:
                state.cancelled = True
                logger.warning(f"Run cancelled before unit '{unit.name}'")
                break

            unit_state = state.get_unit(unit.name)
            unit_state.start(self.clock())
            logger.info(f"[apply] {unit.name} (target: {unit.target})")
            try:
                self.apply(unit)
                self.await_ready(unit)
            except ApplyError as e:
                unit_state.finish(ApplyResult.FAILED, self.clock(), e.message, e.code)
                logger.error("Apply failed for unit '%s': %s", unit.name, e.cause)
                break
            except ReadinessTimeoutError as e:
                unit_state.finish(ApplyResult.TIMED_OUT, self.clock(), e.message, e.code)
                logger.error("Unit '%s' not ready: %s", unit.name, e.message)
                break
            except RunCancelledError as e:
                unit_state.finish(ApplyResult.CANCELLED, self.clock(), e.message, e.code)
                state.cancelled = True
                logger.warning(f"Run cancelled while processing unit '{unit.name}'")
                break
            unit_state.finish(ApplyResult.SUCCEEDED, self.clock())

        state.finish(self.clock())
        if not state.success:
            done = ', '.join(state.completed()) or 'none'
            logger.error(f"Run stopped. Applied and ready: {done}. Nothing was rolled back.")
        return state.success, state

    def _preview(self, order: list[InstallUnit]) -> None:
        """Preview the run without touching the cluster."""
        print("")
        print("=" * 65)
        print(f"  DRY-RUN INSTALL: {self.plan_name}")
        print(f"  Units: {len(order)}  Poll interval: {self.settings.poll_interval:.0f}s")
        print("=" * 65)
        print("")
        for unit in order:
            depth = self.graph.depth(unit.name) if unit.name in self.graph else 0
            requires = self.graph.prerequisites_of(unit.name)
            requires_info = f" (requires: {', '.join(requires)})" if requires else ""
            print(f"  [{depth}] {unit.name}: target={unit.target}{requires_info}")
            pins = ' '.join(str(p) for p in self.pins_for(unit))
            if pins:
                print(f"      pins: {pins}")
            for condition in unit.ready_when:
                print(f"      wait: {condition}")
            print(f"      timeout: {self.timeout_for(unit)}s")
        print("")
