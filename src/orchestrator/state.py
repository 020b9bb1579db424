"""Run state for install runs.

Tracks per-unit status (pending, running, succeeded, failed, timed_out,
cancelled) so a failed run reports exactly which prefix of units is applied.
State lives for one run only; it is reported, never persisted.
"""

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ApplyResult(str, Enum):
    """Terminal outcome of one unit."""
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'
    CANCELLED = 'cancelled'


@dataclass
class UnitState:
    """Per-unit run state.

    Attributes:
        name: Unit name
        status: pending, running, or an ApplyResult value
        started_at: Clock reading when the unit started
        completed_at: Clock reading when the unit finished
        error: Error message if the unit did not succeed
        error_code: Error code (E210, E220, ...) if the unit did not succeed
    """
    name: str
    status: str = 'pending'
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def start(self, at: Optional[float] = None) -> None:
        self.status = 'running'
        self.started_at = time.time() if at is None else at

    def finish(self, result: ApplyResult, at: Optional[float] = None,
               error: Optional[str] = None, error_code: Optional[str] = None) -> None:
        self.status = result.value
        self.completed_at = time.time() if at is None else at
        self.error = error
        self.error_code = error_code

    @property
    def result(self) -> Optional[ApplyResult]:
        """Terminal outcome, or None while pending/running."""
        try:
            return ApplyResult(self.status)
        except ValueError:
            return None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is not None and self.completed_at is not None:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.name,
            'status': self.status,
        }
        if self.duration is not None:
            d['duration'] = round(self.duration, 1)
        if self.error is not None:
            d['error'] = self.error
        if self.error_code is not None:
            d['error_code'] = self.error_code
        return d


class RunState:
    """State of one install run over an ordered list of units."""

    def __init__(self, plan_name: str):
        self.plan_name = plan_name
        self._units: dict[str, UnitState] = {}
        self.started_at: Optional[float] = None
        self.completed_at: Optional[float] = None
        self.cancelled = False

    def add_unit(self, name: str) -> UnitState:
        """Register a unit for tracking (run order = registration order)."""
        state = UnitState(name=name)
        self._units[name] = state
        return state

    def get_unit(self, name: str) -> UnitState:
        """Get unit state by name.

        Raises:
            KeyError: If unit not registered
        """
        return self._units[name]

    @property
    def units(self) -> dict[str, UnitState]:
        return dict(self._units)

    def start(self, at: Optional[float] = None) -> None:
        self.started_at = time.time() if at is None else at

    def finish(self, at: Optional[float] = None) -> None:
        self.completed_at = time.time() if at is None else at

    def completed(self) -> list[str]:
        """Units that succeeded, in run order."""
        return [n for n, s in self._units.items() if s.result == ApplyResult.SUCCEEDED]

    def pending(self) -> list[str]:
        """Units never started, in run order."""
        return [n for n, s in self._units.items() if s.status == 'pending']

    @property
    def failed(self) -> Optional[UnitState]:
        """The unit that stopped the run, if any."""
        for state in self._units.values():
            if state.result not in (None, ApplyResult.SUCCEEDED):
                return state
        return None

    @property
    def success(self) -> bool:
        return not self.cancelled and all(
            s.result == ApplyResult.SUCCEEDED for s in self._units.values()
        )

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is not None and self.completed_at is not None:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        failed = self.failed
        d: dict[str, Any] = {
            'plan': self.plan_name,
            'success': self.success,
            'completed': self.completed(),
            'pending': self.pending(),
            'units': [s.to_dict() for s in self._units.values()],
        }
        if failed is not None:
            d['failed'] = failed.name
        if self.cancelled:
            d['cancelled'] = True
        if self.duration is not None:
            d['duration'] = round(self.duration, 1)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
