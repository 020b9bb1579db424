"""Tests for orchestrator.state module."""

import json
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from orchestrator.state import ApplyResult, RunState, UnitState


class TestUnitState:
    """Tests for UnitState dataclass."""

    def test_defaults(self):
        state = UnitState(name='operators')
        assert state.status == 'pending'
        assert state.result is None
        assert state.duration is None

    def test_start(self):
        state = UnitState(name='operators')
        state.start()
        assert state.status == 'running'
        assert state.started_at is not None
        assert state.result is None

    def test_succeed(self):
        state = UnitState(name='operators')
        state.start(at=10.0)
        state.finish(ApplyResult.SUCCEEDED, at=25.5)
        assert state.status == 'succeeded'
        assert state.result == ApplyResult.SUCCEEDED
        assert state.duration == 15.5
        assert state.error is None

    def test_timed_out(self):
        state = UnitState(name='operands')
        state.start(at=0.0)
        state.finish(ApplyResult.TIMED_OUT, at=120.0, error='not ready', error_code='E220')
        assert state.status == 'timed_out'
        assert state.error == 'not ready'
        assert state.error_code == 'E220'

    def test_to_dict(self):
        state = UnitState(name='operands')
        state.start(at=1.0)
        state.finish(ApplyResult.FAILED, at=3.5, error='rejected', error_code='E210')
        assert state.to_dict() == {
            'name': 'operands',
            'status': 'failed',
            'duration': 2.5,
            'error': 'rejected',
            'error_code': 'E210',
        }

    def test_to_dict_pending(self):
        assert UnitState(name='x').to_dict() == {'name': 'x', 'status': 'pending'}


class TestRunState:
    """Tests for RunState class."""

    def _state(self):
        state = RunState('dev')
        for name in ['a', 'b', 'c']:
            state.add_unit(name)
        return state

    def test_all_succeeded(self):
        state = self._state()
        for name in ['a', 'b', 'c']:
            state.get_unit(name).start(at=0)
            state.get_unit(name).finish(ApplyResult.SUCCEEDED, at=1)
        assert state.success is True
        assert state.completed() == ['a', 'b', 'c']
        assert state.pending() == []
        assert state.failed is None

    def test_prefix_reported(self):
        state = self._state()
        state.get_unit('a').start(at=0)
        state.get_unit('a').finish(ApplyResult.SUCCEEDED, at=1)
        state.get_unit('b').start(at=1)
        state.get_unit('b').finish(ApplyResult.TIMED_OUT, at=11, error='timeout')

        assert state.success is False
        assert state.completed() == ['a']
        assert state.failed.name == 'b'
        assert state.pending() == ['c']

    def test_cancelled_is_not_success(self):
        state = RunState('dev')
        state.cancelled = True
        assert state.success is False
        assert state.to_dict()['cancelled'] is True

    def test_get_unit_unknown(self):
        with pytest.raises(KeyError):
            RunState('dev').get_unit('nope')

    def test_to_json(self):
        state = self._state()
        state.start(at=100.0)
        state.get_unit('a').start(at=100.0)
        state.get_unit('a').finish(ApplyResult.FAILED, at=101.0, error='boom', error_code='E210')
        state.finish(at=101.0)

        data = json.loads(state.to_json())
        assert data['plan'] == 'dev'
        assert data['success'] is False
        assert data['failed'] == 'a'
        assert data['completed'] == []
        assert data['pending'] == ['b', 'c']
        assert data['duration'] == 1.0
        assert [u['name'] for u in data['units']] == ['a', 'b', 'c']
