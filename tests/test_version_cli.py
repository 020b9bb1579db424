"""Tests for the version maintenance CLI."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from errors import TransportError
from versions.cli import main


@pytest.fixture
def index():
    """Mock release index injected in place of the GitHub client."""
    mock_index = MagicMock()
    with patch('versions.registry.ReleaseIndexClient', return_value=mock_index):
        yield mock_index


def _run(stack_dir, *argv):
    return main([*argv, '--root', str(stack_dir)])


class TestVersionArguments:
    """Argument and input validation."""

    def test_no_component(self, stack_dir, capsys):
        assert _run(stack_dir) == 1
        assert 'No component specified' in capsys.readouterr().err

    def test_no_version(self, stack_dir, capsys):
        assert _run(stack_dir, 'strimzi') == 1
        assert 'No version specified' in capsys.readouterr().err

    def test_invalid_version(self, stack_dir, capsys, index):
        before = (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes()
        assert _run(stack_dir, 'strimzi', '0.46') == 1
        err = capsys.readouterr().err
        assert 'Invalid version format: 0.46' in err
        assert 'X.Y.Z' in err
        assert (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes() == before
        index.release_exists.assert_not_called()

    def test_unknown_component(self, stack_dir, capsys):
        assert _run(stack_dir, 'kafka-ui', '1.0.0') == 1
        err = capsys.readouterr().err
        assert 'Unknown component' in err
        assert 'strimzi' in err

    def test_missing_stack(self, tmp_path, capsys):
        assert main(['strimzi', '--current', '--root', str(tmp_path / 'nope')]) == 1
        assert 'Error:' in capsys.readouterr().err


class TestVersionCurrent:
    """--current prints the pinned version."""

    def test_current(self, stack_dir, capsys):
        assert _run(stack_dir, 'strimzi', '--current') == 0
        assert capsys.readouterr().out.strip() == '0.45.0'


class TestVersionCheck:
    """--check consults the release index without writing."""

    def test_exists(self, stack_dir, index):
        index.release_exists.return_value = True
        before = (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes()
        assert _run(stack_dir, '--check', 'strimzi', '0.46.0') == 0
        index.release_exists.assert_called_once_with('strimzi/strimzi-kafka-operator', '0.46.0')
        assert (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes() == before

    def test_not_found_upstream(self, stack_dir, capsys, index):
        index.release_exists.return_value = False
        assert _run(stack_dir, '--check', 'strimzi', '9.9.9') == 1
        err = capsys.readouterr().err
        assert 'Strimzi release 9.9.9 not found upstream' in err
        assert 'https://github.com/strimzi/strimzi-kafka-operator/releases' in err

    def test_transport_error_is_distinct(self, stack_dir, capsys, index):
        index.release_exists.side_effect = TransportError('Cannot connect to api.github.com')
        assert _run(stack_dir, '--check', 'strimzi', '0.46.0') == 1
        err = capsys.readouterr().err
        assert 'Could not reach release index' in err
        assert 'not found upstream' not in err


class TestVersionList:
    """--list prints releases and marks the pinned one."""

    def test_list(self, stack_dir, capsys, index):
        index.iter_releases.return_value = ['0.46.0', '0.45.0', '0.44.0']
        assert _run(stack_dir, '--list', 'strimzi') == 0
        out = capsys.readouterr().out
        assert 'Available Strimzi versions (latest 20):' in out
        assert '0.45.0  (current)' in out
        assert '0.46.0\n' in out
        index.iter_releases.assert_called_once_with('strimzi/strimzi-kafka-operator', 20)

    def test_list_count(self, stack_dir, index):
        index.iter_releases.return_value = ['0.46.0']
        assert _run(stack_dir, '--list', '5', 'strimzi') == 0
        index.iter_releases.assert_called_once_with('strimzi/strimzi-kafka-operator', 5)

    def test_list_all(self, stack_dir, capsys, index):
        index.iter_releases.return_value = ['0.46.0', '0.45.0']
        assert _run(stack_dir, '--list', 'all', 'strimzi') == 0
        assert '(all 2)' in capsys.readouterr().out
        index.iter_releases.assert_called_once_with('strimzi/strimzi-kafka-operator', 'all')

    def test_list_empty(self, stack_dir, capsys, index):
        index.iter_releases.return_value = []
        assert _run(stack_dir, '--list', 'strimzi') == 1
        assert 'No releases found' in capsys.readouterr().err

    def test_list_transport_error(self, stack_dir, capsys, index):
        index.iter_releases.side_effect = TransportError('Timeout connecting')
        assert _run(stack_dir, '--list', 'strimzi') == 1
        assert 'Failed to fetch releases' in capsys.readouterr().err


class TestVersionRewrite:
    """Rewriting pinned versions from the command line."""

    def test_apply(self, stack_dir, capsys):
        assert _run(stack_dir, 'strimzi', '0.46.0') == 0
        assert '0.46.0' in (stack_dir / 'cluster-operator/base/kustomization.yaml').read_text()
        assert '0.46.0' in (stack_dir / 'kafka/single-node/kustomization.yaml').read_text()
        out = capsys.readouterr().out
        assert 'Next steps:' in out
        assert "Update Strimzi to 0.46.0" in out

    def test_dry_run(self, stack_dir, capsys):
        before = (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes()
        assert _run(stack_dir, 'strimzi', '0.46.0', '--dry-run') == 0
        out = capsys.readouterr().out
        assert 'Would update:' in out
        assert '    + ' in out and '0.46.0' in out
        assert (stack_dir / 'cluster-operator/base/kustomization.yaml').read_bytes() == before

    def test_already_at_version(self, stack_dir, capsys):
        assert _run(stack_dir, 'strimzi', '0.45.0') == 0
        assert 'Next steps' not in capsys.readouterr().out

    def test_missing_token_aborts(self, stack_dir, capsys):
        (stack_dir / 'kafka/single-node/kustomization.yaml').write_text("resources: []\n")
        assert _run(stack_dir, 'strimzi', '0.46.0') == 1
        assert 'Version 0.45.0 not found' in capsys.readouterr().err
        assert '0.45.0' in (stack_dir / 'cluster-operator/base/kustomization.yaml').read_text()
