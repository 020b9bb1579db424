"""Tests for resolver package (ManifestSetResolver and renderers)."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import Component
from errors import RenderError, UnknownComponentError, UnknownTargetError
from resolver.manifests import ManifestSetResolver, substitute_version
from resolver.renderers import DirectoryRenderer, KustomizeRenderer, remote_url
from versions.pinned import PinnedVersion

STRIMZI = Component(
    name='strimzi',
    repo='strimzi/strimzi-kafka-operator',
    patterns=(r'strimzi-kafka-operator/releases/download/(?P<version>[0-9]+\.[0-9]+\.[0-9]+)',),
    files=('a.yaml',),
)


class TestSubstituteVersion:
    """Tests for substitute_version()."""

    def test_replaces_url_and_filename(self):
        text = ("- https://github.com/strimzi/strimzi-kafka-operator/releases/download/"
                "0.45.0/strimzi-cluster-operator-0.45.0.yaml\n")
        result = substitute_version(text, STRIMZI, '0.46.0')
        assert '0.45.0' not in result
        assert result.count('0.46.0') == 2

    def test_no_match_leaves_text(self):
        text = "image: quay.io/strimzi/kafka:0.45.0-kafka-3.9.0\n"
        assert substitute_version(text, STRIMZI, '0.46.0') == text

    def test_does_not_touch_longer_versions(self):
        text = ("url: https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/x\n"
                "other: 10.45.0\n")
        result = substitute_version(text, STRIMZI, '0.46.0')
        assert 'other: 10.45.0' in result

    def test_same_version_is_identity(self):
        text = "https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/x"
        assert substitute_version(text, STRIMZI, '0.45.0') == text


class TestManifestSetResolver:
    """Tests for ManifestSetResolver with the directory renderer."""

    def test_resolve_documents(self, stack_config):
        resolver = ManifestSetResolver(stack_config)
        docs = resolver.resolve('operators', [PinnedVersion('strimzi', '0.45.0')])
        assert [d['kind'] for d in docs] == ['Namespace']
        assert docs[0]['metadata']['name'] == 'strimzi'

    def test_unknown_target(self, stack_config):
        resolver = ManifestSetResolver(stack_config)
        with pytest.raises(UnknownTargetError) as exc_info:
            resolver.resolve('nope')
        assert 'operators' in str(exc_info.value)

    def test_unknown_component_pin(self, stack_config):
        resolver = ManifestSetResolver(stack_config)
        with pytest.raises(UnknownComponentError):
            resolver.resolve('operators', [PinnedVersion('kafka-ui', '1.0.0')])

    def test_pinned_version_substituted(self, stack_config):
        resolver = ManifestSetResolver(stack_config)
        docs = resolver.resolve('operands', [PinnedVersion('strimzi', '0.46.0')])
        annotation = docs[0]['metadata']['annotations']['example.com/operator-release']
        assert annotation.endswith('/releases/download/0.46.0/')

    def test_source_files_untouched(self, stack_config, stack_dir):
        before = (stack_dir / 'kafka/single-node/kafka.yaml').read_bytes()
        ManifestSetResolver(stack_config).resolve('operands', [PinnedVersion('strimzi', '0.46.0')])
        assert (stack_dir / 'kafka/single-node/kafka.yaml').read_bytes() == before

    def test_idempotent(self, stack_config):
        resolver = ManifestSetResolver(stack_config)
        pins = [PinnedVersion('strimzi', '0.46.0')]
        first = resolver.resolve('operands', pins)
        second = resolver.resolve('operands', pins)
        assert first == second
        assert yaml.safe_dump_all(first) == yaml.safe_dump_all(second)

    def test_consistent_across_targets(self, stack_config, stack_dir):
        """Operator base and operand end up on the same version."""
        (stack_dir / 'cluster-operator/base/operator.yaml').write_text(
            "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: release\n"
            "data:\n  url: https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/\n"
        )
        (stack_dir / 'cluster-operator/base/kustomization.yaml').write_text(
            "resources:\n  - namespace.yaml\n  - operator.yaml\n"
        )
        resolver = ManifestSetResolver(stack_config)
        pins = [PinnedVersion('strimzi', '0.46.0')]
        text = resolver.resolve_text('operators', pins) + resolver.resolve_text('operands', pins)
        assert '0.45.0' not in text
        assert text.count('0.46.0') == 2

    def test_non_object_document_rejected(self, stack_config, stack_dir):
        (stack_dir / 'kafka/single-node/kafka.yaml').write_text("- just\n- a list\n")
        with pytest.raises(RenderError, match='not a Kubernetes object'):
            ManifestSetResolver(stack_config).resolve('operands')

    def test_custom_renderer(self, stack_config):
        class StaticRenderer:
            def render(self, root, target_path, transform):
                return transform(
                    "kind: ConfigMap\nmetadata:\n  name: x\n---\n\n---\n"
                    "kind: Secret\nmetadata:\n  name: y\n"
                )

        resolver = ManifestSetResolver(stack_config, renderers={'directory': StaticRenderer()})
        docs = resolver.resolve('operators')
        assert [d['kind'] for d in docs] == ['ConfigMap', 'Secret']

    def test_remote_repo_uses_kustomize_for_every_target(self, stack_config):
        stack_config.settings.repo = 'myuser/strimzi-kustomize'
        stack_config.settings.ref = 'v1.0.0'
        out = "kind: Namespace\nmetadata:\n  name: strimzi\n"
        with patch('resolver.renderers.run_command', return_value=(0, out, '')) as mock_run:
            docs = ManifestSetResolver(stack_config).resolve('operators')

        # 'operators' is a directory target locally
        assert mock_run.call_args[0][0] == [
            'kubectl', 'kustomize',
            'https://github.com/myuser/strimzi-kustomize//cluster-operator/base?ref=v1.0.0',
        ]
        assert docs == [{'kind': 'Namespace', 'metadata': {'name': 'strimzi'}}]


class TestDirectoryRenderer:
    """Tests for DirectoryRenderer."""

    def test_sorted_without_kustomization(self, tmp_path):
        (tmp_path / 'b.yaml').write_text("kind: B\n")
        (tmp_path / 'a.yaml').write_text("kind: A")
        (tmp_path / 'notes.txt').write_text("ignored")
        text = DirectoryRenderer().render(tmp_path, '.', lambda t: t)
        assert text == "kind: A\n---\nkind: B\n"

    def test_kustomization_order(self, tmp_path):
        (tmp_path / 'a.yaml').write_text("kind: A\n")
        (tmp_path / 'b.yaml').write_text("kind: B\n")
        (tmp_path / 'kustomization.yaml').write_text(
            "resources:\n  - b.yaml\n  - https://example.com/remote.yaml\n  - a.yaml\n"
        )
        text = DirectoryRenderer().render(tmp_path, '.', lambda t: t)
        assert text == "kind: B\n---\nkind: A\n"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(RenderError, match='not found'):
            DirectoryRenderer().render(tmp_path, 'missing', lambda t: t)

    def test_empty_directory(self, tmp_path):
        with pytest.raises(RenderError, match='No manifests'):
            DirectoryRenderer().render(tmp_path, '.', lambda t: t)


class TestKustomizeRenderer:
    """Tests for KustomizeRenderer with kubectl mocked."""

    def test_renders_substituted_copy(self, stack_dir):
        seen = {}

        def _fake_run(cmd, **kwargs):
            target = Path(cmd[-1])
            seen['cmd'] = cmd
            seen['text'] = (target / 'kustomization.yaml').read_text()
            return 0, "kind: Namespace\nmetadata:\n  name: strimzi\n", ''

        with patch('resolver.renderers.run_command', side_effect=_fake_run):
            out = KustomizeRenderer('kubectl').render(
                stack_dir, 'cluster-operator/base', lambda t: t.replace('0.45.0', '0.46.0'),
            )

        assert seen['cmd'][:2] == ['kubectl', 'kustomize']
        assert '0.46.0' in seen['text']
        assert 'kind: Namespace' in out
        # the real stack directory is never modified
        assert '0.45.0' in (stack_dir / 'cluster-operator/base/kustomization.yaml').read_text()
        assert not Path(seen['cmd'][-1]).exists()

    def test_failure_raises_render_error(self, stack_dir):
        with patch('resolver.renderers.run_command', return_value=(1, '', 'accumulating resources: boom')):
            with pytest.raises(RenderError, match='accumulating resources'):
                KustomizeRenderer().render(stack_dir, 'cluster-operator/base', lambda t: t)

    def test_missing_target(self, stack_dir):
        with pytest.raises(RenderError, match='not found'):
            KustomizeRenderer().render(stack_dir, 'nope', lambda t: t)

    def test_remote_repo_rendered_by_url(self, tmp_path):
        with patch('resolver.renderers.run_command',
                   return_value=(0, "kind: Namespace\nmetadata:\n  name: strimzi\n", '')) as mock_run:
            out = KustomizeRenderer('kubectl', repo='myuser/strimzi-kustomize', ref='v1.0.0').render(
                tmp_path / 'absent', 'dev/base', lambda t: t.replace('strimzi', 'kafka'),
            )

        assert mock_run.call_args[0][0] == [
            'kubectl', 'kustomize', 'https://github.com/myuser/strimzi-kustomize//dev/base?ref=v1.0.0',
        ]
        assert 'name: kafka' in out

    def test_remote_failure_names_url(self, tmp_path):
        with patch('resolver.renderers.run_command', return_value=(1, '', 'git clone failed')):
            with pytest.raises(RenderError, match=r'strimzi-kustomize//dev/stack\?ref=main'):
                KustomizeRenderer(repo='myuser/strimzi-kustomize').render(
                    tmp_path, 'dev/stack', lambda t: t,
                )

    def test_remote_url(self):
        assert remote_url('tomncooper/strimzi-kustomize', '/dev/stack/', 'main') == \
            'https://github.com/tomncooper/strimzi-kustomize//dev/stack?ref=main'
        assert remote_url('me/stack', 'dev/base', 'v2', base_url='https://ghe.example.com/') == \
            'https://ghe.example.com/me/stack//dev/base?ref=v2'
