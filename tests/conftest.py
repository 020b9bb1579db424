"""Shared pytest fixtures for stack-driver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

STRIMZI_BASE = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: strimzi
resources:
  - namespace.yaml
  - https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/strimzi-cluster-operator-0.45.0.yaml
"""

KAFKA_SINGLE_NODE = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: kafka
# https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/strimzi-0.45.0.tar.gz
resources:
  - kafka.yaml
"""

APICURIO_BASE = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
resources:
  - https://raw.githubusercontent.com/Apicurio/apicurio-registry/3.0.6/operator/install/install.yaml
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep host environment overrides out of tests."""
    for var in ('STACK_DRIVER_ROOT', 'STACK_DRIVER_TIMEOUT', 'STACK_DRIVER_KUBECTL',
                'STACK_DRIVER_REPO', 'STACK_DRIVER_REF', 'GITHUB_TOKEN'):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def stack_dir(tmp_path):
    """Create temporary stack directory.

    Creates a minimal stack with:
    - stack.yaml (components strimzi and apicurio-registry, directory targets)
    - cluster-operator/base (strimzi operator, version in a URL)
    - kafka/single-node (operand, strimzi version in a comment URL)
    - apicurio-registry/operator/base
    - plans/dev.yaml
    """
    root = tmp_path / 'stack'
    for d in ['cluster-operator/base', 'kafka/single-node',
              'apicurio-registry/operator/base', 'plans']:
        (root / d).mkdir(parents=True, exist_ok=True)

    (root / 'stack.yaml').write_text("""
settings:
  poll_interval: 2
  timeout: 10
components:
  strimzi:
    label: Strimzi
    repo: strimzi/strimzi-kafka-operator
    pattern: 'strimzi-kafka-operator/releases/download/(?P<version>[0-9]+\\.[0-9]+\\.[0-9]+)'
    files:
      - cluster-operator/base/kustomization.yaml
      - kafka/single-node/kustomization.yaml
  apicurio-registry:
    label: Apicurio Registry
    repo: Apicurio/apicurio-registry
    pattern: 'Apicurio/apicurio-registry/(?P<version>[0-9]+\\.[0-9]+\\.[0-9]+)'
    files:
      - apicurio-registry/operator/base/kustomization.yaml
targets:
  operators:
    path: cluster-operator/base
    renderer: directory
  operands:
    path: kafka/single-node
    renderer: directory
  registry:
    path: apicurio-registry/operator/base
    renderer: directory
""")

    (root / 'cluster-operator/base/kustomization.yaml').write_text(STRIMZI_BASE)
    (root / 'cluster-operator/base/namespace.yaml').write_text("""\
apiVersion: v1
kind: Namespace
metadata:
  name: strimzi
""")

    (root / 'kafka/single-node/kustomization.yaml').write_text(KAFKA_SINGLE_NODE)
    (root / 'kafka/single-node/kafka.yaml').write_text("""\
apiVersion: kafka.strimzi.io/v1beta2
kind: Kafka
metadata:
  name: test-cluster
  namespace: kafka
  annotations:
    example.com/operator-release: https://github.com/strimzi/strimzi-kafka-operator/releases/download/0.45.0/
spec:
  kafka:
    replicas: 1
""")

    (root / 'apicurio-registry/operator/base/kustomization.yaml').write_text(APICURIO_BASE)

    (root / 'plans/dev.yaml').write_text("""
name: dev
description: Test plan
units:
  - name: operators
    target: operators
    components: [strimzi]
    ready_when:
      - kind: Deployment
        namespace: strimzi
        name: strimzi-cluster-operator
        condition: Available
  - name: operands
    target: operands
    requires: [operators]
    ready_when:
      - kind: Kafka
        namespace: kafka
        name: test-cluster
""")

    return root


@pytest.fixture
def stack_config(stack_dir):
    """Loaded StackConfig for the temporary stack directory."""
    from config import load_stack_config
    return load_stack_config(str(stack_dir))
