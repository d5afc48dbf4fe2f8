"""
Pytest configuration and fixtures for kube-snapshot tests.
"""

import pytest
import os
import sys
from unittest.mock import patch

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from kubernetes import client

from scan_config import ScanConfig


@pytest.fixture
def make_pod():
    """Factory for V1Pod objects in a given namespace."""
    def _make_pod(name: str, namespace: str) -> client.V1Pod:
        return client.V1Pod(metadata=client.V1ObjectMeta(name=name, namespace=namespace))
    return _make_pod


@pytest.fixture
def make_namespace():
    """Factory for V1Namespace objects."""
    def _make_namespace(name: str) -> client.V1Namespace:
        return client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
    return _make_namespace


@pytest.fixture
def scan_config():
    """Configuration with an explicit API server, scoped to all namespaces."""
    return ScanConfig(
        api_server_url='https://k8s.example.com:6443',
        bearer_token='test-token-123'
    )


@pytest.fixture
def mock_api_client():
    """Patch ApiClient construction; yields the class mock."""
    with patch('k8s_client.client.ApiClient') as mock_cls:
        yield mock_cls


@pytest.fixture
def mock_core_v1(mock_api_client):
    """Patch CoreV1Api; yields the instance every client will use."""
    with patch('k8s_client.client.CoreV1Api') as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def mock_apis_api(mock_api_client):
    """Patch ApisApi used for API group discovery; yields the instance."""
    with patch('k8s_client.client.ApisApi') as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def clean_env():
    """Run with no KUBE_SNAPSHOT_* or KUBECONFIG variables set."""
    env = {key: value for key, value in os.environ.items()
           if not key.startswith('KUBE_SNAPSHOT_') and key != 'KUBECONFIG'}
    with patch.dict(os.environ, env, clear=True):
        yield env
