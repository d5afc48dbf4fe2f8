"""
Unit tests for the kube-snapshot command line.
"""

import click
import pytest
from unittest.mock import MagicMock, patch
from click.testing import CliRunner

from k8s_client import K8sConnectionError, K8sNotFoundError, KubernetesClient
from namespace_policy import is_system_namespace
from snapshot_cli import cli, dial_or_abort, __version__


@pytest.fixture
def mock_k8s(make_pod, make_namespace):
    """Patch KubernetesClient in the CLI; yields the client used inside the command."""
    with patch('snapshot_cli.KubernetesClient') as mock_cls:
        k8s = MagicMock()
        k8s.is_system_namespace.side_effect = is_system_namespace
        k8s.cluster_has_metrics.return_value = True
        k8s.list_namespaces.return_value = [make_namespace('default'), make_namespace('kube-system')]
        k8s.list_pods.return_value = [
            make_pod('web-1', 'default'),
            make_pod('web-2', 'default'),
            make_pod('coredns', 'kube-system'),
        ]
        mock_cls.return_value.__enter__.return_value = k8s
        k8s.cls = mock_cls
        yield k8s


class TestDialOrAbort:
    """Test the fail-fast connection helper."""

    def test_returns_handle(self):
        k8s = MagicMock(spec=KubernetesClient)

        assert dial_or_abort(k8s) is k8s.dial.return_value

    def test_connection_error_aborts(self):
        k8s = MagicMock(spec=KubernetesClient)
        k8s.dial.side_effect = K8sConnectionError("no kubeconfig")

        with pytest.raises(click.ClickException, match="no kubeconfig"):
            dial_or_abort(k8s)


class TestScanCommand:
    """Test the scan command."""

    def test_prints_summary(self, clean_env, mock_k8s):
        result = CliRunner().invoke(cli, ['scan'])

        assert result.exit_code == 0, result.output
        assert "Metrics API: available" in result.output
        assert "Namespaces (2):" in result.output
        assert "default  pods: 2" in result.output
        assert "kube-system (system)  pods: 1" in result.output
        assert "Pods: 3" in result.output

    def test_metrics_unavailable(self, clean_env, mock_k8s):
        mock_k8s.cluster_has_metrics.return_value = False

        result = CliRunner().invoke(cli, ['scan'])

        assert "Metrics API: unavailable" in result.output

    def test_options_build_config(self, clean_env, mock_k8s):
        result = CliRunner().invoke(cli, ['scan', '-n', 'default', '-x', 'b', '-x', 'rx:tmp-.*', '--context', 'staging'])

        assert result.exit_code == 0, result.output
        scan_config = mock_k8s.cls.call_args[0][0]
        assert scan_config.active_namespace() == 'default'
        assert scan_config.context == 'staging'
        assert scan_config.excluded_namespaces == ['b', 'rx:tmp-.*']

    def test_connection_failure_exits(self, clean_env, mock_k8s):
        mock_k8s.dial.side_effect = K8sConnectionError("Unable to resolve connection parameters")

        result = CliRunner().invoke(cli, ['scan'])

        assert result.exit_code == 1
        assert "Cannot connect to the Kubernetes API" in result.output
        mock_k8s.list_pods.assert_not_called()

    def test_listing_failure_exits(self, clean_env, mock_k8s):
        mock_k8s.list_namespaces.side_effect = K8sNotFoundError(
            "Resource not found while trying to get namespace 'foo'.", 404
        )

        result = CliRunner().invoke(cli, ['scan', '-n', 'foo'])

        assert result.exit_code == 1
        assert "get namespace 'foo'" in result.output

    def test_invalid_exclusion_pattern(self, clean_env, mock_k8s):
        result = CliRunner().invoke(cli, ['scan', '-x', 'rx:tmp-('])

        assert result.exit_code == 2
        mock_k8s.cls.assert_not_called()


def test_version():
    result = CliRunner().invoke(cli, ['version'])

    assert result.exit_code == 0
    assert result.output.strip() == f"kube-snapshot {__version__}"
