"""kube-snapshot command-line interface.

Commands:
    kube-snapshot scan [-n NS] [-x NS ...]   Snapshot pods and namespaces.
    kube-snapshot version                    Print version and exit.

Connection settings come from the KUBE_SNAPSHOT_* environment variables and
the kubeconfig, and can be overridden with options.
"""

import logging
from collections import Counter
from dataclasses import replace
from typing import Optional, Tuple

import click
from kubernetes import client

from k8s_client import K8sConnectionError, K8sQueryError, KubernetesClient
from scan_config import ScanConfig

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def dial_or_abort(k8s: KubernetesClient) -> client.ApiClient:
    """
    Connect or stop the command.

    Nothing in a run can proceed without the API server, so a connection
    failure ends the process with exit status 1 and the cause on stderr.
    """
    try:
        return k8s.dial()
    except K8sConnectionError as e:
        logger.error(f"Cannot connect to the Kubernetes API: {e}")
        raise click.ClickException(f"Cannot connect to the Kubernetes API: {e}") from e


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@click.group()
def cli() -> None:
    """kube-snapshot: one-shot pod and namespace snapshot of a cluster."""


@cli.command("version")
def cmd_version() -> None:
    """Print the kube-snapshot version and exit."""
    click.echo(f"kube-snapshot {__version__}")


@cli.command("scan")
@click.option("--namespace", "-n", default=None, metavar="NS",
              help="Limit the snapshot to one namespace. Omit for all namespaces.")
@click.option("--exclude", "-x", "excludes", multiple=True, metavar="NS",
              help="Exclude a namespace; prefix with rx: for a regular expression. Repeatable.")
@click.option("--context", default=None, help="Kubeconfig context to use.")
@click.option("--kubeconfig", default=None, type=click.Path(dir_okay=False),
              help="Path to the kubeconfig file.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cmd_scan(namespace: Optional[str], excludes: Tuple[str, ...], context: Optional[str],
             kubeconfig: Optional[str], verbose: bool) -> None:
    """Take a snapshot of namespaces and pods and print a summary."""
    _configure_logging(verbose)

    try:
        scan_config = ScanConfig.from_env(namespace=namespace, context=context, kubeconfig=kubeconfig)
        if excludes:
            scan_config = replace(
                scan_config, excluded_namespaces=scan_config.excluded_namespaces + list(excludes)
            )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--exclude") from e

    with KubernetesClient(scan_config) as k8s:
        dial_or_abort(k8s)

        has_metrics = k8s.cluster_has_metrics()
        click.echo(f"Metrics API: {'available' if has_metrics else 'unavailable'}")

        try:
            namespaces = k8s.list_namespaces()
            pods = k8s.list_pods()
        except K8sQueryError as e:
            raise click.ClickException(str(e)) from e

        pod_counts = Counter(pod.metadata.namespace for pod in pods)

        click.echo(click.style(f"Namespaces ({len(namespaces)}):", bold=True))
        for ns in namespaces:
            name = ns.metadata.name
            label = " (system)" if k8s.is_system_namespace(name) else ""
            click.echo(f"  {name}{label}  pods: {pod_counts.get(name, 0)}")

        click.echo(f"Pods: {len(pods)}")


if __name__ == "__main__":
    cli()
