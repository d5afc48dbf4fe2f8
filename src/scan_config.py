"""
Configuration module for kube-snapshot.

This module resolves how to reach the Kubernetes API server (explicit URL and
bearer token, in-cluster service account, or kubeconfig), which namespace a
snapshot is scoped to, and which namespaces are excluded from it.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from kubernetes import client, config

from namespace_policy import NamespacePolicy, parse_namespace_list

logger = logging.getLogger(__name__)

ENV_PREFIX = 'KUBE_SNAPSHOT_'


class ConfigurationError(Exception):
    """Raised when connection parameters cannot be resolved."""
    pass


@dataclass
class ScanConfig:
    """Configuration for a single snapshot run"""
    api_server_url: Optional[str] = None
    bearer_token: Optional[str] = None
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    verify_ssl: bool = True

    # Empty string means all namespaces
    namespace: str = ''
    excluded_namespaces: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.namespace = (self.namespace or '').strip()
        self._policy = NamespacePolicy(excludes=list(self.excluded_namespaces))

    @classmethod
    def from_env(cls, **overrides) -> 'ScanConfig':
        """
        Build a configuration from KUBE_SNAPSHOT_* environment variables.

        Args:
            **overrides: Field values taking precedence over the environment.
                None values are ignored.

        Returns:
            ScanConfig: The resolved configuration
        """
        values = {
            'api_server_url': os.getenv(f'{ENV_PREFIX}API_SERVER') or None,
            'bearer_token': os.getenv(f'{ENV_PREFIX}TOKEN') or None,
            'kubeconfig': os.getenv('KUBECONFIG') or None,
            'context': os.getenv(f'{ENV_PREFIX}CONTEXT') or None,
            'verify_ssl': os.getenv(f'{ENV_PREFIX}INSECURE', '').lower() != 'true',
            'namespace': os.getenv(f'{ENV_PREFIX}NAMESPACE', ''),
            'excluded_namespaces': parse_namespace_list(
                os.getenv(f'{ENV_PREFIX}EXCLUDED_NAMESPACES', '')
            ),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def policy(self) -> NamespacePolicy:
        return self._policy

    def active_namespace(self) -> str:
        """Return the namespace the snapshot is scoped to, or '' for all namespaces."""
        return self.namespace

    def is_excluded(self, namespace_name: str) -> bool:
        return self._policy.is_excluded(namespace_name)

    def resolve_connection_parameters(self) -> client.Configuration:
        """
        Resolve the API server connection parameters.

        An explicit API server URL wins. Without one, the in-cluster service
        account is tried first unless a kubeconfig path or context was given,
        then the kubeconfig.

        Returns:
            client.Configuration: Connection parameters for an ApiClient

        Raises:
            ConfigurationError: If no usable configuration could be loaded
        """
        configuration = client.Configuration()

        if self.api_server_url:
            if not self.bearer_token:
                raise ConfigurationError(
                    f"A bearer token is required to connect to {self.api_server_url}"
                )
            configuration.host = self.api_server_url
            logger.info(f"Using explicit API server {self.api_server_url}")
        else:
            self._load_cluster_configuration(configuration)

        if self.bearer_token:
            configuration.api_key = {"authorization": f"Bearer {self.bearer_token}"}

        if not self.verify_ssl:
            configuration.verify_ssl = False
            logger.warning("TLS verification disabled for API server connection")

        return configuration

    def _load_cluster_configuration(self, configuration: client.Configuration) -> None:
        incluster_error = None

        if not self.kubeconfig and not self.context:
            try:
                config.load_incluster_config(client_configuration=configuration)
                logger.info("Successfully loaded in-cluster configuration")
                return
            except config.ConfigException as e:
                incluster_error = e
                logger.debug(f"In-cluster config not available: {e}")

        try:
            config.load_kube_config(
                config_file=self.kubeconfig,
                context=self.context,
                client_configuration=configuration,
            )
            logger.info(f"Successfully loaded kubeconfig (context: {self.context or 'current'})")
        except (config.ConfigException, OSError) as kubeconfig_error:
            message = f"Unable to load cluster configuration: kubeconfig error: {kubeconfig_error}"
            if incluster_error is not None:
                message += f", in-cluster error: {incluster_error}"
            logger.error(message)
            raise ConfigurationError(message) from kubeconfig_error
