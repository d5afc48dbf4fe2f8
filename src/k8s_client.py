"""
Kubernetes API client module for kube-snapshot.

This module provides a client that connects lazily to the Kubernetes API,
detects whether the metrics API is served by the cluster, and takes a
queried-once snapshot of pods and namespaces filtered by the configured
namespace exclusions.

A client is meant for a single inspection run: its caches are never
invalidated or refreshed.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from namespace_policy import is_system_namespace
from scan_config import ScanConfig

# Metrics API group and the versions this client understands
METRICS_API_GROUP = 'metrics.k8s.io'
SUPPORTED_METRICS_VERSIONS = ('v1beta1',)


# Custom Exception Classes for different Kubernetes error types
class K8sBaseException(Exception):
    """Base exception for all Kubernetes client errors"""
    def __init__(self, message: str, status_code: Optional[int] = None,
                 operation: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.context = context or {}


class K8sConnectionError(K8sBaseException):
    """Connection parameters could not be resolved or the client could not be built"""
    pass


class K8sQueryError(K8sBaseException):
    """A list or get query against the API server failed"""
    pass


class K8sAuthenticationError(K8sQueryError):
    """Authentication failed (401)"""
    pass


class K8sAuthorizationError(K8sQueryError):
    """Authorization failed (403)"""
    pass


class K8sNotFoundError(K8sQueryError):
    """Resource not found (404)"""
    pass


class K8sServerError(K8sQueryError):
    """Server error (500+)"""
    pass


class K8sNetworkError(K8sQueryError):
    """Network/connection error"""
    pass


class KubernetesClient:
    """
    Snapshot client for the Kubernetes API.

    The connection and both resource caches are computed once under a lock
    and reused for the lifetime of the instance.
    """

    def __init__(self, config_obj: Optional[ScanConfig] = None):
        """
        Initialize the Kubernetes client. No connection is made until first use.

        Args:
            config_obj: Configuration for the run, read from the environment if omitted
        """
        self.config = config_obj or ScanConfig.from_env()
        self.logger = logging.getLogger(__name__)

        self.api_client: Optional[client.ApiClient] = None
        self.core_v1: Optional[client.CoreV1Api] = None

        self._pods_cache: List[client.V1Pod] = []
        self._namespaces_cache: List[client.V1Namespace] = []

        self._lock = threading.RLock()

    @staticmethod
    def is_system_namespace(namespace_name: str) -> bool:
        return is_system_namespace(namespace_name)

    def dial(self) -> client.ApiClient:
        """
        Return the API client handle, connecting on first call.

        Returns:
            client.ApiClient: The shared API client

        Raises:
            K8sConnectionError: If parameters cannot be resolved or the client cannot be built
        """
        with self._lock:
            if self.api_client is not None:
                return self.api_client

            try:
                configuration = self.config.resolve_connection_parameters()
            except Exception as e:
                self.logger.error(f"Failed to resolve connection parameters: {e}")
                raise K8sConnectionError(
                    f"Unable to resolve connection parameters: {e}", operation='dial'
                ) from e

            try:
                api_client = client.ApiClient(configuration)
                core_v1 = client.CoreV1Api(api_client)
            except Exception as e:
                self.logger.error(f"Failed to create API client for {configuration.host}: {e}")
                raise K8sConnectionError(
                    f"Unable to create API client for {configuration.host}: {e}",
                    operation='dial', context={'host': configuration.host}
                ) from e

            self.api_client = api_client
            self.core_v1 = core_v1
            self.logger.info(f"Connected to Kubernetes API at {configuration.host}")
            return self.api_client

    def cluster_has_metrics(self) -> bool:
        """
        Check whether the cluster serves a supported version of the metrics API.

        Never raises: a failed connection or discovery call reads as False.

        Returns:
            bool: True if API discovery lists metrics.k8s.io with a supported version
        """
        try:
            api_client = self.dial()
        except K8sConnectionError as e:
            self.logger.debug(f"Metrics check skipped, no connection: {e}")
            return False

        try:
            group_list = client.ApisApi(api_client).get_api_versions()
        except Exception as e:
            # Includes undecodable discovery bodies, which surface as ValueError
            self.logger.warning(f"API group discovery failed, assuming no metrics: {e}")
            return False

        for group in group_list.groups or []:
            if group.name != METRICS_API_GROUP:
                continue
            for discovered in group.versions or []:
                if discovered.version in SUPPORTED_METRICS_VERSIONS:
                    self.logger.debug(f"Metrics API {METRICS_API_GROUP}/{discovered.version} available")
                    return True

        self.logger.info(f"Metrics API {METRICS_API_GROUP} not available on cluster")
        return False

    def list_pods(self) -> List[client.V1Pod]:
        """
        List pods in the active namespace scope, minus excluded namespaces.

        Returns:
            List[client.V1Pod]: The cached pod snapshot

        Raises:
            K8sConnectionError: If no connection can be established
            K8sQueryError: If the list query fails
        """
        with self._lock:
            if self._pods_cache:
                self.logger.debug(f"Returning {len(self._pods_cache)} cached pods")
                return self._pods_cache

            namespace = self.config.active_namespace()
            self.dial()

            try:
                if namespace:
                    pod_list = self.core_v1.list_namespaced_pod(namespace)
                else:
                    pod_list = self.core_v1.list_pod_for_all_namespaces()
            except (ApiException, urllib3.exceptions.HTTPError) as e:
                raise self._query_error(e, f"list pods in {self._scope_label(namespace)}") from e

            self._pods_cache = [
                pod for pod in pod_list.items
                if not self.config.is_excluded(pod.metadata.namespace)
            ]
            self.logger.debug(f"Retrieved {len(pod_list.items)} pods, "
                              f"kept {len(self._pods_cache)} after exclusions")
            return self._pods_cache

    def list_namespaces(self) -> List[client.V1Namespace]:
        """
        List namespaces in the active scope, minus excluded namespaces.

        With a specific active namespace the result is that single namespace.

        Returns:
            List[client.V1Namespace]: The cached namespace snapshot

        Raises:
            K8sConnectionError: If no connection can be established
            K8sQueryError: If the query fails, K8sNotFoundError if the active namespace does not exist
        """
        with self._lock:
            if self._namespaces_cache:
                self.logger.debug(f"Returning {len(self._namespaces_cache)} cached namespaces")
                return self._namespaces_cache

            namespace = self.config.active_namespace()
            self.dial()

            try:
                if namespace:
                    items = [self.core_v1.read_namespace(namespace)]
                else:
                    items = self.core_v1.list_namespace().items
            except (ApiException, urllib3.exceptions.HTTPError) as e:
                operation = f"get namespace '{namespace}'" if namespace else "list namespaces"
                raise self._query_error(e, operation) from e

            self._namespaces_cache = [
                ns for ns in items
                if not self.config.is_excluded(ns.metadata.name)
            ]
            self.logger.debug(f"Retrieved {len(items)} namespaces, "
                              f"kept {len(self._namespaces_cache)} after exclusions")
            return self._namespaces_cache

    def _scope_label(self, namespace: str) -> str:
        return f"namespace '{namespace}'" if namespace else "all namespaces"

    def _query_error(self, error: Exception, operation: str) -> K8sQueryError:
        if isinstance(error, ApiException):
            exception = self._convert_api_exception(error, operation)
        else:
            exception = K8sNetworkError(
                f"Network error while trying to {operation}: {error}", operation=operation
            )
        self.logger.error(str(exception))
        return exception

    def _format_api_error(self, api_exception: ApiException, operation: str) -> str:
        """
        Format API exception into user-friendly error message.

        Args:
            api_exception: The Kubernetes API exception
            operation: Description of the operation that failed

        Returns:
            str: Formatted error message
        """
        status_code = api_exception.status

        error_messages = {
            401: f"Authentication failed while trying to {operation}.",
            403: f"Access denied. You don't have permission to {operation}.",
            404: f"Resource not found while trying to {operation}.",
            500: f"Kubernetes API server error while trying to {operation}.",
            503: f"Kubernetes API server unavailable while trying to {operation}."
        }

        base_message = error_messages.get(status_code, f"API error ({status_code}) while trying to {operation}")

        body = getattr(api_exception, 'body', None)
        if body:
            try:
                error_body = json.loads(body)
                if isinstance(error_body, dict) and 'message' in error_body:
                    base_message += f" Details: {error_body['message']}"
            except (TypeError, ValueError):
                pass

        return base_message

    def _convert_api_exception(self, api_exception: ApiException, operation: str) -> K8sQueryError:
        """
        Convert ApiException to the matching query error.

        Args:
            api_exception: The Kubernetes API exception
            operation: Description of the operation that failed

        Returns:
            K8sQueryError: Appropriate query error subclass
        """
        status_code = api_exception.status
        context = {
            'operation': operation,
            'status_code': status_code,
            'reason': getattr(api_exception, 'reason', None),
        }

        error_message = self._format_api_error(api_exception, operation)

        if status_code == 401:
            return K8sAuthenticationError(error_message, status_code, operation, context)
        elif status_code == 403:
            return K8sAuthorizationError(error_message, status_code, operation, context)
        elif status_code == 404:
            return K8sNotFoundError(error_message, status_code, operation, context)
        elif status_code is not None and status_code >= 500:
            return K8sServerError(error_message, status_code, operation, context)
        else:
            return K8sQueryError(error_message, status_code, operation, context)

    def close(self) -> None:
        """Close the client and clean up resources."""
        with self._lock:
            if self.api_client:
                self.api_client.close()
            self.api_client = None
            self.core_v1 = None
        self.logger.info("KubernetesClient closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        """Context manager exit."""
        self.close()
