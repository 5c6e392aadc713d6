"""
Kubernetes cluster access for the ingress controller.

This module wraps the official Kubernetes client with the small set of
queries the controller needs: listing ingresses, fetching backend
resources, resolving named service ports, and reading the cluster domain.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from panacea.config import get_logger
from panacea.exceptions import ClusterQueryError, ResourceNotFound, UnsupportedResourceKind
from panacea.models.ingress import (
    ClusterResource,
    IngressSpec,
    ServicePort,
    ServiceResource,
    WorkloadResource,
    canonical_kind,
)

logger = get_logger(__name__)

KUBELET_CONFIG_NAMESPACE = "kube-system"
KUBELET_CONFIG_NAME = "kubelet-config"
KUBELET_CONFIG_KEY = "kubelet"


def create_api_client(kubeconfig: str = "") -> client.ApiClient:
    """
    Create a Kubernetes API client.

    An explicit kubeconfig path wins. Otherwise the in-cluster service
    account is used, falling back to the default kubeconfig location.

    Args:
        kubeconfig: Optional path to a kubeconfig file

    Returns:
        Configured API client

    Raises:
        kubernetes.config.ConfigException: If no configuration is usable
    """
    configuration = client.Configuration()

    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
        logger.info(f"Using kubeconfig {kubeconfig}")
    else:
        try:
            config.load_incluster_config(client_configuration=configuration)
            logger.info("Using in-cluster configuration")
        except config.ConfigException:
            config.load_kube_config(client_configuration=configuration)
            logger.info("Using default kubeconfig")

    return client.ApiClient(configuration)


class ClusterClient:
    """Cluster query and list collaborator backed by the Kubernetes API."""

    def __init__(
        self,
        api_client: client.ApiClient,
        namespace: str = "",
        request_timeout: Optional[float] = 10.0
    ):
        """
        Initialize the cluster client.

        Args:
            api_client: Kubernetes API client
            namespace: Namespace to list ingresses from, empty for all
            request_timeout: Per-request timeout in seconds
        """
        self.namespace = namespace
        self.request_timeout = request_timeout
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.batch = client.BatchV1Api(api_client)
        self.networking = client.NetworkingV1Api(api_client)

        self._readers: Dict[str, Callable[[str, str], Any]] = {
            "Service": self._read(self.core.read_namespaced_service),
            "Pod": self._read(self.core.read_namespaced_pod),
            "ConfigMap": self._read(self.core.read_namespaced_config_map),
            "Secret": self._read(self.core.read_namespaced_secret),
            "Deployment": self._read(self.apps.read_namespaced_deployment),
            "StatefulSet": self._read(self.apps.read_namespaced_stateful_set),
            "DaemonSet": self._read(self.apps.read_namespaced_daemon_set),
            "Job": self._read(self.batch.read_namespaced_job),
            "CronJob": self._read(self.batch.read_namespaced_cron_job),
            "Ingress": self._read(self.networking.read_namespaced_ingress),
        }

    def _read(self, method: Callable[..., Any]) -> Callable[[str, str], Any]:
        def reader(namespace: str, name: str) -> Any:
            return method(name, namespace, _request_timeout=self.request_timeout)
        return reader

    def _call(self, description: str, func: Callable[[], Any]) -> Any:
        """Run an API call and translate client errors."""
        try:
            return func()
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFound(f"{description}: not found", status=404) from e
            raise ClusterQueryError(f"{description}: {e.status} {e.reason}", status=e.status) from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterQueryError(f"{description}: {e}") from e

    def ingress_list_call(self) -> Tuple[Callable[..., Any], Tuple[Any, ...]]:
        """Return the list function and its positional arguments for the namespace scope."""
        if self.namespace:
            return self.networking.list_namespaced_ingress, (self.namespace,)
        return self.networking.list_ingress_for_all_namespaces, ()

    def list_ingresses(self) -> List[IngressSpec]:
        """
        List all ingresses in scope.

        Returns:
            Ingresses converted to IngressSpec

        Raises:
            ClusterQueryError: If the list call fails
        """
        list_call, args = self.ingress_list_call()
        result = self._call(
            "list ingresses",
            lambda: list_call(*args, _request_timeout=self.request_timeout)
        )
        ingresses = [IngressSpec.from_kubernetes(item) for item in result.items or []]
        logger.debug(f"Listed {len(ingresses)} ingresses", extra={"namespace": self.namespace or "*"})
        return ingresses

    def ingress_resource_version(self) -> str:
        """Perform a list call and return its resource version."""
        list_call, args = self.ingress_list_call()
        result = self._call(
            "list ingresses",
            lambda: list_call(*args, _request_timeout=self.request_timeout)
        )
        return result.metadata.resource_version

    def get_resource(self, namespace: str, kind: str, name: str) -> ClusterResource:
        """
        Fetch an object by kind and name.

        Args:
            namespace: Object namespace
            kind: Object kind, singular or plural, any case
            name: Object name

        Returns:
            ServiceResource for services, WorkloadResource for other kinds

        Raises:
            UnsupportedResourceKind: If the kind cannot be fetched
            ResourceNotFound: If the object does not exist
            ClusterQueryError: If the API call fails
        """
        canonical = canonical_kind(kind)
        if canonical is None:
            raise UnsupportedResourceKind(f"unsupported resource kind: {kind}")

        logger.debug("Getting resource", extra={"kind": canonical, "namespace": namespace, "resource": name})
        obj = self._call(
            f"get {canonical.lower()} {namespace}/{name}",
            lambda: self._readers[canonical](namespace, name)
        )

        if canonical == "Service":
            return ServiceResource(name=obj.metadata.name, ports=_service_ports(obj))
        return WorkloadResource(kind=canonical, name=obj.metadata.name)

    def get_service_port_by_name(self, namespace: str, name: str, port_name: str) -> Optional[int]:
        """
        Look up the number of a named service port.

        Returns:
            Port number, or None if the service has no port with that name

        Raises:
            ResourceNotFound: If the service does not exist
            ClusterQueryError: If the API call fails
        """
        service = self._call(
            f"get service {namespace}/{name}",
            lambda: self.core.read_namespaced_service(name, namespace, _request_timeout=self.request_timeout)
        )
        for port in _service_ports(service):
            if port.name == port_name:
                return port.port
        return None

    def get_cluster_domain(self) -> Optional[str]:
        """
        Read the cluster domain from the kubelet configuration.

        Returns:
            The ``clusterDomain`` value, or None when it is not configured

        Raises:
            ClusterQueryError: If the ConfigMap cannot be read or parsed
        """
        config_map = self._call(
            f"get configmap {KUBELET_CONFIG_NAMESPACE}/{KUBELET_CONFIG_NAME}",
            lambda: self.core.read_namespaced_config_map(
                KUBELET_CONFIG_NAME,
                KUBELET_CONFIG_NAMESPACE,
                _request_timeout=self.request_timeout
            )
        )
        kubelet = (config_map.data or {}).get(KUBELET_CONFIG_KEY)
        if not kubelet:
            return None

        try:
            kubelet_config = yaml.safe_load(kubelet)
        except yaml.YAMLError as e:
            raise ClusterQueryError(f"malformed kubelet configuration: {e}") from e

        if not isinstance(kubelet_config, dict):
            raise ClusterQueryError("malformed kubelet configuration: not a mapping")

        domain = kubelet_config.get("clusterDomain")
        return domain if isinstance(domain, str) and domain else None


def _service_ports(service: Any) -> List[ServicePort]:
    ports = service.spec.ports if service.spec and service.spec.ports else []
    return [
        ServicePort(port=port.port, name=port.name, protocol=port.protocol or "TCP")
        for port in ports
    ]
