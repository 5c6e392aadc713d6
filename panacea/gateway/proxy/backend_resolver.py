"""
Backend resolution for ingress paths.

This module turns an ingress backend reference into the in-cluster
address of a service, querying the cluster only when the reference is
indirect (a named port or a typed resource).
"""

from typing import Optional, Protocol

from panacea.config import get_logger
from panacea.exceptions import (
    ClusterQueryError,
    PortNotFound,
    ResourceUnavailable,
    UnsupportedBackendType,
    UnsupportedResourceKind,
)
from panacea.models.ingress import ClusterResource, IngressBackend, ResourceBackend, ServiceBackend, ServiceResource
from panacea.models.route import BackendAddress
from panacea.utils.helpers import DEFAULT_CLUSTER_DOMAIN, is_valid_domain, service_hostname

logger = get_logger(__name__)


class ClusterQuery(Protocol):
    """Cluster lookups needed to resolve backends."""

    def get_resource(self, namespace: str, kind: str, name: str) -> ClusterResource: ...

    def get_service_port_by_name(self, namespace: str, name: str, port_name: str) -> Optional[int]: ...

    def get_cluster_domain(self) -> Optional[str]: ...


class BackendResolver:
    """Resolves backend references to service addresses."""

    def __init__(self, cluster: ClusterQuery, default_domain: str = DEFAULT_CLUSTER_DOMAIN):
        self.cluster = cluster
        self.default_domain = default_domain

    def discover_cluster_domain(self) -> str:
        """
        Discover the cluster DNS suffix.

        Never raises: any failure or invalid value yields the default domain.

        Returns:
            Cluster domain such as "cluster.local"
        """
        try:
            domain = self.cluster.get_cluster_domain()
        except ClusterQueryError as e:
            logger.info(
                f"Error getting cluster domain, defaulting to {self.default_domain}: {e}",
                extra={"error": str(e)}
            )
            return self.default_domain

        if domain is None:
            return self.default_domain

        domain = domain.rstrip(".")
        if not is_valid_domain(domain):
            logger.warning(
                f"Ignoring invalid cluster domain {domain!r}, defaulting to {self.default_domain}",
                extra={"cluster_domain": domain}
            )
            return self.default_domain

        return domain

    def resolve(
        self,
        namespace: str,
        backend: IngressBackend,
        cluster_domain: Optional[str] = None
    ) -> BackendAddress:
        """
        Resolve a backend reference to a network address.

        Args:
            namespace: Namespace of the ingress that owns the reference
            backend: Backend reference of the path entry
            cluster_domain: DNS suffix; the default domain when omitted

        Returns:
            Resolved backend address

        Raises:
            PortNotFound: If no port of the given name exists
            ResourceUnavailable: If the cluster query fails
            UnsupportedBackendType: If the reference cannot be used as a backend
        """
        domain = cluster_domain or self.default_domain

        if backend.resource is not None:
            return self._resolve_resource(namespace, backend.resource, domain)
        if backend.service is not None:
            return self._resolve_service(namespace, backend.service, domain)

        raise UnsupportedBackendType(namespace, "<empty>", "backend has neither service nor resource")

    def _resolve_service(self, namespace: str, service: ServiceBackend, domain: str) -> BackendAddress:
        host = service_hostname(service.name, namespace, domain)

        if service.port.number:
            return BackendAddress(host=host, port=service.port.number)

        if not service.port.name:
            raise PortNotFound(namespace, service.name, "service port has neither number nor name")

        try:
            port = self.cluster.get_service_port_by_name(namespace, service.name, service.port.name)
        except ClusterQueryError as e:
            raise ResourceUnavailable(namespace, service.name, str(e)) from e

        if port is None:
            raise PortNotFound(
                namespace, service.name,
                f"port name {service.port.name} not found in service"
            )

        return BackendAddress(host=host, port=port)

    def _resolve_resource(self, namespace: str, resource: ResourceBackend, domain: str) -> BackendAddress:
        reference = f"{resource.kind}/{resource.name}"

        try:
            obj = self.cluster.get_resource(namespace, resource.kind, resource.name)
        except UnsupportedResourceKind as e:
            raise UnsupportedBackendType(namespace, reference, str(e)) from e
        except ClusterQueryError as e:
            raise ResourceUnavailable(namespace, reference, str(e)) from e

        if not isinstance(obj, ServiceResource):
            raise UnsupportedBackendType(namespace, reference, f"{obj.kind} does not expose service ports")

        if not obj.ports:
            raise PortNotFound(namespace, reference, "service declares no ports")

        # No field says which port is meant; the first declared one is used
        port = obj.ports[0]
        logger.warning(
            f"Resolved {reference} in {namespace} to the first declared port {port.port} of service {obj.name}",
            extra={
                "namespace": namespace,
                "resource": reference,
                "service": obj.name,
                "port": port.port,
                "port_name": port.name,
                "declared_ports": len(obj.ports),
            }
        )
        return BackendAddress(host=service_hostname(obj.name, namespace, domain), port=port.port)
