"""Test fixtures for ingress controller tests."""

from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from panacea.exceptions import ResourceNotFound, UnsupportedResourceKind
from panacea.gateway.proxy import BackendResolver, RouteProxy
from panacea.gateway.routing import RouteBuilder, RoutingTable
from panacea.models.ingress import (
    IngressBackend,
    IngressPath,
    IngressRule,
    IngressSpec,
    PathType,
    ResourceBackend,
    ServiceBackend,
    ServiceBackendPort,
    ServicePort,
    ServiceResource,
    WorkloadResource,
    canonical_kind,
)
from panacea.models.route import ProxyTransportConfig

INGRESS_CLASS = "panacea-ingress-class"


class FakeCluster:
    """In-memory stand-in for ClusterClient."""

    def __init__(self, ingresses: Optional[List[IngressSpec]] = None, cluster_domain: Optional[str] = None):
        self.ingresses = list(ingresses or [])
        self.cluster_domain = cluster_domain
        self.domain_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.lookup_error: Optional[Exception] = None
        self.services: Dict[Tuple[str, str], ServiceResource] = {}
        self.workloads: Dict[Tuple[str, str, str], WorkloadResource] = {}
        self.calls: List[str] = []

    def add_service(self, namespace: str, name: str, *ports: Tuple[int, Optional[str]]):
        self.services[(namespace, name)] = ServiceResource(
            name=name,
            ports=[ServicePort(port=number, name=port_name) for number, port_name in ports]
        )

    def add_workload(self, namespace: str, kind: str, name: str):
        self.workloads[(namespace, kind, name)] = WorkloadResource(kind=kind, name=name)

    def list_ingresses(self) -> List[IngressSpec]:
        self.calls.append("list_ingresses")
        if self.list_error is not None:
            raise self.list_error
        return list(self.ingresses)

    def get_resource(self, namespace: str, kind: str, name: str):
        self.calls.append(f"get_resource {namespace}/{kind}/{name}")
        if self.lookup_error is not None:
            raise self.lookup_error
        canonical = canonical_kind(kind)
        if canonical is None:
            raise UnsupportedResourceKind(f"unsupported resource kind: {kind}")
        if canonical == "Service":
            obj = self.services.get((namespace, name))
        else:
            obj = self.workloads.get((namespace, canonical, name))
        if obj is None:
            raise ResourceNotFound(f"{canonical} {namespace}/{name}: not found")
        return obj

    def get_service_port_by_name(self, namespace: str, name: str, port_name: str) -> Optional[int]:
        self.calls.append(f"get_service_port_by_name {namespace}/{name}/{port_name}")
        if self.lookup_error is not None:
            raise self.lookup_error
        service = self.services.get((namespace, name))
        if service is None:
            raise ResourceNotFound(f"service {namespace}/{name}: not found")
        for port in service.ports:
            if port.name == port_name:
                return port.port
        return None

    def get_cluster_domain(self) -> Optional[str]:
        self.calls.append("get_cluster_domain")
        if self.domain_error is not None:
            raise self.domain_error
        return self.cluster_domain


class BodyStream(httpx.AsyncByteStream):
    """Response body that is only read once the proxy streams it."""

    def __init__(self, body: bytes):
        self.body = body

    async def __aiter__(self):
        yield self.body


class MockBackend:
    """Records outbound requests and answers them like a backend would."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.error: Optional[type] = None
        self.status_code = 200
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error("backend unavailable", request=request)
        body = f"hello from {request.url.host}{request.url.raw_path.decode()}".encode()
        return httpx.Response(
            self.status_code,
            headers={
                "X-Backend": request.url.host,
                "Connection": "keep-alive",
                "Content-Length": str(len(body)),
            },
            stream=BodyStream(body),
        )

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def make_ingress(
    name: str,
    host: str = "example.com",
    path: str = "/",
    service: str = "svc",
    port: Optional[int] = 8080,
    namespace: str = "ns",
    class_name: Optional[str] = INGRESS_CLASS,
    path_type: PathType = PathType.PREFIX,
    port_name: Optional[str] = None
) -> IngressSpec:
    """Build a single-path ingress backed by a service."""
    backend = IngressBackend(
        service=ServiceBackend(name=service, port=ServiceBackendPort(number=port, name=port_name))
    )
    return IngressSpec(
        namespace=namespace,
        name=name,
        class_name=class_name,
        rules=[IngressRule(host=host, paths=[IngressPath(path=path, path_type=path_type, backend=backend)])],
    )


def make_resource_ingress(name: str, kind: str, resource: str, host: str = "example.com",
                          path: str = "/", namespace: str = "ns") -> IngressSpec:
    """Build a single-path ingress backed by a typed resource reference."""
    backend = IngressBackend(resource=ResourceBackend(kind=kind, name=resource))
    return IngressSpec(
        namespace=namespace,
        name=name,
        class_name=INGRESS_CLASS,
        rules=[IngressRule(host=host, paths=[IngressPath(path=path, path_type=PathType.PREFIX, backend=backend)])],
    )


@pytest.fixture
def fake_cluster():
    """Create an empty in-memory cluster."""
    return FakeCluster()


@pytest.fixture
def mock_backend():
    """Create a recording backend transport."""
    return MockBackend()


@pytest.fixture
def proxy_factory(mock_backend):
    """Route proxy factory that sends through the mock backend."""
    def _factory(target: httpx.URL, config: ProxyTransportConfig) -> RouteProxy:
        return RouteProxy(target, config, transport=mock_backend.transport)
    return _factory


@pytest.fixture
def resolver(fake_cluster):
    """Backend resolver over the in-memory cluster."""
    return BackendResolver(fake_cluster)


@pytest.fixture
def route_builder(resolver, proxy_factory):
    """Route builder producing mock-backed proxies."""
    return RouteBuilder(resolver, proxy_factory=proxy_factory)


@pytest.fixture
def routing_table():
    """Create an empty routing table."""
    return RoutingTable()


@pytest.fixture
def sample_ingress():
    """Ingress routing example.com/api/v1 to svc:8080 in namespace ns."""
    return make_ingress("api", host="example.com", path="/api/v1")
