"""
Ingress models for the controller.

This module defines the ingress-shaped input consumed by the route builder
and the cluster resource variants returned by backend lookups.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


LEGACY_CLASS_ANNOTATION = "kubernetes.io/ingress.class"


class PathType(str, Enum):
    """Ingress path match types."""
    EXACT = "Exact"
    PREFIX = "Prefix"
    IMPLEMENTATION_SPECIFIC = "ImplementationSpecific"


class ServiceBackendPort(BaseModel):
    """Port of a service backend, by number or by name."""
    model_config = ConfigDict(frozen=True)

    number: Optional[int] = Field(default=None, description="Numeric service port")
    name: Optional[str] = Field(default=None, description="Named service port")

    def is_set(self) -> bool:
        return bool(self.number) or bool(self.name)


class ServiceBackend(BaseModel):
    """Backend pointing at a service in the ingress namespace."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Service name")
    port: ServiceBackendPort = Field(default_factory=ServiceBackendPort, description="Service port")


class ResourceBackend(BaseModel):
    """Backend pointing at an arbitrary typed object."""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="Object kind")
    name: str = Field(..., description="Object name")
    api_group: Optional[str] = Field(default=None, description="API group of the object")


class IngressBackend(BaseModel):
    """Either a service or a resource backend; both may be absent."""
    model_config = ConfigDict(frozen=True)

    service: Optional[ServiceBackend] = None
    resource: Optional[ResourceBackend] = None

    def is_resolvable(self) -> bool:
        """Whether the backend has a shape the resolver can work with."""
        if self.resource is not None:
            return bool(self.resource.kind and self.resource.name)
        if self.service is not None:
            return bool(self.service.name) and self.service.port.is_set()
        return False


class IngressPath(BaseModel):
    """A single path entry of an ingress rule."""
    model_config = ConfigDict(frozen=True)

    path: str = Field(default="", description="Request path or prefix")
    path_type: PathType = Field(default=PathType.IMPLEMENTATION_SPECIFIC, description="Path match type")
    backend: IngressBackend = Field(default_factory=IngressBackend, description="Target backend")


class IngressRule(BaseModel):
    """Host rule; paths is None when the rule has no http block."""
    model_config = ConfigDict(frozen=True)

    host: str = ""
    paths: Optional[List[IngressPath]] = None


class IngressSpec(BaseModel):
    """An Ingress object as seen by the route builder."""
    model_config = ConfigDict(frozen=True)

    namespace: str = Field(..., description="Ingress namespace")
    name: str = Field(..., description="Ingress name")
    class_name: Optional[str] = Field(default=None, description="Ingress class of the object")
    rules: List[IngressRule] = Field(default_factory=list, description="Host rules")

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_kubernetes(cls, ingress: Any) -> "IngressSpec":
        """
        Convert a ``kubernetes.client.V1Ingress`` into an IngressSpec.

        The class is taken from ``spec.ingressClassName`` and falls back to
        the legacy ``kubernetes.io/ingress.class`` annotation.

        Args:
            ingress: V1Ingress object returned by the Kubernetes client

        Returns:
            Equivalent IngressSpec
        """
        metadata = ingress.metadata
        spec = ingress.spec

        class_name = getattr(spec, "ingress_class_name", None) if spec else None
        if not class_name:
            annotations = metadata.annotations or {}
            class_name = annotations.get(LEGACY_CLASS_ANNOTATION)

        rules = []
        for rule in (spec.rules if spec and spec.rules else []):
            paths = None
            if rule.http is not None:
                paths = [_path_from_kubernetes(p) for p in (rule.http.paths or [])]
            rules.append(IngressRule(host=rule.host or "", paths=paths))

        return cls(
            namespace=metadata.namespace or "",
            name=metadata.name or "",
            class_name=class_name,
            rules=rules,
        )


def _path_from_kubernetes(path: Any) -> IngressPath:
    backend = path.backend
    service = None
    resource = None

    if backend is not None and backend.service is not None:
        port = backend.service.port
        service = ServiceBackend(
            name=backend.service.name or "",
            port=ServiceBackendPort(
                number=port.number if port else None,
                name=port.name if port else None,
            ),
        )
    if backend is not None and backend.resource is not None:
        resource = ResourceBackend(
            kind=backend.resource.kind or "",
            name=backend.resource.name or "",
            api_group=backend.resource.api_group,
        )

    return IngressPath(
        path=path.path or "",
        path_type=PathType(path.path_type) if path.path_type else PathType.IMPLEMENTATION_SPECIFIC,
        backend=IngressBackend(service=service, resource=resource),
    )


class ServicePort(BaseModel):
    """A port declared by a service."""
    model_config = ConfigDict(frozen=True)

    port: int
    name: Optional[str] = None
    protocol: str = "TCP"


class ServiceResource(BaseModel):
    """A service; the only resource kind usable as a backend."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["Service"] = "Service"
    name: str
    ports: List[ServicePort] = Field(default_factory=list)


class WorkloadResource(BaseModel):
    """Any other object the cluster client can fetch. Not addressable."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[
        "Pod", "Deployment", "StatefulSet", "DaemonSet", "Job",
        "CronJob", "ConfigMap", "Secret", "Ingress",
    ]
    name: str


ClusterResource = Annotated[Union[ServiceResource, WorkloadResource], Field(discriminator="kind")]


# Lower-cased singular and plural names to canonical kind
RESOURCE_KINDS: Dict[str, str] = {}
for _kind in ("Service", "Pod", "Deployment", "StatefulSet", "DaemonSet",
              "Job", "CronJob", "ConfigMap", "Secret", "Ingress"):
    RESOURCE_KINDS[_kind.lower()] = _kind
    RESOURCE_KINDS[_kind.lower() + ("es" if _kind.endswith("s") else "s")] = _kind


def canonical_kind(kind: str) -> Optional[str]:
    """Return the canonical kind name, or None when the kind is unknown."""
    return RESOURCE_KINDS.get(kind.lower())


class EmptyClassPolicy(str, Enum):
    """What an empty ingress class filter selects."""
    NONE = "none"
    ALL = "all"
