"""
Exception hierarchy for the ingress controller.

Backend resolution errors are entry-level: the route builder skips the
offending path and continues. Cluster query errors are raised by the
cluster client and translated by the resolver. Cache sync and reconcile
errors are fatal only during startup.
"""

from typing import Optional


class PanaceaError(Exception):
    """Base class for all controller errors."""


class BackendResolutionError(PanaceaError):
    """A backend reference could not be turned into a network address."""

    def __init__(self, namespace: str, reference: str, message: str):
        self.namespace = namespace
        self.reference = reference
        super().__init__(f"{namespace}/{reference}: {message}")


class PortNotFound(BackendResolutionError):
    """The referenced service declares no matching port."""


class ResourceUnavailable(BackendResolutionError):
    """The cluster query for the backend failed or found nothing."""


class UnsupportedBackendType(BackendResolutionError):
    """The referenced resource cannot act as a backend."""


class ClusterQueryError(PanaceaError):
    """A request to the Kubernetes API failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class ResourceNotFound(ClusterQueryError):
    """The requested object does not exist."""


class UnsupportedResourceKind(ClusterQueryError):
    """The cluster client does not know how to fetch this kind."""


class CacheSyncError(PanaceaError):
    """The ingress watcher did not finish its initial list in time."""


class ReconcileError(PanaceaError):
    """A reconciliation pass could not produce a routing table."""
