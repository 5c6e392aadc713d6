"""
Gateway proxy package.

This package contains backend resolution and the per-route HTTP proxy.
"""

from .backend_resolver import BackendResolver, ClusterQuery
from .http_client import RouteProxy

__all__ = [
    "BackendResolver",
    "ClusterQuery",
    "RouteProxy",
]
