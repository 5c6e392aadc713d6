"""
Gateway routing package.

This package contains the routing table and the route builder that
fills it from ingresses.
"""

from .builder import RouteBuilder
from .table import RoutingTable

__all__ = [
    "RouteBuilder",
    "RoutingTable",
]
