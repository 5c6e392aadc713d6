"""
Routing table for the ingress controller.

The table maps a host name to its routes, longest path first. The whole
table is an immutable snapshot; writers build a new snapshot and publish
it by replacing a single reference under a lock, so readers always see
one complete table.
"""

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from panacea.config import get_logger
from panacea.models.route import Route
from panacea.utils.helpers import strip_port

logger = get_logger(__name__)

RouteMap = Mapping[str, Tuple[Route, ...]]

_EMPTY: RouteMap = MappingProxyType({})


def _freeze(mapping: Mapping[str, Sequence[Route]]) -> RouteMap:
    return MappingProxyType({host.lower(): tuple(routes) for host, routes in mapping.items()})


class RoutingTable:
    """
    Concurrency-safe host to routes index.

    The lock only guards the snapshot reference. Matching runs on the
    snapshot outside the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._data: RouteMap = _EMPTY
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of snapshots published since creation."""
        return self._generation

    def snapshot(self) -> RouteMap:
        """Return the current read-only table."""
        with self._lock:
            return self._data

    def swap(self, mapping: Mapping[str, Sequence[Route]]) -> RouteMap:
        """
        Replace the whole table.

        Args:
            mapping: Host to ordered routes

        Returns:
            The table that was replaced
        """
        new_data = _freeze(mapping)
        with self._lock:
            previous = self._data
            self._data = new_data
            self._generation += 1
        return previous

    def match(self, host: str, path: str) -> Optional[Route]:
        """
        Find the route for a request.

        Args:
            host: Request host, with or without port
            path: Request path

        Returns:
            First route of the host whose path type matches, or None
        """
        routes = self.snapshot().get(strip_port(host).lower())
        if not routes:
            return None

        for route in routes:
            if route.matches(path):
                logger.debug(
                    "Matched route",
                    extra={
                        "host": host,
                        "path": path,
                        "route_path": route.path,
                        "path_type": route.path_type.value,
                        "backend": str(route.backend),
                    }
                )
                return route

        return None

    def get_routes(self, host: str) -> Optional[List[Route]]:
        """Return a copy of a host's routes, or None if the host is unknown."""
        routes = self.snapshot().get(host.lower())
        return list(routes) if routes is not None else None

    def set_routes(self, host: str, routes: Sequence[Route]) -> None:
        """Replace one host's routes, publishing a new snapshot."""
        with self._lock:
            data = dict(self._data)
            data[host.lower()] = tuple(routes)
            self._data = MappingProxyType(data)
            self._generation += 1

    def delete_routes(self, host: str) -> None:
        """Remove one host, publishing a new snapshot."""
        with self._lock:
            if host.lower() not in self._data:
                return
            data = dict(self._data)
            del data[host.lower()]
            self._data = MappingProxyType(data)
            self._generation += 1

    def list_all(self) -> Dict[str, List[Route]]:
        """Return a copy of the whole table."""
        return {host: list(routes) for host, routes in self.snapshot().items()}

    def clear(self) -> None:
        """Reset to an empty table."""
        with self._lock:
            self._data = _EMPTY
            self._generation += 1

    def __len__(self) -> int:
        return len(self.snapshot())

    def describe(self) -> str:
        """Render the table for logging."""
        lines = []
        for host, routes in sorted(self.snapshot().items()):
            lines.append(f"Host: {host}")
            for route in routes:
                lines.append(f"  Path: {route.path} ({route.path_type.value}) -> {route.backend}")
        return "\n".join(lines)
