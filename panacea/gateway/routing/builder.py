"""
Route builder for the ingress controller.

This module turns a list of ingresses into a complete host to routes
mapping. Invalid entries are skipped; the result always replaces the
current table as a whole.
"""

from typing import Callable, Dict, Iterable, List, Optional

import httpx

from panacea.config import get_logger
from panacea.exceptions import BackendResolutionError
from panacea.gateway.proxy.backend_resolver import BackendResolver
from panacea.gateway.proxy.http_client import RouteProxy
from panacea.models.ingress import EmptyClassPolicy, IngressPath, IngressSpec
from panacea.models.route import ProxyTransportConfig, Route

logger = get_logger(__name__)

ProxyFactory = Callable[[httpx.URL, ProxyTransportConfig], RouteProxy]


class RouteBuilder:
    """Builds routing table contents from ingresses."""

    def __init__(
        self,
        resolver: BackendResolver,
        proxy_config: Optional[ProxyTransportConfig] = None,
        empty_class_policy: EmptyClassPolicy = EmptyClassPolicy.NONE,
        proxy_factory: Optional[ProxyFactory] = None
    ):
        """
        Initialize the route builder.

        Args:
            resolver: Backend resolver
            proxy_config: Transport settings for every route proxy
            empty_class_policy: Ingresses selected by an empty class filter
            proxy_factory: Creates the proxy of a route; RouteProxy by default
        """
        self.resolver = resolver
        self.proxy_config = proxy_config or ProxyTransportConfig()
        self.empty_class_policy = empty_class_policy
        self.proxy_factory = proxy_factory or RouteProxy

    def select(self, ingresses: Iterable[IngressSpec], class_filter: str) -> List[IngressSpec]:
        """
        Keep ingresses of the requested class that declare rules.

        An empty filter selects nothing or everything according to the
        empty class policy.
        """
        if not class_filter and self.empty_class_policy == EmptyClassPolicy.NONE:
            return []

        selected = []
        for ingress in ingresses:
            if class_filter and ingress.class_name != class_filter:
                continue
            if not ingress.rules:
                continue
            selected.append(ingress)
        return selected

    def build(self, ingresses: Iterable[IngressSpec], class_filter: str) -> Dict[str, List[Route]]:
        """
        Build the host to routes mapping.

        Args:
            ingresses: All ingresses in scope
            class_filter: Ingress class to serve

        Returns:
            Routes per host, longest path first
        """
        cluster_domain = self.resolver.discover_cluster_domain()
        routes: Dict[str, List[Route]] = {}

        for ingress in self.select(ingresses, class_filter):
            logger.debug("Processing ingress", extra={"ingress": ingress.key})

            for rule in ingress.rules:
                if not rule.host or not rule.paths:
                    continue

                host = rule.host.lower()
                for path in rule.paths:
                    route = self._build_route(ingress, path, cluster_domain)
                    if route is not None:
                        routes.setdefault(host, []).append(route)

        for host_routes in routes.values():
            host_routes.sort(key=lambda r: len(r.path), reverse=True)

        logger.info(
            f"Built {sum(len(r) for r in routes.values())} routes for {len(routes)} hosts",
            extra={
                "hosts": len(routes),
                "routes": sum(len(r) for r in routes.values()),
                "cluster_domain": cluster_domain,
            }
        )
        return routes

    def _build_route(self, ingress: IngressSpec, path: IngressPath, cluster_domain: str) -> Optional[Route]:
        if not path.backend.is_resolvable():
            logger.debug("Skipping path without backend", extra={"ingress": ingress.key, "path": path.path})
            return None

        try:
            address = self.resolver.resolve(ingress.namespace, path.backend, cluster_domain)
        except BackendResolutionError as e:
            logger.warning(
                f"Skipping path {path.path} of ingress {ingress.key}: {e}",
                extra={
                    "ingress": ingress.key,
                    "path": path.path,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            )
            return None

        backend = address.url()
        logger.debug(
            "Adding route",
            extra={"ingress": ingress.key, "path": path.path, "backend": str(address)}
        )
        return Route(
            path=path.path,
            path_type=path.path_type,
            backend=backend,
            proxy=self.proxy_factory(backend, self.proxy_config),
            source=ingress.key,
        )
