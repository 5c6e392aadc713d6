"""
Catch-all request dispatcher.

Every inbound request with a standard method, whatever its path, is
matched against the current routing table by host and path and handed to
the matching route's proxy.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import PlainTextResponse

from panacea.config import get_logger
from panacea.gateway.routing.table import RoutingTable
from panacea.utils.helpers import strip_port

logger = get_logger(__name__)

NO_ROUTE_BODY = "panacea-controller: no route found\n"

# Standard methods plus PATCH; extension methods are answered with 405
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "CONNECT", "OPTIONS", "TRACE", "PATCH"]

# Router for proxy functionality (no prefix, catch-all)
proxy_router = APIRouter(tags=["proxy"])


def get_routing_table(request: Request) -> RoutingTable:
    """Dependency to get the routing table from app state."""
    return request.app.state.routing_table


@proxy_router.api_route(
    "/{request_path:path}",
    methods=PROXY_METHODS,
    summary="Ingress proxy endpoint",
    description="Forwards requests to backends selected by host and path"
)
async def dispatch(request: Request, request_path: str, table: RoutingTable = Depends(get_routing_table)) -> Response:
    """
    Route a request to its backend.

    The Host header is stripped of its port before matching, and the request
    path is matched as received, without normalization.
    """
    host = strip_port(request.headers.get("host", ""))
    route = table.match(host, request.url.path)

    if route is None or route.proxy is None:
        logger.debug("No route found", extra={"host": host, "path": request.url.path})
        return PlainTextResponse(NO_ROUTE_BODY, status_code=status.HTTP_404_NOT_FOUND)

    return await route.proxy.forward(request, host)
