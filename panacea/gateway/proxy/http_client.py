"""
Per-route HTTP proxy for upstream backends.

Each route owns a RouteProxy with its own connection pool. The proxy
copies safe request headers, adds forwarding metadata, and streams the
backend response back to the client.
"""

import time
from typing import List, Optional, Tuple

import httpx
from fastapi import HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from panacea.config import get_logger
from panacea.models.route import ProxyTransportConfig
from panacea.utils.helpers import filter_request_headers, filter_response_headers

logger = get_logger(__name__)

PROXY_MARKER_HEADER = "X-Proxy-By"
PROXY_MARKER = "panacea-controller"

FORWARDED_HEADERS = ("x-forwarded-host", "x-forwarded-proto", "x-forwarded-for")


class RouteProxy:
    """HTTP forwarder bound to a single backend."""

    def __init__(
        self,
        target: httpx.URL,
        config: Optional[ProxyTransportConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the route proxy.

        Args:
            target: Backend base URL (scheme, host and port)
            config: Transport settings
            transport: Optional transport override, used by tests
        """
        self.target = target
        self.config = config or ProxyTransportConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def authority(self) -> str:
        return f"{self.target.host}:{self.target.port}"

    @property
    def client(self) -> httpx.AsyncClient:
        """The pooled client, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=self.config.verify_backend_tls,
                http1=True,
                http2=self.config.http2,
                limits=self.config.limits(),
                timeout=self.config.timeout(),
                transport=self._transport,
                trust_env=False,
                follow_redirects=False,
            )
            # Outbound headers are exactly the filtered inbound ones
            self._client.headers.clear()
        return self._client

    def build_url(self, request: Request) -> httpx.URL:
        """Backend URL carrying the request's raw path and query."""
        raw_path = request.scope.get("raw_path") or request.url.path.encode("ascii")
        query = request.scope.get("query_string") or b""
        if query:
            raw_path = raw_path + b"?" + query
        return self.target.copy_with(raw_path=raw_path)

    def prepare_headers(self, request: Request, original_host: str) -> List[Tuple[str, str]]:
        """
        Prepare headers for the backend request.

        Args:
            request: Inbound request
            original_host: Inbound host without port

        Returns:
            Outbound header pairs
        """
        inbound = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in request.headers.raw
        ]
        headers = filter_request_headers(
            inbound,
            exclude=("host", "content-length", PROXY_MARKER_HEADER.lower()) + FORWARDED_HEADERS
        )

        dropped = {name.lower() for name, _ in inbound} - {name.lower() for name, _ in headers}
        if dropped:
            logger.debug("Dropped request headers", extra={"headers": sorted(dropped), "backend": self.authority})

        headers.extend([
            ("X-Forwarded-Host", original_host),
            ("X-Forwarded-Proto", self.target.scheme),
            ("X-Forwarded-For", self.authority),
            (PROXY_MARKER_HEADER, PROXY_MARKER),
        ])
        return headers

    async def forward(self, request: Request, original_host: str) -> Response:
        """
        Forward the request to the backend.

        Args:
            request: Inbound request
            original_host: Inbound host without port

        Returns:
            Streaming response from the backend

        Raises:
            HTTPException: 504 on backend timeout, 502 on other connection errors
        """
        url = self.build_url(request)
        headers = self.prepare_headers(request, original_host)
        body = await request.body()

        upstream_request = self.client.build_request(
            method=request.method,
            url=url,
            headers=headers,
            content=body
        )

        start_time = time.time()
        try:
            upstream_response = await self.client.send(upstream_request, stream=True)
        except httpx.TimeoutException as e:
            logger.error(
                f"Timeout calling backend {self.authority}: {e}",
                extra={"backend": self.authority, "url": str(url), "error": str(e)}
            )
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail="Request to backend timed out"
            )
        except httpx.RequestError as e:
            logger.error(
                f"Connection error to backend {self.authority}: {e}",
                extra={"backend": self.authority, "url": str(url), "error": str(e)}
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to connect to backend: {e}"
            )

        logger.debug(
            "Backend responded",
            extra={
                "backend": self.authority,
                "method": request.method,
                "url": str(url),
                "status_code": upstream_response.status_code,
                "response_time_ms": (time.time() - start_time) * 1000,
            }
        )

        return self._prepare_response(upstream_response)

    def _prepare_response(self, upstream_response: httpx.Response) -> Response:
        response = StreamingResponse(
            upstream_response.aiter_raw(),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose)
        )
        for name, value in filter_response_headers(upstream_response.headers.multi_items()):
            response.headers.append(name, value)
        response.headers[PROXY_MARKER_HEADER] = PROXY_MARKER
        return response

    async def aclose(self):
        """Close the connection pool, if one was created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
