"""
Route models for the routing table.

A Route is the resolved, immutable result of one ingress path entry.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from panacea.models.ingress import PathType
from panacea.utils.helpers import match_path

if TYPE_CHECKING:
    from panacea.gateway.proxy.http_client import RouteProxy


class ProxyTransportConfig(BaseModel):
    """Outbound transport settings applied to every route proxy."""
    model_config = ConfigDict(frozen=True)

    max_connections: int = Field(default=100, description="Connections per backend")
    max_idle_connections: int = Field(default=100, description="Idle keep-alive connections kept in the pool")
    idle_timeout: float = Field(default=90.0, description="Seconds an idle connection is kept")
    handshake_timeout: float = Field(default=10.0, description="Connect and TLS handshake timeout in seconds")
    read_timeout: float = Field(default=30.0, description="Read timeout in seconds")
    write_timeout: float = Field(default=30.0, description="Write timeout in seconds")
    pool_timeout: float = Field(default=10.0, description="Seconds to wait for a pooled connection")
    verify_backend_tls: bool = Field(default=False, description="Verify backend certificates")
    http2: bool = Field(default=True, description="Allow HTTP/2 towards backends")
    drain_seconds: float = Field(default=30.0, description="Delay before closing proxies of a replaced table")

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.handshake_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.pool_timeout,
        )

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_idle_connections,
            keepalive_expiry=self.idle_timeout,
        )


@dataclass(frozen=True)
class BackendAddress:
    """Resolved network address of a backend."""
    host: str
    port: int
    scheme: str = "http"

    def url(self) -> httpx.URL:
        return httpx.URL(scheme=self.scheme, host=self.host, port=self.port, path="/")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Route:
    """A routable path of a host with its outbound proxy."""
    path: str
    path_type: PathType
    backend: httpx.URL
    proxy: Optional["RouteProxy"] = field(default=None, compare=False, repr=False)
    source: str = field(default="", compare=False)

    def matches(self, request_path: str) -> bool:
        return match_path(self.path_type, self.path, request_path)
