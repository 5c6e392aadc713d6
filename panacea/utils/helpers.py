"""
Utility helper functions for the ingress controller.

This module provides host, path and header helpers shared by the routing
table and the route proxies.
"""

import re
from typing import Iterable, List, Optional, Tuple

from panacea.models.ingress import PathType


DEFAULT_CLUSTER_DOMAIN = "cluster.local"

# Controls, brackets, backslash and whitespace runs
UNSAFE_HEADER_VALUE = re.compile(r"[\x00-\x1f\x7f<>\[\]()\\]|\s{2,}")

HOP_BY_HOP_HEADERS = frozenset({
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "proxy-connection", "te", "trailer", "trailers", "transfer-encoding", "upgrade",
})

_DNS_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def strip_port(host: str) -> str:
    """
    Remove a trailing ``:port`` from a host or authority.

    Args:
        host: Value of the Host header or request authority

    Returns:
        Host without port

    Examples:
        "example.com:443" -> "example.com"
        "[::1]:8080" -> "[::1]"
        "example.com" -> "example.com"
    """
    if host.startswith("["):
        end = host.find("]")
        if end != -1:
            return host[:end + 1]
        return host

    index = host.find(":")
    if index > 0:
        return host[:index]
    return host


def match_path(path_type: PathType, route_path: str, request_path: str) -> bool:
    """
    Check a request path against a route path.

    Exact requires equality. Prefix and ImplementationSpecific use a raw
    string prefix test without segment boundaries, so "/foo" matches
    "/foobar".
    """
    if path_type == PathType.EXACT:
        return request_path == route_path
    return request_path.startswith(route_path)


def is_unsafe_header_value(value: str) -> bool:
    """Whether a header value carries characters usable for injection."""
    return UNSAFE_HEADER_VALUE.search(value) is not None


def filter_request_headers(
    headers: Iterable[Tuple[str, str]],
    exclude: Iterable[str] = ()
) -> List[Tuple[str, str]]:
    """
    Copy request headers for an outbound request.

    Hop-by-hop headers and the names in ``exclude`` are removed. A header is
    dropped entirely, with all of its values, when any value is unsafe.

    Args:
        headers: Inbound (name, value) pairs, names in any case
        exclude: Additional lower-case header names to drop

    Returns:
        Outbound (name, value) pairs in original order
    """
    pairs = list(headers)
    skipped = set(HOP_BY_HOP_HEADERS) | {name.lower() for name in exclude}
    for name, value in pairs:
        if is_unsafe_header_value(value):
            skipped.add(name.lower())

    return [(name, value) for name, value in pairs if name.lower() not in skipped]


def filter_response_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Remove hop-by-hop headers from an upstream response."""
    return [(name, value) for name, value in headers if name.lower() not in HOP_BY_HOP_HEADERS]


def is_valid_domain(domain: Optional[str]) -> bool:
    """
    Check that a value is a usable DNS suffix.

    Examples:
        "cluster.local" -> True
        "-bad.local" -> False
    """
    if not domain or len(domain) > 253:
        return False
    return all(_DNS_LABEL.match(label) for label in domain.lower().rstrip(".").split("."))


def service_hostname(service: str, namespace: str, cluster_domain: str) -> str:
    """Build the in-cluster DNS name of a service."""
    return f"{service}.{namespace}.svc.{cluster_domain}"


def parse_listen_address(listen: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Examples:
        "0.0.0.0:80" -> ("0.0.0.0", 80)
        ":8080" -> ("0.0.0.0", 8080)
        "[::]:80" -> ("::", 80)
    """
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {listen!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)
