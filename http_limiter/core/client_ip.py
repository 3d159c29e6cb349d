"""Client identity resolution for rate limit keys.

Forwarded headers are client-controllable. This resolution is suitable
behind a trusted reverse proxy only; deployments that need spoof resistance
should pass their own ``key`` function to the middleware.
"""

from __future__ import annotations

import ipaddress
from ipaddress import IPv4Address, IPv6Address

from starlette.requests import Request

UNKNOWN_CLIENT_KEY = "unknown"


def _parse_ip(value: str) -> IPv4Address | IPv6Address | None:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def split_host_port(addr: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port`` into its parts.

    Args:
        addr: Network address with a port suffix.

    Returns:
        Tuple of (host, port).

    Raises:
        ValueError: If the address carries no port or is malformed.
    """

    if addr.startswith("["):
        end = addr.find("]")
        if end == -1 or addr[end + 1 : end + 2] != ":":
            raise ValueError(f"missing port in address {addr!r}")
        return addr[1:end], addr[end + 2 :]

    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {addr!r}")
    if ":" in host:
        raise ValueError(f"too many colons in address {addr!r}")
    return host, port


def get_ip(request: Request) -> IPv4Address | IPv6Address | None:
    """Return the client IP address for ``request``.

    Looks at X-Forwarded-For (first hop), then X-Real-IP, then the remote
    address of the connection.

    Args:
        request: Incoming request.

    Returns:
        Parsed address, or None when nothing parseable is available.
    """

    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        first_hop = forwarded_for.split(",", 1)[0].strip()
        return _parse_ip(first_hop)

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return _parse_ip(real_ip)

    remote_addr = (request.client.host if request.client else "").strip()
    try:
        host, _ = split_host_port(remote_addr)
    except ValueError:
        return _parse_ip(remote_addr)
    return _parse_ip(host)


def default_key(request: Request) -> str:
    """Default key function: the client IP, or one shared fallback key."""

    ip = get_ip(request)
    if ip is None:
        return UNKNOWN_CLIENT_KEY
    return str(ip)
