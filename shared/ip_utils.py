"""
Client IP resolution for FastAPI requests.

Takes an explicit ``Request`` parameter so the function is testable without
a running server. The resolved address is half of the rate-limit key.
"""

from __future__ import annotations

from collections.abc import Collection

from fastapi import Request

FORWARDING_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request, trusted_proxies: Collection[str] = ()) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Forwarding headers are only read when the socket peer is one of
    ``trusted_proxies``; any other peer is the client itself. From a trusted
    peer the headers are checked in priority order:

    1. ``CF-Connecting-IP`` - Cloudflare
    2. ``True-Client-IP`` - Akamai and others
    3. ``X-Forwarded-For`` - standard proxy header (first IP in list)
    4. ``X-Real-IP`` - nginx / other reverse proxies

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    peer: str = request.client.host if request.client else ""
    if peer not in trusted_proxies:
        return peer

    for header in FORWARDING_HEADERS:
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip: str = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return peer
