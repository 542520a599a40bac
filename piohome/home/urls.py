"""Canonical HTTP/WebSocket addresses for the companion server."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from .models import DEFAULT_HOST, Endpoint

_SECURE_SCHEMES = {"http": "https", "ws": "wss"}


def construct_server_url(
    endpoint: Endpoint,
    session_id: str,
    *,
    scheme: str = "http",
    host: str | None = None,
    port: int | None = None,
    path: str | None = None,
    query: Mapping[str, Any] | None = None,
    include_session_id: bool = True,
) -> str:
    """Build a URL addressing the server described by ``endpoint``.

    The port is only rendered for the loopback host: reverse-proxied
    deployments own their port mapping. Query keys with None values
    are dropped; the rest are emitted in sorted key order.
    """
    if endpoint.secure:
        scheme = _SECURE_SCHEMES.get(scheme, scheme)

    authority = host or endpoint.host
    if authority == DEFAULT_HOST:
        authority = f"{authority}:{port or endpoint.port}"

    prefix = f"/session/{session_id}" if include_session_id else ""
    url = f"{scheme}://{authority}{prefix}{path or '/'}"

    if query:
        params = sorted(
            ((key, value) for key, value in query.items() if value is not None),
            key=lambda item: item[0],
        )
        if params:
            url += "?" + urlencode(params)
    return url
