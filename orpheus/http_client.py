"""
Shared async HTTP client.

One ``httpx.AsyncClient`` is built at start-up and handed to every provider and
to the Discord webhook client. Each external call is a single best-effort
attempt; only liveness probes and the interaction acknowledgment carry their
own deadlines, everything else uses the transport defaults below.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from . import __version__
from .utils.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = f"Orpheus/{__version__}"


def create_http_client(
    config: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build the shared client. ``transport`` lets tests plug in ``httpx.MockTransport``."""
    config = config or {}
    max_connections = int(config.get("HTTP_MAX_CONNECTIONS", 32))

    limits = httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections,
        keepalive_expiry=30.0,
    )
    timeout = httpx.Timeout(connect=5.0, read=20.0, write=20.0, pool=5.0)

    client = httpx.AsyncClient(
        limits=limits,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        max_redirects=5,
        transport=transport,
    )
    logger.debug("🌐 Shared httpx.AsyncClient created", extra={"subsys": "http"})
    return client


async def fetch_bytes(http: httpx.AsyncClient, url: str) -> bytes:
    """GET a binary resource; non-2xx raises ``httpx.HTTPStatusError``."""
    response = await http.get(url)
    response.raise_for_status()
    return response.content
