"""Shared outbound HTTP client for all backend traffic.

One ``httpx.AsyncClient`` is created at lifespan startup and stored on
``app.state.http_client``. It is NEVER instantiated per-request; it provides
connection reuse only and carries no per-request data.

``send_to_backend()`` is the single place where httpx transport exceptions are
translated into the gateway's ``TransportFailure``. No retries are attempted.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

import httpx

from moltguard.constants import (
    DEFAULT_BACKEND_TIMEOUT_S,
    POOL_KEEPALIVE_EXPIRY,
    POOL_MAX_CONNECTIONS,
    POOL_MAX_KEEPALIVE,
)
from moltguard.errors import TransportFailure
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)


def create_http_client(timeout_s: float = DEFAULT_BACKEND_TIMEOUT_S) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Args:
        timeout_s: Client-wide timeout applied to every backend call.

    Returns:
        Configured httpx.AsyncClient ready for use.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,  # pass 3xx through to the caller; do not resolve
    )


async def send_to_backend(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Union[Mapping[str, str], Sequence[tuple[str, str]], None] = None,
    content: Optional[bytes] = None,
    json: Any = None,
    stream: bool = False,
    timeout: Any = httpx.USE_CLIENT_DEFAULT,
) -> httpx.Response:
    """Build and send one request to the backend, mapping transport errors.

    Backend HTTP 4xx/5xx are NOT raised here — status handling is the
    caller's decision (relay as-is, or map to a gateway error).

    With ``stream=True`` the caller owns the response and must close it.
    ``timeout`` overrides the client-wide timeout for this one call.

    Raises:
        TransportFailure: connection refused, DNS failure, timeout, invalid
            HTTP from the backend, or a malformed backend URL.
    """
    try:
        request = client.build_request(
            method=method,
            url=url,
            headers=headers,
            content=content,
            json=json,
            timeout=timeout,
        )
        return await client.send(request, stream=stream)
    except httpx.TransportError as exc:
        logger.warning(
            "backend_unreachable",
            url=url,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise TransportFailure(type(exc).__name__) from exc
    except httpx.InvalidURL as exc:
        logger.error(
            "invalid_backend_url",
            url=url,
            error=str(exc),
        )
        raise TransportFailure("InvalidURL") from exc
