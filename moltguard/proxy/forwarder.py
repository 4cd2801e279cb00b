"""Reverse-proxy forwarding to the inference backend.

Target URL = configured base URL + original path + original query string.
The backend's status is propagated unchanged; 4xx/5xx are relayed, never
converted. Network failures surface as ``TransportFailure`` (raised by
``send_to_backend``). No retries.

Three shapes:

  forward()      — buffered: returns status, headers and the full body. Used
                   by the schema-aware routes, whose bodies are rewritten.
  post_json()    — a JSON body built by the gateway itself (the OpenAI
                   surface translated to the backend chat call).
  open_stream()  — streaming: returns the open backend response for the raw
                   fallback relay. The caller must close it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

from moltguard.backend.client import send_to_backend
from moltguard.proxy.headers import build_backend_headers


@dataclass(frozen=True)
class ProxyEnvelope:
    """An inbound request as it will be forwarded."""

    method: str
    path_and_query: str
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""

    @classmethod
    def from_parts(
        cls,
        method: str,
        path: str,
        query: str,
        headers: Iterable[tuple[str, str]],
        body: bytes,
    ) -> "ProxyEnvelope":
        path_and_query = f"{path}?{query}" if query else path
        return cls(
            method=method,
            path_and_query=path_and_query,
            headers=tuple(headers),
            body=body,
        )


@dataclass(frozen=True)
class ForwardResult:
    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""


class ReverseProxyForwarder:
    """Sends envelopes to one backend over the shared client."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    def target_url(self, path_and_query: str) -> str:
        if not path_and_query.startswith("/"):
            path_and_query = "/" + path_and_query
        return f"{self.base_url}{path_and_query}"

    async def forward(self, envelope: ProxyEnvelope) -> ForwardResult:
        """Send ``envelope`` and read the whole backend reply.

        The reply is decoded for rewriting, so the caller's ``accept-encoding``
        is not forwarded and httpx negotiates an encoding it can decode.
        """
        response = await send_to_backend(
            self.http_client,
            envelope.method,
            self.target_url(envelope.path_and_query),
            headers=build_backend_headers(envelope.headers, rewritten_body=True),
            content=envelope.body,
        )
        return ForwardResult(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    async def open_stream(self, envelope: ProxyEnvelope) -> httpx.Response:
        """Send ``envelope`` and return the unread backend response."""
        return await send_to_backend(
            self.http_client,
            envelope.method,
            self.target_url(envelope.path_and_query),
            headers=build_backend_headers(envelope.headers),
            content=envelope.body,
            stream=True,
        )

    async def post_json(self, path: str, payload: Any) -> httpx.Response:
        """POST a gateway-built JSON payload to a backend path."""
        return await send_to_backend(
            self.http_client,
            "POST",
            self.target_url(path),
            json=payload,
        )
