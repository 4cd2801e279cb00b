"""HTTP header processing for backend-bound requests and client-facing responses.

Headers are handled as ordered ``(name, value)`` pairs, never as a dict, so a
header sent more than once (``Set-Cookie``, repeated ``X-Trace`` ...) keeps
every value.

  - build_backend_headers(): every inbound request header except the ones
    httpx must derive itself (``host`` from the backend URL, ``content-length``
    from the body actually sent). Routes that rewrite the reply also drop
    ``accept-encoding`` so the backend only uses encodings httpx can decode.

  - build_client_response_headers(): every backend response header except
    ``transfer-encoding``; the ASGI server frames the reply itself. When the
    gateway rewrites the body (redaction), the body-framing headers no longer
    describe it and are dropped as well so they can be recomputed.

  - attach_headers(): appends pairs to a Starlette response as raw headers;
    Starlette's ``headers=`` argument is a mapping and would fold repeats.
"""

from __future__ import annotations

from typing import Iterable, TypeVar

import httpx
from starlette.responses import Response

HeaderPairs = list[tuple[str, str]]
ResponseT = TypeVar("ResponseT", bound=Response)

# ─── Constants ────────────────────────────────────────────────────────────────

# Dropped from inbound requests before forwarding.
REQUEST_STRIPPED_HEADERS: frozenset[str] = frozenset({"host", "content-length"})

# Additionally dropped when the reply will be decoded and rewritten.
REWRITE_REQUEST_STRIPPED_HEADERS: frozenset[str] = REQUEST_STRIPPED_HEADERS | {
    "accept-encoding"
}

# Dropped from every backend response before relaying.
RESPONSE_STRIPPED_HEADERS: frozenset[str] = frozenset({"transfer-encoding"})

# Describe the backend's bytes; stale once the body is decoded and rewritten.
BODY_FRAMING_HEADERS: frozenset[str] = frozenset({"content-length", "content-encoding"})

# ─── Public API ───────────────────────────────────────────────────────────────


def _without(pairs: Iterable[tuple[str, str]], stripped: frozenset[str]) -> HeaderPairs:
    return [(name, value) for name, value in pairs if name.lower() not in stripped]


def build_backend_headers(
    request_headers: Iterable[tuple[str, str]],
    rewritten_body: bool = False,
) -> HeaderPairs:
    """Build the header pairs to send to the backend.

    Args:
        request_headers: (name, value) pairs from the incoming request, repeats
                         included (``request.headers.items()`` in FastAPI).
        rewritten_body:  True when the backend's reply will be decoded and
                         rewritten by the gateway.

    Returns:
        Every inbound pair except ``host`` and ``content-length`` (and
        ``accept-encoding`` for a rewritten reply), order and values unchanged.
    """
    stripped = REWRITE_REQUEST_STRIPPED_HEADERS if rewritten_body else REQUEST_STRIPPED_HEADERS
    return _without(request_headers, stripped)


def build_client_response_headers(
    backend_headers: httpx.Headers,
    rewritten_body: bool = False,
) -> HeaderPairs:
    """Build the header pairs to return to the client from a backend response.

    Args:
        backend_headers: ``httpx.Response.headers`` from the backend.
        rewritten_body:  True when the relayed body differs from the bytes the
                         backend sent (decoded and redacted).

    Returns:
        Backend pairs minus ``transfer-encoding`` (and minus the body-framing
        headers for a rewritten body). Repeated headers stay separate.
    """
    stripped = RESPONSE_STRIPPED_HEADERS
    if rewritten_body:
        stripped = stripped | BODY_FRAMING_HEADERS
    return _without(backend_headers.multi_items(), stripped)


def attach_headers(response: ResponseT, pairs: Iterable[tuple[str, str]]) -> ResponseT:
    """Append ``pairs`` to ``response`` without folding repeated names."""
    response.raw_headers.extend(
        (name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in pairs
    )
    return response
