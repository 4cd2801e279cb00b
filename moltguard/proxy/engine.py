"""HTTP proxy routes for Molt-Guard.

Schema-aware endpoints (policy checked on the way in, redacted on the way out):
  - POST /v1/chat/completions  (OpenAI-compatible, answered via backend /api/chat)
  - POST /api/chat             (backend-native pass-through)
  - POST /api/generate         (backend-native pass-through)

Plus:
  - GET  /v1/models            (backend tags in OpenAI list shape)
  - *    /{path:path}          (opaque fallback relay: no policy, no redaction)

Every request gets a ULID at entry. It is bound into the logging context and
returned as ``X-MoltGuard-Request-ID`` on gateway-built responses.

Failure mode separation:
  - Policy BLOCK → HTTP 200 in-band security alert with X-MoltGuard-Block: true;
    the backend is NEVER contacted.
  - Backend unreachable → TransportFailure (500); never carries X-MoltGuard-Block.
  - Backend non-2xx on /v1/chat/completions → BackendError (502).
  - Backend non-2xx on the pass-through endpoints → relayed as-is.

``fallback_router`` holds the catch-all and must be included after ``router``.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError
from starlette.background import BackgroundTask

from moltguard.backend.models import BackendModels
from moltguard.constants import MODEL_OWNER, REQUEST_ID_HEADER
from moltguard.errors import BackendError, DecodeFailure
from moltguard.models.api import (
    BackendChatRequest,
    BackendChatResponse,
    BackendGenerateRequest,
    ChatCompletionRequest,
    ListModelsResponse,
    ModelObject,
)
from moltguard.models.block import (
    build_backend_chat_block_response,
    build_backend_generate_block_response,
    build_openai_block_response,
)
from moltguard.models.policy import PolicyDecision
from moltguard.proxy.assembler import assemble_from_backend, completion_to_sse
from moltguard.proxy.forwarder import ForwardResult, ProxyEnvelope, ReverseProxyForwarder
from moltguard.proxy.headers import attach_headers, build_client_response_headers
from moltguard.proxy.interceptor import RequestInterceptor
from moltguard.scanner.redaction import RedactionPipeline
from moltguard.utils.logger import get_logger, set_request_id
from moltguard.utils.ulid import generate_ulid

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# ─── Routers ──────────────────────────────────────────────────────────────────

router = APIRouter(tags=["proxy"])
fallback_router = APIRouter(tags=["proxy"])

FALLBACK_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]

# OpenAI sampling fields and their backend ``options`` names
OPENAI_OPTION_FIELDS: dict[str, str] = {
    "temperature": "temperature",
    "top_p": "top_p",
    "max_tokens": "num_predict",
    "stop": "stop",
    "seed": "seed",
}

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _begin_request() -> str:
    request_id = generate_ulid()
    set_request_id(request_id)
    return request_id


def _decode_request(model: type[ModelT], body: bytes) -> ModelT:
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeFailure(_first_error(exc)) from exc


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def _interceptor(request: Request) -> RequestInterceptor:
    return request.app.state.interceptor


def _forwarder(request: Request) -> ReverseProxyForwarder:
    return request.app.state.forwarder


def _redaction(request: Request) -> RedactionPipeline:
    return request.app.state.redaction


def _log_blocked(path: str, decision: PolicyDecision) -> None:
    logger.info("request_blocked", path=path, reason=decision.reason)


def backend_chat_payload(payload: ChatCompletionRequest) -> dict[str, Any]:
    """Translate an OpenAI chat request into a non-streaming backend chat call."""
    body: dict[str, Any] = {
        "model": payload.model,
        "messages": [
            {"role": message.role, "content": message.text}
            for message in payload.messages
        ],
        "stream": False,
    }
    options = {
        backend_name: getattr(payload, openai_name)
        for openai_name, backend_name in OPENAI_OPTION_FIELDS.items()
        if getattr(payload, openai_name) is not None
    }
    if options:
        body["options"] = options
    return body


def redact_backend_body(pipeline: RedactionPipeline, body: bytes) -> bytes:
    """Redact a backend response body line by line.

    Backend bodies are one JSON document or newline-delimited JSON. Each JSON
    line has its string values redacted and is re-encoded; any other line is
    redacted as plain text.
    """
    text = body.decode("utf-8", errors="replace")
    lines = text.split("\n")
    redacted: list[str] = []
    for line in lines:
        if not line.strip():
            redacted.append(line)
            continue
        try:
            document = json.loads(line)
        except ValueError:
            redacted.append(pipeline.redact(line))
            continue
        redacted.append(
            json.dumps(pipeline.redact_value(document), ensure_ascii=False)
        )
    return "\n".join(redacted).encode("utf-8")


async def _relay_redacted(
    request: Request,
    forwarded_body: bytes,
) -> Response:
    """Forward a re-serialized backend-native request and relay the redacted reply."""
    envelope = ProxyEnvelope.from_parts(
        request.method,
        request.url.path,
        request.url.query,
        request.headers.items(),
        forwarded_body,
    )
    result: ForwardResult = await _forwarder(request).forward(envelope)

    logger.info(
        "request_proxied",
        method=request.method,
        path=request.url.path,
        status_code=result.status_code,
    )
    return attach_headers(
        Response(
            content=redact_backend_body(_redaction(request), result.body),
            status_code=result.status_code,
        ),
        build_client_response_headers(result.headers, rewritten_body=True),
    )


# ─── OpenAI-compatible surface ────────────────────────────────────────────────


@router.post("/v1/chat/completions")
async def chat_completions(request: Request) -> Response:
    """OpenAI chat completion answered by the backend's ``/api/chat``.

    The backend call is always non-streaming. A caller that asked for
    ``stream: true`` receives the complete redacted answer as an SSE sequence.
    """
    request_id = _begin_request()
    payload = _decode_request(ChatCompletionRequest, await request.body())

    decision = await _interceptor(request).check_messages(payload.messages)
    if decision.blocked:
        _log_blocked(request.url.path, decision)
        return build_openai_block_response(
            decision,
            model=payload.model,
            request_id=request_id,
            stream=bool(payload.stream),
        )

    response: httpx.Response = await _forwarder(request).post_json(
        "/api/chat", backend_chat_payload(payload)
    )
    if not response.is_success:
        logger.warning(
            "backend_error",
            path=request.url.path,
            status_code=response.status_code,
        )
        raise BackendError(response.status_code)

    try:
        reply = BackendChatResponse.model_validate_json(response.content)
    except ValidationError as exc:
        raise DecodeFailure(_first_error(exc), side="backend") from exc

    completion = assemble_from_backend(
        reply,
        model=payload.model,
        redacted_content=_redaction(request).redact(reply.message.text),
        request_id=request_id,
    )
    logger.info(
        "request_proxied",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        stream=bool(payload.stream),
    )

    headers = {REQUEST_ID_HEADER: request_id}
    if payload.stream:
        return StreamingResponse(
            iter(completion_to_sse(completion)),
            headers=headers,
            media_type="text/event-stream",
        )
    return JSONResponse(content=completion.model_dump(mode="json"), headers=headers)


@router.get("/v1/models")
async def list_models(request: Request) -> JSONResponse:
    _begin_request()
    backend_models: BackendModels = request.app.state.backend_models
    names = await backend_models.list_models()
    listing = ListModelsResponse(
        data=[ModelObject(id=name, owned_by=MODEL_OWNER) for name in names]
    )
    return JSONResponse(content=listing.model_dump(mode="json"))


# ─── Backend-native surface ───────────────────────────────────────────────────


@router.post("/api/chat")
async def backend_chat(request: Request) -> Response:
    request_id = _begin_request()
    payload = _decode_request(BackendChatRequest, await request.body())

    decision = await _interceptor(request).check_messages(payload.messages)
    if decision.blocked:
        _log_blocked(request.url.path, decision)
        return build_backend_chat_block_response(
            decision, model=payload.model, request_id=request_id
        )

    forwarded = payload.model_dump_json(exclude_unset=True).encode("utf-8")
    return await _relay_redacted(request, forwarded)


@router.post("/api/generate")
async def backend_generate(request: Request) -> Response:
    request_id = _begin_request()
    payload = _decode_request(BackendGenerateRequest, await request.body())

    decision = await _interceptor(request).check_prompt(payload.prompt)
    if decision.blocked:
        _log_blocked(request.url.path, decision)
        return build_backend_generate_block_response(
            decision, model=payload.model, request_id=request_id
        )

    forwarded = payload.model_dump_json(exclude_unset=True).encode("utf-8")
    return await _relay_redacted(request, forwarded)


# ─── Fallback ─────────────────────────────────────────────────────────────────


@fallback_router.api_route("/{path:path}", methods=FALLBACK_METHODS)
async def passthrough(request: Request, path: str) -> StreamingResponse:
    """Opaque relay for every other path.

    Request bytes are forwarded unchanged and the backend's raw (still
    encoded) response stream is relayed as it arrives. No policy check and no
    redaction happen on this route.
    """
    _begin_request()
    envelope = ProxyEnvelope.from_parts(
        request.method,
        request.url.path,
        request.url.query,
        request.headers.items(),
        await request.body(),
    )
    backend_response: httpx.Response = await _forwarder(request).open_stream(envelope)

    logger.info(
        "request_proxied",
        method=request.method,
        path=request.url.path,
        status_code=backend_response.status_code,
        opaque=True,
    )
    return attach_headers(
        StreamingResponse(
            backend_response.aiter_raw(),
            status_code=backend_response.status_code,
            background=BackgroundTask(backend_response.aclose),
        ),
        build_client_response_headers(backend_response.headers),
    )
