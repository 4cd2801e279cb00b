"""BLOCK and error HTTP response builders.

Two families of responses the gateway produces without relaying a backend reply:

  Security alerts (policy BLOCK):
      HTTP 200, in-band assistant reply in the caller's schema, content prefixed
      with the shield indicator and the decision reason. Always carries
      ``X-MoltGuard-Block: true``. The backend is never contacted.

  Gateway errors (``GatewayError`` subclasses):
      JSON ``{"error": {"message", "code", ...}}`` with the error's own status.
      Never carries ``X-MoltGuard-Block`` — a failure is not a policy decision.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi.responses import JSONResponse, Response, StreamingResponse

from moltguard.constants import (
    BLOCK_APOLOGY,
    BLOCK_HEADER,
    REQUEST_ID_HEADER,
    SHIELD_PREFIX,
)
from moltguard.errors import GatewayError
from moltguard.models.policy import PolicyDecision
from moltguard.proxy.assembler import assemble_completion, completion_to_sse


def security_alert_text(decision: PolicyDecision) -> str:
    """Visible alert text for a BLOCK decision, reason included verbatim."""
    reason = decision.reason or "Request blocked by security policy"
    return f"{SHIELD_PREFIX} {reason}. {BLOCK_APOLOGY}"


def _block_headers(request_id: str) -> dict[str, str]:
    return {BLOCK_HEADER: "true", REQUEST_ID_HEADER: request_id}


def _backend_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_openai_block_response(
    decision: PolicyDecision,
    *,
    model: str,
    request_id: str,
    stream: bool = False,
) -> Response:
    """Security alert shaped as a ``chat.completion`` (or its SSE rendering)."""
    completion = assemble_completion(
        model=model,
        content=security_alert_text(decision),
        finish_reason="content_filter",
        request_id=request_id,
    )
    if stream:
        return StreamingResponse(
            iter(completion_to_sse(completion)),
            status_code=200,
            headers=_block_headers(request_id),
            media_type="text/event-stream",
        )
    return JSONResponse(
        status_code=200,
        content=completion.model_dump(mode="json"),
        headers=_block_headers(request_id),
    )


def build_backend_chat_block_response(
    decision: PolicyDecision,
    *,
    model: str,
    request_id: str,
) -> JSONResponse:
    """Security alert shaped as a backend-native ``/api/chat`` final message."""
    return JSONResponse(
        status_code=200,
        content={
            "model": model,
            "created_at": _backend_timestamp(),
            "message": {
                "role": "assistant",
                "content": security_alert_text(decision),
            },
            "done": True,
            "done_reason": "stop",
        },
        headers=_block_headers(request_id),
    )


def build_backend_generate_block_response(
    decision: PolicyDecision,
    *,
    model: str,
    request_id: str,
) -> JSONResponse:
    """Security alert shaped as a backend-native ``/api/generate`` final chunk."""
    return JSONResponse(
        status_code=200,
        content={
            "model": model,
            "created_at": _backend_timestamp(),
            "response": security_alert_text(decision),
            "done": True,
            "done_reason": "stop",
        },
        headers=_block_headers(request_id),
    )


def build_error_response(
    exc: GatewayError,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Render a ``GatewayError`` with its status, code and extra headers."""
    headers = dict(exc.headers() or {})
    if request_id:
        headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=headers or None,
    )
