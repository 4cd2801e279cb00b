"""Response assembly for the OpenAI-compatible surface.

Builds the ``chat.completion`` envelope (id, created, usage, single choice)
from already-redacted backend content, and renders it as an SSE sequence for
callers that asked for ``stream: true``.

The gateway never streams partial content: a streaming caller receives the
complete, redacted answer as one content chunk followed by a terminal chunk
and ``data: [DONE]``.
"""

from __future__ import annotations

import time
from typing import Optional

from moltguard.models.api import (
    AssistantMessage,
    BackendChatResponse,
    ChatCompletionChunk,
    ChatCompletionResponse,
    Choice,
    ChunkChoice,
    ChunkDelta,
    Usage,
)
from moltguard.utils.ulid import generate_ulid

SSE_DONE: bytes = b"data: [DONE]\n\n"


def completion_id(request_id: Optional[str] = None) -> str:
    return f"chatcmpl-{request_id or generate_ulid()}"


def usage_from_backend(reply: BackendChatResponse) -> Optional[Usage]:
    """Token usage, only when the backend reported both counters."""
    if reply.prompt_eval_count is None or reply.eval_count is None:
        return None
    return Usage(
        prompt_tokens=reply.prompt_eval_count,
        completion_tokens=reply.eval_count,
        total_tokens=reply.prompt_eval_count + reply.eval_count,
    )


def assemble_completion(
    *,
    model: str,
    content: str,
    role: str = "assistant",
    usage: Optional[Usage] = None,
    finish_reason: str = "stop",
    request_id: Optional[str] = None,
) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        id=completion_id(request_id),
        created=int(time.time()),
        model=model,
        choices=[
            Choice(
                index=0,
                message=AssistantMessage(role=role, content=content),
                finish_reason=finish_reason,
            )
        ],
        usage=usage,
    )


def assemble_from_backend(
    reply: BackendChatResponse,
    *,
    model: str,
    redacted_content: str,
    request_id: Optional[str] = None,
) -> ChatCompletionResponse:
    """Wrap a backend chat reply whose content has already been redacted."""
    return assemble_completion(
        model=model,
        content=redacted_content,
        role=reply.message.role,
        usage=usage_from_backend(reply),
        request_id=request_id,
    )


def completion_to_sse(completion: ChatCompletionResponse) -> list[bytes]:
    """Render a complete response as ``chat.completion.chunk`` SSE events."""
    choice = completion.choices[0]
    chunks = [
        ChatCompletionChunk(
            id=completion.id,
            created=completion.created,
            model=completion.model,
            choices=[
                ChunkChoice(
                    index=0,
                    delta=ChunkDelta(
                        role=choice.message.role,
                        content=choice.message.content,
                    ),
                )
            ],
        ),
        ChatCompletionChunk(
            id=completion.id,
            created=completion.created,
            model=completion.model,
            choices=[
                ChunkChoice(
                    index=0,
                    delta=ChunkDelta(),
                    finish_reason=choice.finish_reason,
                )
            ],
        ),
    ]
    events = [
        f"data: {chunk.model_dump_json(exclude_none=True)}\n\n".encode("utf-8")
        for chunk in chunks
    ]
    events.append(SSE_DONE)
    return events
