"""Wire schemas for both HTTP surfaces.

OpenAI-compatible surface (``/v1/*``) and the backend-native surface
(``/api/*``). Backend-native request models keep unknown fields
(``extra="allow"``) so that a decoded request re-serializes to everything the
caller sent — options, format, tools and so on survive the round trip.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ─── Shared ───────────────────────────────────────────────────────────────────


class ChatMessage(BaseModel):
    """One role-tagged message. ``role`` is an open string, not an enum."""

    model_config = ConfigDict(extra="allow")

    role: str
    # OpenAI clients may send a list of content parts instead of a string.
    content: Union[str, list[dict[str, Any]], None] = ""

    @property
    def text(self) -> str:
        """Plain-text view of ``content`` (text parts joined by newlines)."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            str(part.get("text", ""))
            for part in self.content
            if part.get("type", "text") == "text"
        )


# ─── OpenAI-compatible surface ────────────────────────────────────────────────


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    stream: Optional[bool] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Union[str, list[str], None] = None
    seed: Optional[int] = None


class Usage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class AssistantMessage(BaseModel):
    role: str
    content: str


class Choice(BaseModel):
    index: int
    message: AssistantMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: Optional[Usage] = None


class ChunkDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ChunkChoice(BaseModel):
    index: int
    delta: ChunkDelta
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]


class ModelObject(BaseModel):
    id: str
    object: str = "model"
    created: int = 0
    owned_by: str


class ListModelsResponse(BaseModel):
    object: str = "list"
    data: list[ModelObject]


# ─── Backend-native surface ───────────────────────────────────────────────────


class BackendChatRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    stream: Optional[bool] = None


class BackendGenerateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str
    prompt: Optional[str] = None
    stream: Optional[bool] = None


class BackendChatResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: ChatMessage
    model: Optional[str] = None
    prompt_eval_count: Optional[int] = None
    eval_count: Optional[int] = None


class BackendGenerateResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    response: str = ""


class BackendTag(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str


class BackendTagsResponse(BaseModel):
    models: list[BackendTag] = Field(default_factory=list)
