"""Pydantic models: the shared contract between the chat core and its front-ends.

Conversation turns, upstream request shape, the tagged token variant that
flows through a token channel, broadcast events, and the HTTP response shapes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Sampling parameters are fixed for every exchange.
TEMPERATURE = 0.7
TOP_P = 1.0
CHOICES = 1


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class ChatTurn(BaseModel):
    """A single role-tagged message."""
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str

    def to_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationRequest(BaseModel):
    """One upstream chat-completion call, already assembled."""
    messages: list[ChatTurn]
    model: str
    max_tokens: int = 0  # 0 = unbounded
    stream: bool = False
    user: str = ""

    @property
    def prompt(self) -> ChatTurn:
        """The new user turn (always last)."""
        return self.messages[-1]

    def to_params(self) -> dict[str, Any]:
        """Keyword arguments for ``client.chat.completions.create``."""
        params: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_message() for m in self.messages],
            "temperature": TEMPERATURE,
            "top_p": TOP_P,
            "n": CHOICES,
            "presence_penalty": 0,
            "frequency_penalty": 0,
        }
        if self.max_tokens > 0:
            params["max_tokens"] = self.max_tokens
        if self.user:
            params["user"] = self.user
        return params


# ---------------------------------------------------------------------------
# Token channel elements
# ---------------------------------------------------------------------------

class ErrorCategory(str, Enum):
    BAD_REQUEST = "bad_request"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TOO_MANY_REQUESTS = "too_many_requests"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class StreamToken(BaseModel):
    """Content fragment or terminal error, delivered in arrival order.

    Error tokens carry a short sentinel text; ``render()`` brackets it so the
    user sees e.g. ``[[service unavailable]]`` in place of a reply.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["content", "error"] = "content"
    text: str
    category: ErrorCategory | None = None
    retryable: bool | None = None

    @classmethod
    def content(cls, text: str) -> StreamToken:
        return cls(kind="content", text=text)

    @classmethod
    def error(
        cls,
        category: ErrorCategory,
        text: str,
        retryable: bool | None = None,
    ) -> StreamToken:
        return cls(kind="error", text=text, category=category, retryable=retryable)

    @property
    def is_error(self) -> bool:
        return self.kind == "error"

    def render(self) -> str:
        if self.is_error:
            return f"[[{self.text}]]"
        return self.text


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------

class BroadcastEvent(BaseModel):
    """A payload published to every subscriber of a stream identifier."""
    model_config = ConfigDict(frozen=True)

    stream_id: str
    data: str = ""
    id: int | None = None
    heartbeat: bool = False


# ---------------------------------------------------------------------------
# HTTP response models
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    """GET /api/health response."""
    status: Literal["ok", "degraded"]
    version: str = "0.1.0"
    openai_configured: bool


class ChatPageData(BaseModel):
    """Key/value map handed to the chat page template."""
    stream_id: str
    model: str
    stream: str
    system: str = ""
    max_tokens: str = "0"
    history: str = "0"


class ConversationResponse(BaseModel):
    """In-memory history kept for one stream identifier."""
    stream_id: str
    turns: list[ChatTurn] = Field(default_factory=list)
