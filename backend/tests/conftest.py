"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from httpx import ASGITransport, AsyncClient

from aichat.broadcast import BroadcastHub
from aichat.chat.exchange import ExchangeTasks
from aichat.config import Settings
from aichat.main import create_app
from aichat.session_store import ConversationStore


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        openai_model="gpt-test",
        openai_stream=True,
    )


@pytest.fixture
async def hub() -> AsyncGenerator[BroadcastHub, None]:
    hub = BroadcastHub(buffer_size=64)
    yield hub
    await hub.close()


@pytest.fixture
def app(test_settings, hub, mock_openai):
    """App with lifespan state set directly (ASGITransport skips lifespan)."""
    app = create_app(test_settings)
    app.state.completion_client = mock_openai["client"]
    app.state.hub = hub
    app.state.conversations = ConversationStore()
    app.state.exchanges = ExchangeTasks()
    return app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.exchanges.shutdown()


# ---------------------------------------------------------------------------
# Mock helpers for the OpenAI SDK
# ---------------------------------------------------------------------------


def make_chunk(*contents: str | None):
    """A streaming chunk with one choice per content (None = empty delta)."""
    return SimpleNamespace(
        choices=[
            SimpleNamespace(index=i, delta=SimpleNamespace(content=c))
            for i, c in enumerate(contents)
        ]
    )


def make_stream_chunks(*fragments: str | None) -> list:
    return [make_chunk(f) for f in fragments]


def make_completion(text: str = "Hello from the model!"):
    """A non-streaming chat completion response."""
    return SimpleNamespace(
        choices=[SimpleNamespace(index=0, message=SimpleNamespace(role="assistant", content=text))]
    )


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def make_status_error(status: int, message: str = "upstream error") -> openai.APIStatusError:
    response = httpx.Response(status, request=_request())
    classes = {
        400: openai.BadRequestError,
        401: openai.AuthenticationError,
        429: openai.RateLimitError,
        500: openai.InternalServerError,
        503: openai.InternalServerError,
        504: openai.InternalServerError,
    }
    cls = classes.get(status, openai.APIStatusError)
    return cls(message, response=response, body=None)


def make_timeout_error() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=_request())


def make_connection_error(message: str = "connection refused") -> openai.APIConnectionError:
    return openai.APIConnectionError(message=message, request=_request())


class FakeStream:
    """Async iterator over chunks, optionally failing after ``fail_after`` chunks."""

    def __init__(self, chunks, error: BaseException | None = None, fail_after: int | None = None,
                 delay: float = 0.0):
        self._chunks = list(chunks)
        self._error = error
        self._fail_after = fail_after
        self._delay = delay
        self._index = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None and self._index == (self._fail_after or 0):
            raise self._error
        if self._index >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self._index]
        self._index += 1
        return chunk

    async def close(self):
        self.closed = True


@pytest.fixture
def mock_openai():
    """A fake AsyncOpenAI client returning canned responses.

    Usage:
        def test_chat(mock_openai):
            mock_openai["set_stream"](make_stream_chunks("Hi", "!"))
            mock_openai["set_completion"](make_completion("Hi!"))
            mock_openai["set_error"](make_status_error(429))
    """
    state: dict = {
        "chunks": make_stream_chunks("Hello", " from", " the model!"),
        "completion": make_completion(),
        "error": None,
        "streams": [],
    }

    async def create(**kwargs):
        if state["error"] is not None:
            raise state["error"]
        if kwargs.get("stream"):
            stream = FakeStream(state["chunks"])
            state["streams"].append(stream)
            return stream
        return state["completion"]

    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=create)
    client.close = AsyncMock()

    def set_stream(chunks):
        state["chunks"] = chunks

    def set_completion(completion):
        state["completion"] = completion

    def set_error(error):
        state["error"] = error

    return {
        "client": client,
        "create": client.chat.completions.create,
        "streams": state["streams"],
        "set_stream": set_stream,
        "set_completion": set_completion,
        "set_error": set_error,
    }
