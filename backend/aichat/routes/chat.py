"""Chat endpoints.

GET  /chat            → page data + stream_id cookie
GET  /chat/sse        → SSE subscription to a stream id (broadcast hub)
POST /chat/sse/msg    → start an exchange, results arrive on /chat/sse
POST /chat/msg        → one exchange streamed back directly as SSE
"""

from __future__ import annotations

import asyncio
import html
import logging
import uuid
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from aichat.broadcast import BroadcastHub
from aichat.chat.assembler import ChatOptions, build_request
from aichat.chat.exchange import ExchangeTasks, run_exchange
from aichat.chat.relay import relay_broadcast, relay_http, to_html
from aichat.config import Settings
from aichat.dependencies import (
    get_completion_client,
    get_conversations,
    get_exchanges,
    get_hub,
    get_settings,
)
from aichat.models import ChatPageData
from aichat.session_store import ConversationStore
from aichat.sse_bridge import parse_last_event_id, stream_broadcast_events

logger = logging.getLogger(__name__)

router = APIRouter()

COOKIE_NAME = "stream_id"
COOKIE_MAX_AGE = 86400 * 400  # browsers cap cookie lifetime at 400 days
STREAM_ID_LENGTH = 32

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # tell nginx not to buffer the response
    "X-Accel-Buffering": "no",
}


# ---------------------------------------------------------------------------
# Form handling
# ---------------------------------------------------------------------------

class ChatForm(BaseModel):
    stream_id: str = ""
    prompt: str = ""
    stream: str | None = None
    model: str | None = None
    system: str | None = None
    max_tokens: str | None = None
    history: str | None = None


def chat_form(
    stream_id: str = Form(""),
    prompt: str = Form(""),
    stream: str | None = Form(None),
    model: str | None = Form(None),
    system: str | None = Form(None),
    max_tokens: str | None = Form(None),
    history: str | None = Form(None),
) -> ChatForm:
    return ChatForm(
        stream_id=stream_id.strip(),
        prompt=prompt,
        stream=stream,
        model=model,
        system=system,
        max_tokens=max_tokens,
        history=history,
    )


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "t", "true", "on", "yes"):
        return True
    if lowered in ("0", "f", "false", "off", "no"):
        return False
    return default


def _parse_uint(value: str | None, default: int) -> int:
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def form_options(form: ChatForm, settings: Settings) -> ChatOptions:
    """Per-request options; absent or invalid fields fall back to settings."""
    defaults = settings.chat_options()
    return ChatOptions(
        model=form.model or defaults.model,
        system=form.system if form.system is not None else defaults.system,
        stream=_parse_bool(form.stream, defaults.stream),
        max_tokens=_parse_uint(form.max_tokens, defaults.max_tokens),
        history=_parse_uint(form.history, defaults.history),
    )


def page_data(stream_id: str, options: ChatOptions) -> ChatPageData:
    return ChatPageData(
        stream_id=stream_id,
        model=options.model,
        stream=str(options.stream).lower(),
        system=options.system,
        max_tokens=str(options.max_tokens),
        history=str(options.history),
    )


def get_stream_id(request: Request, response: Response) -> str:
    """Stream id from the cookie, issuing a new one when absent or malformed."""
    value = request.cookies.get(COOKIE_NAME, "")
    if len(value) != STREAM_ID_LENGTH:
        value = uuid.uuid4().hex
        response.set_cookie(COOKIE_NAME, value, max_age=COOKIE_MAX_AGE)
    return value


# ---------------------------------------------------------------------------
# Direct SSE response writer
# ---------------------------------------------------------------------------

class _ResponseWriter:
    """Buffers writes and hands each flushed chunk to a streaming response."""

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self.chunks: asyncio.Queue[str | None] = asyncio.Queue()

    async def write(self, data: str) -> None:
        self._buffer.append(data)

    async def flush(self) -> None:
        if self._buffer:
            chunk = "".join(self._buffer)
            self._buffer.clear()
            await self.chunks.put(chunk)

    async def close(self) -> None:
        await self.flush()
        await self.chunks.put(None)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/chat", response_model=ChatPageData)
async def chat_page(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
) -> ChatPageData:
    """Values for the chat page template."""
    return page_data(get_stream_id(request, response), settings.chat_options())


@router.get("/chat/sse")
async def chat_events(
    request: Request,
    stream: str = Query(min_length=1),
    hub: BroadcastHub = Depends(get_hub),
) -> EventSourceResponse:
    """Subscribe to one stream id. Replays missed events when auto replay is on."""
    if hub.closed:
        raise HTTPException(status_code=503, detail="broadcast hub is closed")
    last_event_id = parse_last_event_id(request.headers.get("last-event-id"))
    return EventSourceResponse(
        stream_broadcast_events(hub, stream, last_event_id),
        headers=SSE_HEADERS,
    )


@router.post("/chat/sse/msg", response_model=ChatPageData)
async def chat_sse_message(
    request: Request,
    response: Response,
    form: ChatForm = Depends(chat_form),
    settings: Settings = Depends(get_settings),
    hub: BroadcastHub = Depends(get_hub),
    conversations: ConversationStore = Depends(get_conversations),
    exchanges: ExchangeTasks = Depends(get_exchanges),
    client: Any = Depends(get_completion_client),
) -> ChatPageData:
    """Start one exchange whose reply is published to ``stream_id``.

    Returns 202 immediately; the echoed prompt, reply tokens and a final
    ``<br><br>`` arrive over GET /chat/sse.
    """
    if not form.stream_id or not form.prompt:
        return page_data(get_stream_id(request, response), settings.chat_options())

    stream_id = form.stream_id
    prompt = form.prompt
    options = form_options(form, settings)
    logger.debug("input: stream_id=%s options=%s", stream_id, options)

    hub.publish(stream_id, '<p class="has-text-info">' + to_html(html.escape(prompt)) + "</p>")

    conversation = conversations.get(stream_id, options.history)
    chat_request = build_request(options, prompt, conversation.turns)

    async def _exchange(cancelled: asyncio.Event) -> None:
        result = await run_exchange(
            client,
            chat_request,
            lambda channel: relay_broadcast(channel, hub, stream_id, cancelled),
            cancelled,
        )
        logger.debug("ai: stream_id=%s msg=%s", stream_id, result.text)
        if result.ok:
            conversation.append_exchange(prompt, result.text)

    exchanges.spawn(_exchange, name=f"exchange-{stream_id}")

    response.status_code = 202
    return page_data(stream_id, options)


@router.post("/chat/msg")
async def chat_message(
    form: ChatForm = Depends(chat_form),
    settings: Settings = Depends(get_settings),
    conversations: ConversationStore = Depends(get_conversations),
    client: Any = Depends(get_completion_client),
) -> StreamingResponse:
    """Run one exchange and stream the reply back as ``data:`` records."""
    if not form.prompt:
        raise HTTPException(status_code=422, detail="prompt is required")

    options = form_options(form, settings)
    conversation = conversations.get(form.stream_id, options.history) if form.stream_id else None
    history = conversation.turns if conversation is not None else []
    chat_request = build_request(options, form.prompt, history)

    writer = _ResponseWriter()
    cancelled = asyncio.Event()

    async def _exchange() -> None:
        try:
            result = await run_exchange(
                client,
                chat_request,
                lambda channel: relay_http(channel, writer, cancelled),
                cancelled,
            )
            logger.debug("ai: msg=%s", result.text)
            if conversation is not None and result.ok:
                conversation.append_exchange(form.prompt, result.text)
        finally:
            await writer.close()

    async def body() -> AsyncGenerator[str, None]:
        task = asyncio.create_task(_exchange(), name="chat-msg-exchange")
        try:
            while True:
                chunk = await writer.chunks.get()
                if chunk is None:
                    break
                yield chunk
            await task
        finally:
            # client went away: stop relaying, the invoker winds down on its own
            cancelled.set()

    return StreamingResponse(
        body(),
        media_type="text/event-stream; charset=utf-8",
        headers={**SSE_HEADERS, "Access-Control-Allow-Origin": "*"},
    )
