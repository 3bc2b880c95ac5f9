"""Completion invoker: runs one upstream call and feeds a token channel.

Streaming and single-shot calls are normalized into the same channel: content
tokens in arrival order, at most one error token, then close. Nothing raised
by the upstream call escapes ``run_completion``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

from aichat.chat.channel import TokenChannel
from aichat.chat.errors import classify
from aichat.models import ConversationRequest, StreamToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EOF = object()  # upstream end-of-stream


class _Cancelled(Exception):
    """Caller cancellation observed while waiting on the upstream."""


async def _race(awaitable: Awaitable[T], cancelled: asyncio.Event | None) -> T:
    """Await ``awaitable`` unless ``cancelled`` fires first."""
    if cancelled is None:
        return await awaitable
    if cancelled.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise _Cancelled

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancelled.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if work.done():
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Upstream call failed after cancellation", exc_info=True)
    raise _Cancelled


async def _next_fragment(stream: AsyncIterator[Any]) -> Any:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return _EOF


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        result = close()
        if asyncio.iscoroutine(result):
            await result
    except Exception:
        logger.warning("Error closing upstream stream", exc_info=True)


async def _stream_completion(
    client: Any,
    request: ConversationRequest,
    channel: TokenChannel,
    cancelled: asyncio.Event | None,
) -> None:
    stream = await _race(
        client.chat.completions.create(**request.to_params(), stream=True),
        cancelled,
    )
    try:
        iterator = stream.__aiter__()
        while True:
            chunk = await _race(_next_fragment(iterator), cancelled)
            if chunk is _EOF:
                break
            logger.debug("stream chunk: %s", chunk)
            for choice in chunk.choices:
                content = choice.delta.content if choice.delta else None
                if content:
                    channel.send(StreamToken.content(content))
    finally:
        await _close_stream(stream)


async def _single_completion(
    client: Any,
    request: ConversationRequest,
    channel: TokenChannel,
    cancelled: asyncio.Event | None,
) -> None:
    resp = await _race(
        client.chat.completions.create(**request.to_params()),
        cancelled,
    )
    content = resp.choices[0].message.content if resp.choices else None
    channel.send(StreamToken.content(content or ""))


async def run_completion(
    client: Any,
    request: ConversationRequest,
    channel: TokenChannel,
    cancelled: asyncio.Event | None = None,
) -> None:
    """Issue ``request`` upstream and relay its output into ``channel``.

    The channel is always closed on return. Cancellation closes it without an
    error token; any other failure sends exactly one error token first.
    """
    logger.debug("chat completion request: %s", request.model_dump())
    try:
        if request.stream:
            await _stream_completion(client, request, channel, cancelled)
        else:
            await _single_completion(client, request, channel, cancelled)
    except _Cancelled:
        logger.debug("chat completion cancelled by caller")
    except Exception as exc:
        token = classify(exc)
        logger.error(
            "chat completion failed: %s (category=%s)",
            exc,
            token.category.value if token.category else None,
        )
        channel.send(token)
    finally:
        channel.close()
