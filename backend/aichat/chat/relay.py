"""Relay sinks: drain a token channel into one destination.

Every sink forwards tokens one at a time in arrival order and returns the
accumulated text once the channel closes. When ``cancelled`` fires first the
sink returns what it already has and stops reading.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TextIO

from aichat.chat.channel import TokenChannel
from aichat.chat.errors import StreamingUnsupportedError
from aichat.models import StreamToken

if TYPE_CHECKING:
    from aichat.broadcast import BroadcastHub

logger = logging.getLogger(__name__)

LINE_BREAK = "<br>"
END_OF_TURN = "<br><br>"


@dataclass
class RelayResult:
    text: str = ""
    error: StreamToken | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class ChunkWriter(Protocol):
    async def write(self, data: str) -> None: ...

    async def flush(self) -> None: ...


class _Abandoned(Exception):
    pass


async def _receive(channel: TokenChannel, cancelled: asyncio.Event | None) -> StreamToken | None:
    """Next token, None at close; raises _Abandoned if cancelled first."""
    if cancelled is None:
        return await channel.receive()
    if cancelled.is_set():
        raise _Abandoned

    recv = asyncio.ensure_future(channel.receive())
    waiter = asyncio.ensure_future(cancelled.wait())
    try:
        await asyncio.wait({recv, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if recv.done():
        return recv.result()
    recv.cancel()
    raise _Abandoned


async def _drain(channel, cancelled, deliver) -> RelayResult:
    result = RelayResult()
    parts: list[str] = []
    try:
        while True:
            token = await _receive(channel, cancelled)
            if token is None:
                break
            rendered = token.render()
            parts.append(rendered)
            if token.is_error:
                result.error = token
            await deliver(rendered)
    except _Abandoned:
        result.cancelled = True
    result.text = "".join(parts)
    return result


async def relay_terminal(
    channel: TokenChannel,
    out: TextIO | None = None,
) -> RelayResult:
    """Write tokens to stdout as they arrive."""
    out = out or sys.stdout

    async def deliver(text: str) -> None:
        out.write(text)
        out.flush()

    return await _drain(channel, None, deliver)


def format_sse_data(text: str) -> str:
    """One SSE ``data:`` record; embedded newlines continue the record."""
    return "data: {}\n\n".format(text.replace("\n", "\ndata: "))


async def relay_http(
    channel: TokenChannel,
    writer: ChunkWriter,
    cancelled: asyncio.Event | None = None,
) -> RelayResult:
    """Write each token as an SSE record and flush after every one.

    A failed write aborts the exchange and returns an empty result.
    """
    if not callable(getattr(writer, "flush", None)):
        raise StreamingUnsupportedError("streaming unsupported")

    async def deliver(text: str) -> None:
        await writer.write(format_sse_data(text))
        await writer.flush()

    try:
        return await _drain(channel, cancelled, deliver)
    except Exception as exc:
        logger.error("write stream failed: %s", exc)
        return RelayResult(cancelled=True)


def to_html(text: str) -> str:
    return text.replace("\r", "").replace("\n", LINE_BREAK)


async def relay_broadcast(
    channel: TokenChannel,
    hub: BroadcastHub,
    stream_id: str,
    cancelled: asyncio.Event | None = None,
) -> RelayResult:
    """Publish each token to ``stream_id`` subscribers, then an end-of-turn marker."""

    async def deliver(text: str) -> None:
        hub.publish(stream_id, to_html(text))

    result = await _drain(channel, cancelled, deliver)
    if not result.cancelled:
        hub.publish(stream_id, END_OF_TURN)
    return result
