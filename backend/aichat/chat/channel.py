"""Token channel: an unbounded queue with an explicit end-of-turn marker.

The invoker is the only writer, a relay sink the only reader. Closing the
channel is the single end-of-turn signal, whether the turn succeeded or an
error token was sent first.
"""

from __future__ import annotations

import asyncio

from aichat.models import StreamToken

_SENTINEL = object()  # Marks end of a response stream


class TokenChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamToken | object] = asyncio.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, token: StreamToken) -> None:
        if self._closed:
            raise RuntimeError("send on closed channel")
        self._queue.put_nowait(token)

    def close(self) -> None:
        """Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_SENTINEL)

    async def receive(self) -> StreamToken | None:
        """Next token, or None once the channel is closed and drained."""
        if self._drained:
            return None
        item = await self._queue.get()
        if item is _SENTINEL:
            self._drained = True
            return None
        return item  # type: ignore[return-value]
