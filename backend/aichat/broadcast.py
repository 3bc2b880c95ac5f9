"""Broadcast hub — fans published events out to per-stream subscribers.

One hub lives for the whole process (created in the app lifespan and
injected into handlers). Each browser tab subscribes under its stream id;
anything published to that id is queued for every one of its subscribers.

Publishing never waits on a subscriber: queues are bounded and a full queue
loses its oldest event. With ``auto_replay`` each stream also keeps a bounded
log so a reconnecting tab can catch up from its ``Last-Event-ID``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections import OrderedDict, deque
from collections.abc import AsyncGenerator

from aichat.models import BroadcastEvent

logger = logging.getLogger(__name__)

_CLOSED = object()  # Ends a subscriber's event stream


class HubClosedError(RuntimeError):
    """Registration attempted after the hub shut down."""


class Subscriber:
    """One listener bound to a stream id, holding a bounded event queue."""

    def __init__(self, stream_id: str, maxsize: int):
        self.stream_id = stream_id
        self._queue: asyncio.Queue[BroadcastEvent | object] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, item: BroadcastEvent | object) -> None:
        """Enqueue without blocking; a full queue loses its oldest item."""
        if self.closed and item is not _CLOSED:
            return
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.offer(_CLOSED)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> BroadcastEvent | None:
        """Next event, or None once the subscription has ended."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    async def events(self) -> AsyncGenerator[BroadcastEvent, None]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class _Stream:
    def __init__(self, replay_size: int):
        self.subscribers: set[Subscriber] = set()
        self.log: deque[BroadcastEvent] = deque(maxlen=replay_size)
        self.ids = itertools.count(1)


class BroadcastHub:
    def __init__(
        self,
        buffer_size: int = 64,
        auto_replay: bool = False,
        replay_size: int = 256,
        heartbeat_interval: float | None = None,
        max_streams: int = 1024,
    ):
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        if heartbeat_interval is not None and heartbeat_interval < 0:
            raise ValueError("heartbeat_interval must be >= 0")
        self.buffer_size = buffer_size
        self.auto_replay = auto_replay
        self.replay_size = replay_size
        self.heartbeat_interval = heartbeat_interval or None
        self.max_streams = max_streams
        self._streams: OrderedDict[str, _Stream] = OrderedDict()
        self._lock = threading.Lock()
        self._closed = False
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Start the keep-alive task if a heartbeat interval is configured."""
        if self.heartbeat_interval and self._heartbeat_task is None and not self._closed:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat(), name="broadcast-heartbeat"
            )

    async def close(self) -> None:
        """End every subscription and refuse new ones."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            for sub in stream.subscribers:
                sub.close()
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        logger.info("Broadcast hub closed")

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            with self._lock:
                targets = [
                    (stream_id, sub)
                    for stream_id, stream in self._streams.items()
                    for sub in stream.subscribers
                ]
            for stream_id, sub in targets:
                sub.offer(BroadcastEvent(stream_id=stream_id, heartbeat=True))

    # -- registry ----------------------------------------------------------

    def _stream(self, stream_id: str) -> _Stream:
        stream = self._streams.get(stream_id)
        if stream is None:
            stream = _Stream(self.replay_size)
            self._streams[stream_id] = stream
            self._evict()
        else:
            self._streams.move_to_end(stream_id)
        return stream

    def _evict(self) -> None:
        """Forget the least recently used idle replay logs beyond max_streams."""
        if len(self._streams) <= self.max_streams:
            return
        for stream_id in list(self._streams):
            if len(self._streams) <= self.max_streams:
                break
            if not self._streams[stream_id].subscribers:
                del self._streams[stream_id]

    def subscribe(self, stream_id: str, last_event_id: int | None = None) -> Subscriber:
        """Attach a listener to ``stream_id``.

        With auto replay the logged events newer than ``last_event_id`` (all of
        them when it is None) are queued before any live event.
        """
        sub = Subscriber(stream_id, self.buffer_size)
        with self._lock:
            if self._closed:
                raise HubClosedError("broadcast hub is closed")
            stream = self._stream(stream_id)
            if self.auto_replay:
                for event in stream.log:
                    if last_event_id is None or (event.id or 0) > last_event_id:
                        sub.offer(event)
            stream.subscribers.add(sub)
        logger.debug("Subscribed to stream %s (%d listeners)", stream_id, len(stream.subscribers))
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        with self._lock:
            stream = self._streams.get(sub.stream_id)
            if stream is not None:
                stream.subscribers.discard(sub)
                if not stream.subscribers and not self.auto_replay:
                    del self._streams[sub.stream_id]
        sub.close()
        logger.debug("Unsubscribed from stream %s", sub.stream_id)

    def subscriber_count(self, stream_id: str) -> int:
        with self._lock:
            stream = self._streams.get(stream_id)
            return len(stream.subscribers) if stream else 0

    def has_stream(self, stream_id: str) -> bool:
        with self._lock:
            return stream_id in self._streams

    # -- publish -----------------------------------------------------------

    def publish(self, stream_id: str, data: str) -> BroadcastEvent | None:
        """Queue ``data`` for every subscriber of ``stream_id``.

        Returns the published event, or None when nobody could receive it
        (hub closed, or no subscriber and no replay log).
        """
        with self._lock:
            if self._closed:
                return None
            if self.auto_replay:
                stream = self._stream(stream_id)
            else:
                stream = self._streams.get(stream_id)
                if stream is None:
                    return None
            event = BroadcastEvent(stream_id=stream_id, data=data, id=next(stream.ids))
            if self.auto_replay:
                stream.log.append(event)
            targets = list(stream.subscribers)
        for sub in targets:
            sub.offer(event)
        return event
