"""SSE bridge — translates broadcast hub events to ServerSentEvent objects.

This module sits between the broadcast hub and the HTTP response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from sse_starlette.sse import ServerSentEvent

from aichat.broadcast import BroadcastHub, HubClosedError
from aichat.models import BroadcastEvent

logger = logging.getLogger(__name__)


def to_server_sent_event(event: BroadcastEvent) -> ServerSentEvent:
    if event.heartbeat:
        return ServerSentEvent(comment="keep-alive")
    return ServerSentEvent(
        data=event.data,
        id=str(event.id) if event.id is not None else None,
    )


def parse_last_event_id(value: str | None) -> int | None:
    """Last-Event-ID header as an int; anything else means no replay cursor."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def stream_broadcast_events(
    hub: BroadcastHub,
    stream_id: str,
    last_event_id: int | None = None,
) -> AsyncGenerator[ServerSentEvent, None]:
    """Subscribe to ``stream_id`` and yield its events as SSE.

    The subscription lives exactly as long as this generator: it ends when the
    client disconnects or the hub shuts down.

    Yields:
        ServerSentEvent objects ready for EventSourceResponse.
    """
    try:
        subscriber = hub.subscribe(stream_id, last_event_id)
    except HubClosedError:
        logger.warning("SSE subscribe to %s refused, hub is closed", stream_id)
        return
    try:
        async for event in subscriber.events():
            yield to_server_sent_event(event)
    finally:
        hub.unsubscribe(subscriber)
        logger.debug("SSE connection for stream %s ended", stream_id)
