"""Exchange runner: one invoker task feeding one relay sink.

The invoker runs in a background task while the caller drains the channel.
The caller returns once the sink has seen the channel close and the invoker
task has finished; on cancellation it returns as soon as the sink stops and
leaves the invoker to wind down on its own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from aichat.chat.channel import TokenChannel
from aichat.chat.invoker import run_completion
from aichat.chat.relay import RelayResult
from aichat.models import ConversationRequest

logger = logging.getLogger(__name__)

Sink = Callable[[TokenChannel], Awaitable[RelayResult]]


async def run_exchange(
    client: Any,
    request: ConversationRequest,
    sink: Sink,
    cancelled: asyncio.Event | None = None,
) -> RelayResult:
    channel = TokenChannel()
    task = asyncio.create_task(
        run_completion(client, request, channel, cancelled),
        name="chat-completion",
    )
    try:
        result = await sink(channel)
    except BaseException:
        if cancelled is not None:
            cancelled.set()
        else:
            task.cancel()
        task.add_done_callback(_log_task_failure)
        raise

    if result.cancelled:
        if cancelled is not None:
            cancelled.set()
        else:
            task.cancel()
        task.add_done_callback(_log_task_failure)
        return result

    await task
    return result


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Completion task %s failed", task.get_name(), exc_info=task.exception())


# ---------------------------------------------------------------------------
# Detached exchanges (web front-end)
# ---------------------------------------------------------------------------


class ExchangeTasks:
    """Tracks exchanges that outlive the request that started them.

    Each task gets its own cancel event; ``shutdown()`` fires them all and
    waits for the tasks to finish.
    """

    def __init__(self) -> None:
        self._tasks: dict[asyncio.Task[Any], asyncio.Event] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def tasks(self) -> list[asyncio.Task[Any]]:
        return list(self._tasks)

    def spawn(
        self,
        factory: Callable[[asyncio.Event], Coroutine[Any, Any, Any]],
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        cancelled = asyncio.Event()
        task = asyncio.create_task(factory(cancelled), name=name)
        self._tasks[task] = cancelled
        task.add_done_callback(self._discard)
        return task

    def _discard(self, task: asyncio.Task[Any]) -> None:
        self._tasks.pop(task, None)
        _log_task_failure(task)

    async def wait(self) -> None:
        """Wait for every tracked exchange to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        for event in self._tasks.values():
            event.set()
        pending = list(self._tasks)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            logger.warning("Exchange %s did not stop in time, cancelling", task.get_name())
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
