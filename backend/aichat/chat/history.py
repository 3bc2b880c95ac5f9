"""Rolling in-memory conversation window."""

from __future__ import annotations

from collections import deque

from aichat.models import ChatTurn


class Conversation:
    """History owned by one caller (a terminal loop or a browser stream).

    Keeps at most ``limit`` user/assistant pairs; with a limit of 0 nothing is
    stored since nothing would ever be sent.
    """

    def __init__(self, limit: int = 0):
        self.limit = max(limit, 0)
        self._turns: deque[ChatTurn] = deque(maxlen=2 * self.limit)

    @property
    def turns(self) -> list[ChatTurn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns) // 2

    def append_exchange(self, prompt: str, reply: str) -> None:
        if self.limit == 0:
            return
        self._turns.append(ChatTurn(role="user", content=prompt))
        self._turns.append(ChatTurn(role="assistant", content=reply))

    def resize(self, limit: int) -> None:
        """Change the window, keeping the newest pairs that still fit."""
        limit = max(limit, 0)
        if limit == self.limit:
            return
        self.limit = limit
        self._turns = deque(self._turns, maxlen=2 * limit)

    def clear(self) -> None:
        self._turns.clear()
