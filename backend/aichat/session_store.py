"""In-memory conversation store for the web front-end.

Each browser stream id owns one rolling ``Conversation``. Nothing is
persisted; a restart starts every tab from an empty history.
"""

from __future__ import annotations

from aichat.chat.history import Conversation
from aichat.models import ChatTurn


class ConversationStore:
    def __init__(self, max_conversations: int = 1024):
        self.max_conversations = max_conversations
        self._conversations: dict[str, Conversation] = {}

    def __contains__(self, stream_id: str) -> bool:
        return stream_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def get(self, stream_id: str, limit: int) -> Conversation:
        """Return the conversation for ``stream_id``, sized to ``limit`` pairs."""
        conv = self._conversations.pop(stream_id, None)
        if conv is None:
            conv = Conversation(limit)
        else:
            conv.resize(limit)
        self._conversations[stream_id] = conv  # most recently used last
        while len(self._conversations) > self.max_conversations:
            oldest = next(iter(self._conversations))
            del self._conversations[oldest]
        return conv

    def turns(self, stream_id: str) -> list[ChatTurn] | None:
        conv = self._conversations.get(stream_id)
        return conv.turns if conv is not None else None

    def delete(self, stream_id: str) -> bool:
        """Drop a conversation. Returns False if not found."""
        return self._conversations.pop(stream_id, None) is not None
