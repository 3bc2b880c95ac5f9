"""Message/history assembly.

Builds ``[system?, *history, user]`` for one exchange. History only ever
contributes whole user/assistant pairs, the newest ``history`` of them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from aichat.models import ChatTurn, ConversationRequest


@dataclass
class ChatOptions:
    """Per-conversation settings supplied by config, CLI flags or form fields."""
    model: str
    system: str = ""
    stream: bool = True
    max_tokens: int = 0
    history: int = 0
    user: str = ""


def trim_history(history: Sequence[ChatTurn], limit: int) -> list[ChatTurn]:
    """Return the newest ``limit`` complete pairs of ``history``."""
    if limit <= 0:
        return []
    turns = list(history)
    pairs: list[list[ChatTurn]] = []
    i = len(turns) - 1
    # walk back from the newest turn; stray turns without a partner are skipped
    while i > 0 and len(pairs) < limit:
        if turns[i].role == "assistant" and turns[i - 1].role == "user":
            pairs.append([turns[i - 1], turns[i]])
            i -= 2
        else:
            i -= 1
    return [turn for pair in reversed(pairs) for turn in pair]


def build_messages(
    prompt: str,
    history: Sequence[ChatTurn] = (),
    *,
    system: str = "",
    history_limit: int = 0,
) -> list[ChatTurn]:
    messages: list[ChatTurn] = []
    if system:
        messages.append(ChatTurn(role="system", content=system))
    messages.extend(trim_history(history, history_limit))
    messages.append(ChatTurn(role="user", content=prompt))
    return messages


def build_request(
    options: ChatOptions,
    prompt: str,
    history: Sequence[ChatTurn] = (),
) -> ConversationRequest:
    """Assemble the upstream request for one user input."""
    return ConversationRequest(
        messages=build_messages(
            prompt,
            history,
            system=options.system,
            history_limit=options.history,
        ),
        model=options.model,
        max_tokens=options.max_tokens,
        stream=options.stream,
        user=options.user,
    )
