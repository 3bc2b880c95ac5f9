"""Terminal chat loop."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, TextIO

from aichat.chat.assembler import ChatOptions, build_request
from aichat.chat.exchange import run_exchange
from aichat.chat.history import Conversation
from aichat.chat.relay import relay_terminal

logger = logging.getLogger(__name__)

PROMPT = "(Press 'q' to quit) > "
QUIT = "q"


async def run_console(
    client: Any,
    options: ChatOptions,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> Conversation:
    """Read lines until ``q`` or EOF, answering each through the terminal sink.

    Returns the conversation so callers (and tests) can inspect the history.
    """
    input_ = stdin or sys.stdin
    output = stdout or sys.stdout
    conversation = Conversation(options.history)

    output.write("---------------------\n")
    if options.system:
        output.write(options.system + "\n")
    output.write(PROMPT)
    output.flush()

    while True:
        line = await asyncio.to_thread(input_.readline)
        if not line:
            break
        text = line.strip()
        if text == QUIT:
            break
        if text:
            request = build_request(options, text, conversation.turns)
            result = await run_exchange(
                client,
                request,
                lambda channel: relay_terminal(channel, output),
            )
            output.write("\n\n")
            if result.ok:
                conversation.append_exchange(text, result.text)
            else:
                logger.debug("exchange failed: %s", result.error)
        output.write(PROMPT)
        output.flush()

    return conversation
