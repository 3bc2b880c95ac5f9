"""Chat core: request assembly, upstream invocation and streaming relay.

The critical interface is ``run_exchange()``: an invoker task writes tokens
into a channel while a relay sink delivers them to the terminal, an HTTP
response, or the broadcast hub.
"""

from .assembler import ChatOptions, build_messages, build_request, trim_history
from .channel import TokenChannel
from .client import build_client
from .errors import ConfigError, StreamingUnsupportedError, classify
from .exchange import ExchangeTasks, run_exchange
from .history import Conversation
from .invoker import run_completion
from .relay import RelayResult, relay_broadcast, relay_http, relay_terminal

__all__ = [
    "ChatOptions",
    "ConfigError",
    "Conversation",
    "ExchangeTasks",
    "RelayResult",
    "StreamingUnsupportedError",
    "TokenChannel",
    "build_client",
    "build_messages",
    "build_request",
    "classify",
    "relay_broadcast",
    "relay_http",
    "relay_terminal",
    "run_completion",
    "run_exchange",
    "trim_history",
]
