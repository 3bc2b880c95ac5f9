"""Terminal and web chat front-ends over an OpenAI-compatible API."""

__version__ = "0.1.0"
