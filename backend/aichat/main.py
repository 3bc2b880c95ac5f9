"""FastAPI application factory.

Serve with ``aichat`` (see ``aichat.__main__``) or
``uvicorn --factory aichat.main:create_app``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aichat.access_log import AccessLogMiddleware
from aichat.broadcast import BroadcastHub
from aichat.chat.client import build_client
from aichat.chat.exchange import ExchangeTasks
from aichat.config import Settings, load_settings
from aichat.routes import chat, conversations, health
from aichat.session_store import ConversationStore

logger = logging.getLogger(__name__)


def build_hub(settings: Settings) -> BroadcastHub:
    return BroadcastHub(
        buffer_size=settings.sse_buffer_size,
        auto_replay=settings.sse_auto_replay,
        replay_size=settings.sse_replay_size,
        heartbeat_interval=settings.sse_heartbeat_seconds or None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: upstream client + broadcast hub. Shutdown: stop exchanges, close hub."""
    settings: Settings = app.state.settings

    client = None
    if settings.openai_configured:
        # ConfigError aborts startup
        client = build_client(
            settings.openai_api_key,
            settings.openai_api_type,
            settings.openai_api_base_url,
            settings.openai_proxy,
            settings.openai_api_version,
        )
    else:
        logger.warning("OpenAI API key not configured, chat endpoints disabled")

    hub = build_hub(settings)
    hub.start()

    app.state.completion_client = client
    app.state.hub = hub
    app.state.conversations = ConversationStore()
    app.state.exchanges = ExchangeTasks()
    yield
    await app.state.exchanges.shutdown()
    await hub.close()
    if client is not None:
        await client.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(
        title="aichat",
        description="Streaming chat relay for OpenAI-compatible APIs",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(AccessLogMiddleware)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(conversations.router)
    return app
