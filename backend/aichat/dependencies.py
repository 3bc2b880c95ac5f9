"""FastAPI dependencies: process-wide objects created in the app lifespan."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request

from aichat.broadcast import BroadcastHub
from aichat.chat.exchange import ExchangeTasks
from aichat.config import Settings
from aichat.session_store import ConversationStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_conversations(request: Request) -> ConversationStore:
    return request.app.state.conversations


def get_exchanges(request: Request) -> ExchangeTasks:
    return request.app.state.exchanges


def get_completion_client(request: Request) -> Any:
    client = getattr(request.app.state, "completion_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="OpenAI API key not configured")
    return client
