"""Conversation history endpoints: in-memory, keyed by stream id."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from aichat.dependencies import get_conversations
from aichat.models import ConversationResponse
from aichat.session_store import ConversationStore

router = APIRouter()


@router.get("/api/conversations/{stream_id}", response_model=ConversationResponse)
async def get_conversation(
    stream_id: str,
    conversations: ConversationStore = Depends(get_conversations),
) -> ConversationResponse:
    turns = conversations.turns(stream_id)
    if turns is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationResponse(stream_id=stream_id, turns=turns)


@router.delete("/api/conversations/{stream_id}", status_code=204)
async def delete_conversation(
    stream_id: str,
    conversations: ConversationStore = Depends(get_conversations),
) -> None:
    if not conversations.delete(stream_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
