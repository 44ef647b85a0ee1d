"""Chat endpoints: create/list chats and read their messages."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from agentstream import chat_store
from agentstream.auth import get_current_user
from agentstream.models import ChatCreate, ChatMessage, ChatResponse

router = APIRouter()


@router.post("/api/chats", response_model=ChatResponse, status_code=201)
async def create_chat(
    body: ChatCreate | None = None,
    user_id: str = Depends(get_current_user),
) -> ChatResponse:
    return await chat_store.create_chat(user_id, body.title if body else None)


@router.get("/api/chats", response_model=list[ChatResponse])
async def list_chats(user_id: str = Depends(get_current_user)) -> list[ChatResponse]:
    return await chat_store.list_chats(user_id)


@router.get("/api/chats/{chat_id}/messages", response_model=list[ChatMessage])
async def list_messages(
    chat_id: str,
    limit: int = 50,
    user_id: str = Depends(get_current_user),
) -> list[ChatMessage]:
    if await chat_store.find_chat(chat_id, user_id) is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return await chat_store.get_messages(chat_id, limit=limit)
