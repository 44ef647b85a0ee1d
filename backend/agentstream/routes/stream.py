"""Stream endpoint — POST /api/chat/{chat_id}/stream → SSE stream."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from agentstream import chat_store
from agentstream.agents import AgentCore, get_agent
from agentstream.auth import get_current_user
from agentstream.config import settings
from agentstream.models import StreamRequest
from agentstream.relay import StreamContext, relay_events, release_chat, try_acquire_chat
from agentstream.sse_bridge import SSE_LINE_SEPARATOR, stream_sse_events

logger = logging.getLogger(__name__)

router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


@router.options("/api/chat/{chat_id}/stream")
async def stream_preflight(chat_id: str) -> Response:
    return Response(status_code=200, headers=PREFLIGHT_HEADERS)


@router.post("/api/chat/{chat_id}/stream")
async def stream_chat(
    chat_id: str,
    request: StreamRequest,
    user_id: str = Depends(get_current_user),
    agent: AgentCore = Depends(get_agent),
) -> EventSourceResponse:
    """Send a message, receive the agent's activity as an SSE stream.

    Failures before the stream opens are plain HTTP errors; everything after
    is reported in-band as SSE events.
    """
    content = (request.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")

    chat = await chat_store.find_chat(chat_id, user_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")

    if not try_acquire_chat(chat_id):
        raise HTTPException(
            status_code=409, detail="A response is already streaming for this chat"
        )

    try:
        history = [
            {"role": m.role, "content": m.content}
            for m in await chat_store.get_messages(chat_id, limit=settings.history_limit)
        ]
        user_message = await chat_store.create_message(chat_id, "user", content)
    except Exception:
        release_chat(chat_id)
        logger.exception("Failed to persist user message for chat %s", chat_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    ctx = StreamContext(
        chat_id=chat_id,
        user_id=user_id,
        content=content,
        research_mode=request.deep_research_mode,
        user_message=user_message,
        history=history,
    )
    logger.info(
        "Streaming chat %s for user %s (research=%s)",
        chat_id, user_id, request.deep_research_mode,
    )
    # relay_events releases the slot itself; the background task covers a
    # response that is torn down before the relay starts.
    return EventSourceResponse(
        stream_sse_events(relay_events(ctx, agent)),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
        ping=settings.sse_ping_seconds,
        sep=SSE_LINE_SEPARATOR,
        background=BackgroundTask(release_chat, chat_id),
    )
