"""Stream relay — owns the event sequence for one stream request.

``relay_events()`` is the async generator behind every SSE response. It runs
after the route has validated the request and persisted the user message:

    user_message → gates → ai_typing → transcoded agent events → complete | error

The assistant message is written exactly once, after the agent's terminal
signal and before the terminal wire event. If the consumer goes away first
(client disconnect cancels the generator), the agent iterator is closed and
nothing is persisted. The chat's stream slot is released on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from agentstream import chat_store, entitlements
from agentstream.agents import AgentCore, AgentError
from agentstream.config import settings
from agentstream.events import (
    Complete,
    ErrorEvent,
    EventType,
    LimitExceeded,
    ProRequired,
    Typing,
    WireEvent,
)
from agentstream.models import ChatMessage
from agentstream.transcoder import transcode

logger = logging.getLogger(__name__)


@dataclass
class StreamContext:
    """Everything the relay needs about one validated request."""
    chat_id: str
    user_id: str
    content: str
    research_mode: bool
    user_message: ChatMessage
    history: list[dict[str, str]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Per-chat stream registry
# ---------------------------------------------------------------------------

_active_chats: set[str] = set()


def try_acquire_chat(chat_id: str) -> bool:
    """Claim the single stream slot for a chat. False if one is running."""
    if chat_id in _active_chats:
        return False
    _active_chats.add(chat_id)
    return True


def release_chat(chat_id: str) -> None:
    _active_chats.discard(chat_id)


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------

async def _persist_assistant_message(
    ctx: StreamContext, content: str, metadata: dict[str, Any]
) -> None:
    await chat_store.create_message(ctx.chat_id, "assistant", content, metadata)
    await chat_store.touch_chat(ctx.chat_id)


async def _check_gates(ctx: StreamContext) -> WireEvent | None:
    """Return the event that ends the stream early, or None if both gates pass."""
    # Gate 1: hourly message limit
    if not await entitlements.check_rate_limit(ctx.user_id):
        return WireEvent.of(
            EventType.LIMIT_EXCEEDED, LimitExceeded(message=settings.rate_limit_message)
        )
    # Gate 2: deep research needs Pro
    if ctx.research_mode and not await entitlements.is_pro_subscriber(ctx.user_id):
        return WireEvent.of(EventType.ERROR, ProRequired(message=settings.pro_required_message))
    return None


def _fallback_error() -> WireEvent:
    return WireEvent.of(EventType.ERROR, ErrorEvent(message=settings.fallback_error_message))


async def relay_events(
    ctx: StreamContext, agent: AgentCore
) -> AsyncGenerator[WireEvent, None]:
    """Yield the wire events for one stream, in order.

    The chat's stream slot is released when the generator finishes, whether
    it ends cleanly, fails, or is closed by a disconnect.
    """
    try:
        yield WireEvent.of(EventType.USER_MESSAGE, ctx.user_message.to_echo())

        try:
            stop = await _check_gates(ctx)
        except Exception:
            logger.exception("Entitlement check failed for chat %s", ctx.chat_id)
            yield _fallback_error()
            return
        if stop is not None:
            yield stop
            return

        yield WireEvent.of(EventType.AI_TYPING, Typing(typing=True))

        buffer: list[str] = []
        failed = False
        completion: dict[str, Any] = {}

        try:
            async with aclosing(
                agent.stream_message(
                    ctx.content, ctx.history, ctx.user_id, ctx.research_mode
                )
            ) as events:
                async for event in events:
                    if event.type == "complete":
                        completion = event.metadata or {}
                        break
                    if event.type == "error":
                        raise AgentError(event.content or "agent reported an error")
                    for wire in transcode(event):
                        if wire.type is EventType.AI_CHUNK:
                            buffer.append(wire.data.get("content", ""))
                        yield wire
        except Exception:
            logger.exception("Agent stream failed for chat %s", ctx.chat_id)
            failed = True

        if failed:
            content = settings.fallback_error_message
            metadata: dict[str, Any] = {
                "model": agent.model,
                "streaming": True,
                "researchMode": ctx.research_mode,
                "error": True,
            }
        else:
            content = "".join(buffer)
            metadata = {
                "model": agent.model,
                "streaming": True,
                "researchMode": ctx.research_mode,
                **({"usage": completion} if completion else {}),
            }

        try:
            # Once started, the write finishes even if the client leaves mid-way
            await asyncio.shield(_persist_assistant_message(ctx, content, metadata))
        except Exception:
            logger.exception("Failed to persist assistant message for chat %s", ctx.chat_id)
            failed = True

        if failed:
            yield _fallback_error()
        else:
            yield WireEvent.of(EventType.COMPLETE, Complete(success=True))
    finally:
        release_chat(ctx.chat_id)
