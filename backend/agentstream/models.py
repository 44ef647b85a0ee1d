"""Pydantic models — request/response shapes and persisted records.

SSE payload shapes live in ``agentstream.events``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from agentstream.events import UserMessageEcho


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class StreamRequest(BaseModel):
    """POST /api/chat/{chat_id}/stream request body.

    ``content`` is validated in the route so a missing message is a 400,
    not a 422.
    """
    model_config = ConfigDict(populate_by_name=True)

    content: str | None = None
    deep_research_mode: bool = Field(default=False, alias="deepResearchMode")


class ChatCreate(BaseModel):
    """POST /api/chats request body."""
    title: str | None = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ChatResponse(BaseModel):
    """Chat metadata returned by the chat endpoints."""
    id: str
    user_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0


class HealthResponse(BaseModel):
    """GET /api/health response."""
    status: Literal["ok", "degraded"]
    version: str = "0.1.0"
    anthropic_configured: bool
    redis_connected: bool


# ---------------------------------------------------------------------------
# Persistence models
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """A single message in a chat."""
    id: str
    chat_id: str
    role: Literal["user", "assistant"]
    content: str
    metadata: dict[str, Any] | None = None
    created_at: datetime

    def to_echo(self) -> UserMessageEcho:
        return UserMessageEcho(
            id=self.id,
            chat_id=self.chat_id,
            role=self.role,
            content=self.content,
            metadata=self.metadata,
            created_at=self.created_at.isoformat(),
        )
