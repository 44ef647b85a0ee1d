"""Event taxonomy — the wire contract shared by the relay and the client.

Every SSE frame carries one ``WireEvent``: ``{"type": <EventType>, "data": <payload>}``.
Payload models serialize with camelCase keys; metadata objects accept extra
keys because the agent attaches free-form context (tool, query, progress...).
Changes here require coordinating with ``agentstream.client``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Closed set of wire event types."""

    USER_MESSAGE = "user_message"
    AI_TYPING = "ai_typing"
    THINKING_STREAM = "thinking_stream"
    MEMORY_ACCESS = "memory_access"
    CONTEXT_ANALYSIS = "context_analysis"
    SEARCH_PLANNING = "search_planning"
    SEARCH_START = "search_start"
    SEARCH_PROGRESS = "search_progress"
    SEARCH_DETAILED = "search_detailed"
    WEBSITE_SCRAPING = "website_scraping"
    SEARCH_RESULT_ANALYSIS = "search_result_analysis"
    CONTEXT_SYNTHESIS = "context_synthesis"
    RESPONSE_PLANNING = "response_planning"
    AGENT_THOUGHT = "agent_thought"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_PROCESSING = "agent_processing"
    AI_CHUNK = "ai_chunk"
    COMPLETE = "complete"
    ERROR = "error"
    LIMIT_EXCEEDED = "limit_exceeded"
    AI_THINKING = "ai_thinking"
    AI_TOOL_USE = "ai_tool_use"


# Wire types that become ThinkingSteps on the client
THINKING_EVENT_TYPES = frozenset({
    EventType.THINKING_STREAM,
    EventType.MEMORY_ACCESS,
    EventType.CONTEXT_ANALYSIS,
    EventType.SEARCH_RESULT_ANALYSIS,
    EventType.CONTEXT_SYNTHESIS,
    EventType.RESPONSE_PLANNING,
})

# Wire types that become SearchSteps on the client
SEARCH_EVENT_TYPES = frozenset({
    EventType.SEARCH_PLANNING,
    EventType.SEARCH_START,
    EventType.SEARCH_PROGRESS,
    EventType.SEARCH_DETAILED,
    EventType.WEBSITE_SCRAPING,
})

TERMINAL_EVENT_TYPES = frozenset({
    EventType.COMPLETE,
    EventType.ERROR,
    EventType.LIMIT_EXCEEDED,
})


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _Metadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class ContentDelta(_WireModel):
    """data for ai_chunk"""
    content: str


class ThinkingMetadata(_Metadata):
    phase: str | None = None
    duration: float | None = None
    tool_count: int | None = Field(default=None, alias="toolCount")
    relevant_count: int | None = Field(default=None, alias="relevantCount")


class ThinkingUpdate(_WireModel):
    """data for thinking_stream and the other reasoning-phase events"""
    content: str
    metadata: ThinkingMetadata | None = None


class SearchMetadata(_Metadata):
    phase: str | None = None
    url: str | None = None
    title: str | None = None
    total_results: int | None = Field(default=None, alias="totalResults")
    content_length: int | None = Field(default=None, alias="contentLength")
    quality_score: float | None = Field(default=None, alias="qualityScore")


class SearchUpdate(_WireModel):
    """data for search_* and website_scraping"""
    content: str
    metadata: SearchMetadata | None = None


class ToolCall(_WireModel):
    """data for tool_call and tool_result"""
    tool: str
    metadata: dict[str, Any] | None = None


class ToolUse(_WireModel):
    """data for the legacy ai_tool_use"""
    content: str
    metadata: dict[str, Any] | None = None


class Typing(_WireModel):
    """data for ai_typing"""
    typing: bool


class Processing(_WireModel):
    """data for agent_processing / ai_thinking"""
    content: str = ""
    metadata: dict[str, Any] | None = None


class LimitExceeded(_WireModel):
    """data for limit_exceeded"""
    message: str


class ErrorEvent(_WireModel):
    """data for error"""
    message: str
    metadata: dict[str, Any] | None = None


class ProRequired(ErrorEvent):
    """Research-mode gate failure, sent as an error event."""
    metadata: dict[str, Any] | None = Field(default_factory=lambda: {"proRequired": True})


class Complete(_WireModel):
    """data for complete"""
    success: bool = True


class UserMessageEcho(_WireModel):
    """data for user_message: the persisted message, echoed back."""
    id: str
    chat_id: str = Field(alias="chatId")
    role: str
    content: str
    metadata: dict[str, Any] | None = None
    created_at: str = Field(alias="createdAt")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class WireEvent(BaseModel):
    """One SSE frame body."""
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def of(cls, event_type: EventType, payload: BaseModel) -> WireEvent:
        return cls(
            type=event_type,
            data=payload.model_dump(by_alias=True, exclude_none=True),
        )

    def to_json(self) -> str:
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Internal agent events
# ---------------------------------------------------------------------------

class AgentEvent(BaseModel):
    """Internal event yielded by an agent core, before transcoding.

    ``type`` is a plain string; agents may emit types the transcoder
    does not know.
    """
    type: str
    content: str | None = None
    metadata: dict[str, Any] | None = None
