"""Event transcoder — internal agent events to wire events.

One internal event may fan out to several wire events (legacy aliases kept
for older clients). Unknown internal types are dropped with a warning so a
new agent event never breaks a running stream.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from agentstream.events import (
    AgentEvent,
    ContentDelta,
    EventType,
    Processing,
    SearchMetadata,
    SearchUpdate,
    ThinkingMetadata,
    ThinkingUpdate,
    ToolCall,
    ToolUse,
    WireEvent,
)

logger = logging.getLogger(__name__)

Handler = Callable[[AgentEvent], list[WireEvent]]
M = TypeVar("M", bound=BaseModel)

# Internal types the relay consumes itself; they never reach the transcoder output
TERMINAL_AGENT_TYPES = frozenset({"complete", "error"})


def _metadata(model: type[M], raw: dict[str, Any]) -> M:
    try:
        return model.model_validate(raw)
    except ValidationError:
        logger.warning("Passing through metadata that does not match %s: %r", model.__name__, raw)
        return model.model_construct(**raw)


def _content(event: AgentEvent, default: str = "") -> str:
    return event.content if event.content is not None else default


def _thinking(wire_type: EventType) -> Handler:
    def handle(event: AgentEvent) -> list[WireEvent]:
        metadata = _metadata(ThinkingMetadata, event.metadata) if event.metadata else None
        return [
            WireEvent.of(
                wire_type,
                ThinkingUpdate(content=_content(event, wire_type.value), metadata=metadata),
            )
        ]
    return handle


def _search(wire_type: EventType, phase: str | None = None) -> Handler:
    def handle(event: AgentEvent) -> list[WireEvent]:
        raw = dict(event.metadata or {})
        if phase is not None:
            raw["phase"] = phase
        metadata = _metadata(SearchMetadata, raw) if raw else None
        return [
            WireEvent.of(
                wire_type,
                SearchUpdate(content=_content(event, wire_type.value), metadata=metadata),
            )
        ]
    return handle


def _content_delta(event: AgentEvent) -> list[WireEvent]:
    return [WireEvent.of(EventType.AI_CHUNK, ContentDelta(content=_content(event)))]


def _agent_thought(event: AgentEvent) -> list[WireEvent]:
    metadata = dict(event.metadata or {})
    thought = WireEvent(
        type=EventType.AGENT_THOUGHT,
        data={"content": _content(event), "metadata": metadata},
    )
    mirrored = dict(metadata)
    mirrored.setdefault("phase", "agent_thought")
    return [
        thought,
        WireEvent.of(
            EventType.THINKING_STREAM,
            ThinkingUpdate(
                content=_content(event, "Thinking..."),
                metadata=_metadata(ThinkingMetadata, mirrored),
            ),
        ),
    ]


def _tool(wire_type: EventType) -> Handler:
    def handle(event: AgentEvent) -> list[WireEvent]:
        metadata = event.metadata or {}
        tool = str(metadata.get("tool") or _content(event) or "tool")
        return [WireEvent.of(wire_type, ToolCall(tool=tool, metadata=metadata or None))]
    return handle


def _tool_use(event: AgentEvent) -> list[WireEvent]:
    return [
        WireEvent.of(
            EventType.AI_TOOL_USE,
            ToolUse(content=_content(event), metadata=event.metadata),
        )
    ]


def _processing(event: AgentEvent) -> list[WireEvent]:
    payload = Processing(content=_content(event), metadata=event.metadata)
    return [
        WireEvent.of(EventType.AGENT_PROCESSING, payload),
        WireEvent.of(EventType.AI_THINKING, payload),
    ]


TRANSCODE_TABLE: dict[str, Handler] = {
    "content": _content_delta,
    "thinking_stream": _thinking(EventType.THINKING_STREAM),
    "memory_access": _thinking(EventType.MEMORY_ACCESS),
    "context_analysis": _thinking(EventType.CONTEXT_ANALYSIS),
    "search_result_analysis": _thinking(EventType.SEARCH_RESULT_ANALYSIS),
    "context_synthesis": _thinking(EventType.CONTEXT_SYNTHESIS),
    "response_planning": _thinking(EventType.RESPONSE_PLANNING),
    "search_planning": _search(EventType.SEARCH_PLANNING),
    "search_start": _search(EventType.SEARCH_START),
    "search_progress": _search(EventType.SEARCH_PROGRESS),
    "search_detailed": _search(EventType.SEARCH_DETAILED),
    "website_scraping": _search(EventType.WEBSITE_SCRAPING),
    "search_complete": _search(EventType.SEARCH_DETAILED, phase="search_complete"),
    "agent_thought": _agent_thought,
    "tool_call": _tool(EventType.TOOL_CALL),
    "tool_result": _tool(EventType.TOOL_RESULT),
    "tool_use": _tool_use,
    "agent_processing": _processing,
}


def transcode(event: AgentEvent) -> list[WireEvent]:
    """Map one internal agent event to zero or more wire events."""
    if event.type in TERMINAL_AGENT_TYPES:
        return []
    handler = TRANSCODE_TABLE.get(event.type)
    if handler is None:
        logger.warning("Dropping unknown agent event type %r", event.type)
        return []
    try:
        return handler(event)
    except ValidationError as e:
        logger.warning("Dropping %r event with bad fields: %s", event.type, e)
        return []
