"""Agent layer: the event source behind every stream.

The critical interface is ``AgentCore.stream_message()``, an async generator
yielding internal ``AgentEvent``s. The transcoder and relay consume this
interface; they never need to change regardless of what powers the agent.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Protocol

from agentstream.events import AgentEvent

from .claude import AgentError, ClaudeAgent

__all__ = ["AgentCore", "AgentError", "ClaudeAgent", "HistoryItem", "get_agent"]

HistoryItem = dict[str, str]


class AgentCore(Protocol):
    model: str

    def stream_message(
        self,
        message: str,
        history: list[HistoryItem],
        user_id: str,
        research_mode: bool = False,
    ) -> AsyncGenerator[AgentEvent, None]:
        """Yield internal events for one user message, in emission order."""
        ...


_agent: ClaudeAgent | None = None


def get_agent() -> AgentCore:
    """FastAPI dependency returning the process-wide agent."""
    global _agent
    if _agent is None:
        _agent = ClaudeAgent()
    return _agent
