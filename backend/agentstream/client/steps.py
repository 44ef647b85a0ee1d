"""Client-side step records rebuilt from the wire stream.

Steps are immutable and only ever appended; arrival order is the agent's
emission order.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

ThinkingStepType = Literal[
    "thinking_stream",
    "memory_access",
    "context_analysis",
    "search_planning",
    "search_result_analysis",
    "context_synthesis",
    "response_planning",
]

SearchStepType = Literal["planning", "start", "progress", "analysis", "complete"]


class _Step(BaseModel):
    model_config = ConfigDict(frozen=True)


class ThinkingStep(_Step):
    id: str
    type: ThinkingStepType
    content: str
    phase: str | None = None
    timestamp: float
    metadata: dict[str, Any] | None = None


class SearchStep(_Step):
    id: str
    type: SearchStepType
    tool: str
    content: str
    url: str | None = None
    progress: float | None = None
    quality: str | None = None
    timestamp: float
    metadata: dict[str, Any] | None = None

    @property
    def phase(self) -> str | None:
        return (self.metadata or {}).get("phase")


class ToolUsage(_Step):
    tool: str
    status: Literal["executing", "complete"]
    query: str | None = None
    result_size: int | None = None
    duration: float | None = None
