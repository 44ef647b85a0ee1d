"""Turn an SSE byte stream back into agent state.

Bytes are decoded incrementally, split into blank-line-terminated frames,
and each frame body is parsed into a ``FrameResult``. Good frames are routed
into typed buffers (thinking steps, search steps, tool usage, content);
bad frames are logged and kept in ``parse_errors``; nothing a single frame
contains can abort the read loop.
"""

from __future__ import annotations

import codecs
import json
import logging
import time
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from agentstream.client.grouping import WebsiteGroup, group_websites
from agentstream.client.progress import ProgressEstimate, estimate_progress
from agentstream.client.steps import SearchStep, ThinkingStep, ToolUsage
from agentstream.events import (
    SEARCH_EVENT_TYPES,
    TERMINAL_EVENT_TYPES,
    THINKING_EVENT_TYPES,
    EventType,
    WireEvent,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


# ---------------------------------------------------------------------------
# Frame parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParseError:
    raw: str
    reason: str
    is_json: bool


@dataclass(frozen=True)
class FrameResult:
    """Outcome of parsing one frame body: an event, an error, or the sentinel."""
    event: WireEvent | None = None
    error: ParseError | None = None
    done: bool = False

    @property
    def ok(self) -> bool:
        return self.event is not None


def parse_frame(body: str) -> FrameResult:
    """Parse one frame body. Never raises."""
    if body.strip() == DONE_SENTINEL:
        return FrameResult(done=True)
    try:
        payload = json.loads(body)
    except ValueError:
        return FrameResult(error=ParseError(body, "not JSON", is_json=False))
    if not isinstance(payload, dict):
        return FrameResult(error=ParseError(body, "frame is not an object", is_json=True))
    try:
        return FrameResult(event=WireEvent.model_validate(payload))
    except ValidationError as e:
        return FrameResult(
            error=ParseError(body, f"invalid event: {e.error_count()} errors", is_json=True)
        )


class SSEFrameParser:
    """Incremental UTF-8 SSE splitter yielding the data body of each frame."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._held_cr = False

    def feed(self, chunk: bytes) -> list[str]:
        text = self._decoder.decode(chunk)
        if self._held_cr:
            text = "\r" + text
            self._held_cr = False
        # A CR at the end may be the first half of a CRLF
        if text.endswith("\r"):
            text = text[:-1]
            self._held_cr = True
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")

        blocks = self._buffer.split("\n\n")
        self._buffer = blocks.pop()
        bodies = []
        for block in blocks:
            body = self._data_of(block)
            if body is not None:
                bodies.append(body)
        return bodies

    def pending(self) -> str:
        """Text received after the last complete frame."""
        return self._buffer

    def flush(self) -> list[str]:
        """Return the data body of an unterminated final frame, if any."""
        text = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        self._held_cr = False
        body = self._data_of(text.replace("\r\n", "\n").replace("\r", "\n"))
        return [body] if body is not None else []

    @staticmethod
    def _data_of(block: str) -> str | None:
        data_lines = []
        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if name != "data":
                continue
            data_lines.append(value[1:] if value.startswith(" ") else value)
        if not data_lines:
            return None
        return "\n".join(data_lines)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _search_type_for_phase(phase: str | None) -> str:
    if phase == "search_start":
        return "start"
    if phase == "search_complete":
        return "complete"
    return "progress"


class StreamRequestError(Exception):
    """The server refused the stream before it opened (plain HTTP error)."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ClientEventAggregator:
    """Accumulates one chat stream into thinking/search/tool/content state."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._parser = SSEFrameParser()
        self._seq = 0

        self.thinking_steps: list[ThinkingStep] = []
        self.search_steps: list[SearchStep] = []
        self.tools: list[ToolUsage] = []
        self.content = ""
        self.latest_delta = ""
        self.user_message: dict[str, Any] | None = None
        self.is_active = False
        self.terminal: EventType | None = None
        self.error_message: str | None = None
        self.pro_required = False
        self.parse_errors: list[ParseError] = []
        self.done = False

    # --- Feeding ---

    def feed(self, chunk: bytes) -> list[FrameResult]:
        """Process a chunk of bytes; return the frames completed by it."""
        results = []
        for body in self._parser.feed(chunk):
            if self.done:
                break
            result = parse_frame(body)
            self._apply(result)
            results.append(result)
        return results

    async def consume(self, chunks: AsyncIterable[bytes]) -> None:
        """Read until the stream ends or the ``[DONE]`` sentinel arrives."""
        async for chunk in chunks:
            self.feed(chunk)
            if self.done:
                break
        if not self.done:
            self._apply_final(self._parser.flush())
        self.is_active = False

    def _apply_final(self, bodies: list[str]) -> None:
        # Last frame without its blank line: kept if it is a whole event
        for body in bodies:
            result = parse_frame(body)
            if result.error is not None and not result.error.is_json:
                logger.warning("Stream ended mid-frame: %r", body[:200])
                self.parse_errors.append(result.error)
            else:
                self._apply(result)

    def _apply(self, result: FrameResult) -> None:
        if result.done:
            self.done = True
            return
        if result.error is not None:
            logger.warning("Skipping malformed frame (%s): %r", result.error.reason, result.error.raw[:200])
            self.parse_errors.append(result.error)
            if not result.error.is_json:
                self.content += result.error.raw
            return
        if result.event is None:
            return
        try:
            self._route(result.event)
        except ValidationError as e:
            raw = result.event.to_json()
            logger.warning("Skipping frame with bad fields (%s): %r", result.event.type.value, raw[:200])
            self.parse_errors.append(
                ParseError(raw, f"invalid {result.event.type.value} fields: {e.error_count()} errors", is_json=True)
            )

    # --- Routing ---

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    def _route(self, event: WireEvent) -> None:
        data = event.data
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else None
        kind = event.type

        if kind is EventType.USER_MESSAGE:
            self.user_message = data
            self.is_active = True
        elif kind is EventType.AI_CHUNK:
            chunk = data.get("content")
            if isinstance(chunk, str) and chunk:
                self.content += chunk
                self.latest_delta = chunk
        elif kind is EventType.AI_TYPING:
            self.is_active = bool(data.get("typing", True))
        elif kind in (EventType.AI_THINKING, EventType.AGENT_PROCESSING):
            self.is_active = True
        elif kind in THINKING_EVENT_TYPES:
            self._add_thinking(kind, data, metadata)
        elif kind in SEARCH_EVENT_TYPES:
            self._route_search(kind, data, metadata)
        elif kind is EventType.AGENT_THOUGHT:
            # Mirrored as thinking_stream by the server
            pass
        elif kind is EventType.TOOL_CALL:
            meta = metadata or {}
            tool_input = meta.get("input") if isinstance(meta.get("input"), dict) else {}
            self._tool_started(data.get("tool") or "tool", meta.get("query") or tool_input.get("query"))
        elif kind is EventType.AI_TOOL_USE:
            self._tool_started((metadata or {}).get("tool") or "tool", data.get("content"))
        elif kind is EventType.TOOL_RESULT:
            self._tool_finished(data.get("tool") or (metadata or {}).get("tool") or "tool", metadata or {})
        elif kind in TERMINAL_EVENT_TYPES:
            self._finish(kind, data, metadata)

    def _route_search(
        self, kind: EventType, data: dict[str, Any], metadata: dict[str, Any] | None
    ) -> None:
        if kind is EventType.SEARCH_PLANNING:
            self._add_search("planning", "search-plan", data, metadata, "Planning search")
        elif kind is EventType.SEARCH_START:
            self._add_search("start", "search-start", data, metadata, "Starting search")
        elif kind is EventType.SEARCH_PROGRESS:
            self._add_search("progress", "search-progress", data, metadata, "Searching...")
        elif kind is EventType.SEARCH_DETAILED:
            phase = (metadata or {}).get("phase")
            self._add_search(
                _search_type_for_phase(phase), "search-detailed", data, metadata, "Searching..."
            )
        elif kind is EventType.WEBSITE_SCRAPING:
            self._add_search("progress", "website-scraping", data, metadata, "Scraping website")

    def _finish(
        self, kind: EventType, data: dict[str, Any], metadata: dict[str, Any] | None
    ) -> None:
        if kind is EventType.ERROR:
            self.error_message = data.get("message") or "Something went wrong."
            self.pro_required = bool((metadata or {}).get("proRequired"))
        elif kind is EventType.LIMIT_EXCEEDED:
            self.error_message = data.get("message") or "Message limit reached. Please upgrade."
        self.terminal = kind
        self.is_active = False

    def _add_thinking(
        self, kind: EventType, data: dict[str, Any], metadata: dict[str, Any] | None
    ) -> None:
        content = data.get("content") or ("Thinking..." if kind is EventType.THINKING_STREAM else kind.value)
        if kind is EventType.THINKING_STREAM and self.thinking_steps:
            last = self.thinking_steps[-1]
            if last.type == "thinking_stream" and last.content == content:
                return
        self.thinking_steps.append(
            ThinkingStep(
                id=self._next_id(kind.value),
                type=kind.value,
                content=str(content),
                phase=(metadata or {}).get("phase"),
                timestamp=self._clock(),
                metadata=metadata,
            )
        )
        self.is_active = True

    def _add_search(
        self,
        step_type: str,
        prefix: str,
        data: dict[str, Any],
        metadata: dict[str, Any] | None,
        default_content: str,
    ) -> None:
        meta = metadata or {}
        quality = meta.get("quality")
        url = meta.get("url")
        self.search_steps.append(
            SearchStep(
                id=self._next_id(prefix),
                type=step_type,
                tool=str(meta.get("tool") or "web_search"),
                content=str(data.get("content") or default_content),
                url=url if isinstance(url, str) and url else None,
                progress=_number(meta.get("progress")),
                quality=str(quality) if quality is not None else None,
                timestamp=self._clock(),
                metadata=metadata,
            )
        )
        if step_type != "complete":
            self.is_active = True

    def _tool_started(self, tool: str, query: Any) -> None:
        self.tools.append(
            ToolUsage(tool=tool, status="executing", query=str(query) if query else None)
        )
        self.is_active = True

    def _tool_finished(self, tool: str, metadata: dict[str, Any]) -> None:
        size = metadata.get("resultSize") or metadata.get("resultCount")
        result_size = int(size) if isinstance(size, (int, float)) else None
        duration = _number(metadata.get("duration"))
        for index in range(len(self.tools) - 1, -1, -1):
            usage = self.tools[index]
            if usage.tool == tool and usage.status == "executing":
                self.tools[index] = usage.model_copy(
                    update={"status": "complete", "result_size": result_size, "duration": duration}
                )
                return
        self.tools.append(
            ToolUsage(tool=tool, status="complete", result_size=result_size, duration=duration)
        )

    # --- Derived views ---

    @property
    def total_steps(self) -> int:
        return len(self.thinking_steps) + len(self.search_steps)

    def progress(self) -> ProgressEstimate:
        return estimate_progress(self.thinking_steps, self.search_steps)

    def websites(self, *, soft_failure_presentation: bool = True) -> dict[str, WebsiteGroup]:
        return group_websites(
            self.search_steps, soft_failure_presentation=soft_failure_presentation
        )


async def stream_chat(
    client: httpx.AsyncClient,
    chat_id: str,
    content: str,
    *,
    token: str,
    research_mode: bool = False,
    aggregator: ClientEventAggregator | None = None,
) -> ClientEventAggregator:
    """POST a message to the stream endpoint and aggregate the response.

    Raises StreamRequestError for pre-stream HTTP failures. A connection that
    drops mid-stream ends as an ``error`` terminal state instead.
    """
    aggregator = aggregator or ClientEventAggregator()
    async with client.stream(
        "POST",
        f"/api/chat/{chat_id}/stream",
        json={"content": content, "deepResearchMode": research_mode},
        headers={
            "Authorization": f"Bearer {token}",
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        },
    ) as response:
        if response.status_code != 200:
            await response.aread()
            raise StreamRequestError(response.status_code, response.text)
        try:
            await aggregator.consume(response.aiter_bytes())
        except httpx.TransportError as e:
            logger.warning("Stream for chat %s dropped: %s", chat_id, e)
            if aggregator.terminal is None:
                aggregator.error_message = "Connection lost"
                aggregator.terminal = EventType.ERROR
            aggregator.is_active = False
    return aggregator
