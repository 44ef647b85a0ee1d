"""Claude Agent SDK implementation of the agent core.

Each stream gets its own ``ClaudeSDKClient``, connected and drained inside
the consuming task. SDK messages are translated into internal events:
text deltas become ``content``, web tools become the search/scraping phase
events the progress panel understands, and the final ``ResultMessage``
becomes ``complete``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ResultMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from claude_agent_sdk.types import StreamEvent

from agentstream.config import settings
from agentstream.events import AgentEvent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a helpful research assistant. Provide concise, accurate responses.
Use web search when the question needs current information, and cite the
sources you relied on.
"""

RESEARCH_PROMPT = """\
Deep research mode is on. Search broadly, read the most relevant pages in
full, cross-check facts between sources, and write a comprehensive answer
with citations.
"""

WEB_SEARCH_TOOL = "WebSearch"
WEB_FETCH_TOOL = "WebFetch"

DISALLOWED_TOOLS = ["Bash", "Write", "Edit", "MultiEdit", "NotebookEdit", "Task"]


class AgentError(Exception):
    """The agent core failed to produce a response."""


def _stderr_callback(line: str) -> None:
    """Capture CLI subprocess stderr for debugging."""
    logger.warning("CLI stderr: %s", line)


def build_options(research_mode: bool) -> ClaudeAgentOptions:
    """Build ClaudeAgentOptions for one stream."""
    tools = [WEB_SEARCH_TOOL, WEB_FETCH_TOOL] if research_mode else [WEB_SEARCH_TOOL]
    system_prompt = SYSTEM_PROMPT + ("\n" + RESEARCH_PROMPT if research_mode else "")
    return ClaudeAgentOptions(
        system_prompt=system_prompt,
        model=settings.anthropic_model,
        allowed_tools=tools,
        disallowed_tools=DISALLOWED_TOOLS,
        max_turns=settings.research_max_turns if research_mode else settings.max_turns,
        include_partial_messages=True,
        env={"ANTHROPIC_API_KEY": settings.anthropic_api_key},
        stderr=_stderr_callback,
    )


def build_prompt(message: str, history: list[dict[str, str]]) -> str:
    """Flatten recent history and the new message into a single prompt."""
    if not history:
        return message
    lines = []
    for item in history[-settings.history_limit:]:
        speaker = "User" if item.get("role") == "user" else "Assistant"
        lines.append(f"{speaker}: {item.get('content', '')}")
    return (
        "Conversation so far:\n"
        + "\n".join(lines)
        + f"\n\nUser: {message}"
    )


def _result_text(content: Any) -> str:
    """Flatten ToolResultBlock content (str or list of content parts) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
        else:
            parts.append(json.dumps(part))
    return "\n".join(parts)


class SDKEventTranslator:
    """Stateful translation of SDK messages into internal agent events."""

    def __init__(self) -> None:
        self._tool_uses: dict[str, ToolUseBlock] = {}
        self._has_streamed_text = False
        self._searched = False
        self._site_index = 0
        self._tool_count = 0

    def translate(self, msg: Any) -> list[AgentEvent]:
        if isinstance(msg, StreamEvent):
            return self._stream_event(msg)
        if isinstance(msg, AssistantMessage):
            return self._blocks(msg.content)
        if isinstance(msg, UserMessage):
            if isinstance(msg.content, str):
                return []
            return self._blocks(msg.content)
        if isinstance(msg, ResultMessage):
            return self._result(msg)
        return []

    # --- Streaming partial events ---

    def _stream_event(self, msg: StreamEvent) -> list[AgentEvent]:
        event = msg.event
        # Only the top-level agent's text reaches the user
        if event.get("type") != "content_block_delta" or msg.parent_tool_use_id:
            return []
        delta = event.get("delta", {})
        if delta.get("type") == "text_delta":
            self._has_streamed_text = True
            return [AgentEvent(type="content", content=delta.get("text", ""))]
        if delta.get("type") == "thinking_delta":
            return [
                AgentEvent(
                    type="thinking_stream",
                    content=delta.get("thinking", ""),
                    metadata={"phase": "reasoning"},
                )
            ]
        return []

    # --- Full content blocks ---

    def _blocks(self, blocks: list[Any]) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        for block in blocks:
            if isinstance(block, TextBlock):
                # Deltas already carried this text
                if not self._has_streamed_text:
                    events.append(AgentEvent(type="content", content=block.text))
                self._has_streamed_text = False
            elif isinstance(block, ThinkingBlock):
                continue
            elif isinstance(block, ToolUseBlock):
                self._has_streamed_text = False
                self._tool_count += 1
                self._tool_uses[block.id] = block
                events.extend(self._tool_use(block))
            elif isinstance(block, ToolResultBlock):
                events.extend(self._tool_result(block))
        return events

    def _tool_use(self, block: ToolUseBlock) -> list[AgentEvent]:
        tool_input = block.input or {}
        events: list[AgentEvent] = []
        if block.name == WEB_SEARCH_TOOL:
            self._searched = True
            query = tool_input.get("query", "")
            events += [
                AgentEvent(
                    type="thinking_stream",
                    content="Evaluating whether current information is needed...",
                    metadata={"phase": "tool_consideration", "tool": "web_search"},
                ),
                AgentEvent(
                    type="search_planning",
                    content=f'Planning search strategy for: "{query}"',
                    metadata={"tool": "web_search", "query": query},
                ),
                AgentEvent(
                    type="search_start",
                    content=f"Searching the web for: {query}",
                    metadata={"tool": "web_search", "query": query, "phase": "search_start"},
                ),
            ]
        elif block.name == WEB_FETCH_TOOL:
            self._searched = True
            self._site_index += 1
            url = tool_input.get("url", "")
            events.append(
                AgentEvent(
                    type="website_scraping",
                    content=f"Reading {url}",
                    metadata={
                        "tool": "web_search",
                        "url": url,
                        "phase": "scraping_start",
                        "siteIndex": self._site_index,
                    },
                )
            )
        events.append(
            AgentEvent(
                type="tool_call",
                content=block.name,
                metadata={"tool": block.name, "status": "executing", "input": tool_input},
            )
        )
        return events

    def _tool_result(self, block: ToolResultBlock) -> list[AgentEvent]:
        tool_use = self._tool_uses.pop(block.tool_use_id, None)
        name = tool_use.name if tool_use else "tool"
        text = _result_text(block.content)
        events: list[AgentEvent] = []
        if name == WEB_SEARCH_TOOL:
            events.append(
                AgentEvent(
                    type="search_detailed",
                    content="Found results, analyzing content...",
                    metadata={"tool": "web_search", "phase": "results_found"},
                )
            )
        elif name == WEB_FETCH_TOOL:
            url = (tool_use.input or {}).get("url", "") if tool_use else ""
            if block.is_error:
                events.append(
                    AgentEvent(
                        type="website_scraping",
                        content=f"Could not read {url}",
                        metadata={"tool": "web_search", "url": url, "phase": "scraping_error"},
                    )
                )
            else:
                events.append(
                    AgentEvent(
                        type="website_scraping",
                        content=f"Read {url}",
                        metadata={
                            "tool": "web_search",
                            "url": url,
                            "phase": "scraping_success",
                            "contentLength": len(text),
                        },
                    )
                )
        events.append(
            AgentEvent(
                type="tool_result",
                content=name,
                metadata={
                    "tool": name,
                    "resultSize": len(text),
                    "isError": bool(block.is_error),
                },
            )
        )
        return events

    # --- Final result ---

    def _result(self, msg: ResultMessage) -> list[AgentEvent]:
        if msg.is_error:
            raise AgentError(f"Agent run failed ({msg.subtype})")
        events: list[AgentEvent] = []
        if self._searched:
            events.append(
                AgentEvent(
                    type="search_complete",
                    content="Research complete",
                    metadata={"tool": "web_search"},
                )
            )
        events.append(
            AgentEvent(
                type="context_synthesis",
                content="Synthesizing the final response",
                metadata={"phase": "synthesis", "toolCount": self._tool_count},
            )
        )
        usage = msg.usage or {}
        events.append(
            AgentEvent(
                type="complete",
                metadata={
                    "durationMs": msg.duration_ms,
                    "numTurns": msg.num_turns,
                    "inputTokens": usage.get("input_tokens", 0),
                    "outputTokens": usage.get("output_tokens", 0),
                },
            )
        )
        return events


class ClaudeAgent:
    """Agent core backed by the Claude Agent SDK."""

    def __init__(self) -> None:
        self.model = settings.anthropic_model

    async def stream_message(
        self,
        message: str,
        history: list[dict[str, str]],
        user_id: str,
        research_mode: bool = False,
    ) -> AsyncGenerator[AgentEvent, None]:
        if not settings.anthropic_configured:
            raise AgentError("Anthropic API key not configured")

        yield AgentEvent(
            type="thinking_stream",
            content="Analyzing your question...",
            metadata={"phase": "initial_analysis"},
        )
        if history:
            yield AgentEvent(
                type="memory_access",
                content=f"Reviewing {len(history)} earlier messages",
                metadata={"relevantCount": len(history)},
            )

        translator = SDKEventTranslator()
        client = ClaudeSDKClient(options=build_options(research_mode))
        await client.connect()
        try:
            await client.query(build_prompt(message, history), session_id=user_id)
            async for msg in client.receive_response():
                for event in translator.translate(msg):
                    yield event
        finally:
            try:
                await client.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting agent client for %s: %s", user_id, e)
