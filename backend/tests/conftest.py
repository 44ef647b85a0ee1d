"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient

from agentstream import chat_store, relay
from agentstream.agents import get_agent
from agentstream.main import app

from tests.scripted import ScriptedAgent


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
async def setup_test_db(tmp_path):
    """Initialize a fresh SQLite database for each test."""
    from agentstream.database import init_db
    import agentstream.database as db_mod

    db_file = str(tmp_path / "test.db")
    with patch.object(db_mod, "settings") as mock_s:
        mock_s.database_url = f"sqlite:///{db_file}"
        await init_db()

    yield


@pytest.fixture(autouse=True)
async def setup_test_redis():
    """Provide a fake Redis instance for each test."""
    import agentstream.redis_client as redis_mod

    fake = fakeredis.aioredis.FakeRedis(decode_responses=True)
    redis_mod._redis = fake
    yield
    await fake.aclose()
    redis_mod._redis = None


@pytest.fixture(autouse=True)
def clear_stream_registry():
    relay._active_chats.clear()
    yield
    relay._active_chats.clear()


# ---------------------------------------------------------------------------
# Users, chats, agents
# ---------------------------------------------------------------------------


@pytest.fixture
async def user_token() -> str:
    return await chat_store.create_api_token("user-1")


@pytest.fixture
def auth_headers(user_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
async def chat():
    return await chat_store.create_chat("user-1", "Test chat")


@pytest.fixture
async def pro_user():
    await chat_store.set_subscription("user-1", "pro", "active")


@pytest.fixture
def scripted_agent():
    """Override the agent dependency with a ScriptedAgent.

    Usage:
        def test_stream(scripted_agent):
            scripted_agent.script = [AgentEvent(type="content", content="Hi")]
    """
    agent = ScriptedAgent()
    app.dependency_overrides[get_agent] = lambda: agent
    yield agent
    app.dependency_overrides.pop(get_agent, None)


# ---------------------------------------------------------------------------
# Mock helpers for Claude Agent SDK
# ---------------------------------------------------------------------------


def make_mock_assistant_message(
    text: str = "Hello from Claude!",
    model: str = "claude-sonnet-4-5-20250929",
):
    """Create a mock AssistantMessage with a single TextBlock."""
    from claude_agent_sdk import AssistantMessage, TextBlock

    return AssistantMessage(
        content=[TextBlock(text=text)],
        model=model,
    )


def make_mock_result_message(
    input_tokens: int = 25,
    output_tokens: int = 10,
    is_error: bool = False,
    session_id: str = "test-session",
):
    """Create a mock ResultMessage with usage data."""
    from claude_agent_sdk import ResultMessage

    return ResultMessage(
        subtype="error_during_execution" if is_error else "success",
        duration_ms=500,
        duration_api_ms=400,
        is_error=is_error,
        num_turns=1,
        session_id=session_id,
        total_cost_usd=0.01,
        usage={
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
        },
    )


def make_mock_tool_call_message(
    tool_name: str = "WebSearch",
    tool_input: dict | None = None,
    tool_use_id: str = "tool-123",
    model: str = "claude-sonnet-4-5-20250929",
):
    """Create a mock AssistantMessage with a single tool call."""
    from claude_agent_sdk import AssistantMessage, ToolUseBlock

    return AssistantMessage(
        content=[
            ToolUseBlock(
                id=tool_use_id,
                name=tool_name,
                input=tool_input or {},
            ),
        ],
        model=model,
    )


def make_mock_tool_result_message(
    tool_use_id: str = "tool-123",
    content: str = "Tool result here",
    is_error: bool | None = None,
):
    """Create a mock UserMessage carrying a ToolResultBlock."""
    from claude_agent_sdk import ToolResultBlock, UserMessage

    return UserMessage(
        content=[
            ToolResultBlock(
                tool_use_id=tool_use_id,
                content=content,
                is_error=is_error,
            ),
        ],
    )


def make_mock_stream_text_deltas(
    text: str = "Hello from Claude!",
    chunk_size: int = 5,
    session_id: str = "test-session",
    parent_tool_use_id: str | None = None,
):
    """Create a list of mock StreamEvents that simulate text streaming."""
    from claude_agent_sdk.types import StreamEvent

    events = []
    for i in range(0, len(text), chunk_size):
        chunk = text[i : i + chunk_size]
        events.append(
            StreamEvent(
                uuid=f"evt-{i}",
                session_id=session_id,
                event={
                    "type": "content_block_delta",
                    "delta": {"type": "text_delta", "text": chunk},
                },
                parent_tool_use_id=parent_tool_use_id,
            )
        )
    return events


def make_mock_stream_thinking_delta(
    thinking_text: str = "Let me think...",
    session_id: str = "test-session",
):
    """Create a mock StreamEvent for a thinking delta."""
    from claude_agent_sdk.types import StreamEvent

    return StreamEvent(
        uuid="evt-think-0",
        session_id=session_id,
        event={
            "type": "content_block_delta",
            "delta": {"type": "thinking_delta", "thinking": thinking_text},
        },
    )


async def _mock_receive_response(messages):
    """Turn a list of messages into an async iterator."""
    for msg in messages:
        yield msg


@pytest.fixture
def mock_agent_sdk():
    """Patch ClaudeSDKClient to return canned responses.

    Yields a dict with the mock client and helper to set response messages.
    """
    messages = [
        *make_mock_stream_text_deltas("Hello from Claude!"),
        make_mock_assistant_message("Hello from Claude!"),
        make_mock_result_message(),
    ]

    mock_client = MagicMock()
    mock_client.connect = AsyncMock()
    mock_client.disconnect = AsyncMock()
    mock_client.query = AsyncMock()
    mock_client.receive_response = MagicMock(
        side_effect=lambda: _mock_receive_response(messages)
    )

    def set_messages(new_messages):
        nonlocal messages
        messages = new_messages

    with patch("agentstream.agents.claude.ClaudeSDKClient", return_value=mock_client) as cls:
        with patch("agentstream.agents.claude.settings") as mock_settings:
            mock_settings.anthropic_configured = True
            mock_settings.anthropic_api_key = "test-key"
            mock_settings.anthropic_model = "claude-sonnet-4-5-20250929"
            mock_settings.max_turns = 8
            mock_settings.research_max_turns = 30
            mock_settings.history_limit = 10
            yield {
                "client": mock_client,
                "client_class": cls,
                "settings": mock_settings,
                "set_messages": set_messages,
            }
