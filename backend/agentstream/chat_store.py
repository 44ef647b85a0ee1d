"""Chat store — the persistence interface the relay and routes consume.

All chat/message persistence flows through here (SQLite via aiosqlite).
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from agentstream.database import get_db
from agentstream.models import ChatMessage, ChatResponse


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_message(row: Any) -> ChatMessage:
    return ChatMessage(
        id=row[0],
        chat_id=row[1],
        role=row[2],
        content=row[3],
        metadata=json.loads(row[4]) if row[4] else None,
        created_at=datetime.fromisoformat(row[5]),
    )


async def create_chat(user_id: str, title: str | None = None) -> ChatResponse:
    """Create a new chat owned by ``user_id``."""
    async with get_db() as db:
        if not title:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM chats WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
            count = row[0] if row else 0
            title = f"Chat {count + 1}"

        chat_id = str(uuid.uuid4())
        now = _now()

        await db.execute(
            "INSERT INTO chats (id, user_id, title, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (chat_id, user_id, title, now.isoformat(), now.isoformat()),
        )
        await db.commit()

    return ChatResponse(
        id=chat_id,
        user_id=user_id,
        title=title,
        created_at=now,
        updated_at=now,
    )


async def find_chat(chat_id: str, user_id: str) -> ChatResponse | None:
    """Find one chat by id and owner. Returns None if missing or not owned."""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT c.id, c.user_id, c.title, c.created_at, c.updated_at, "
            "COUNT(m.id) FROM chats c LEFT JOIN messages m ON c.id = m.chat_id "
            "WHERE c.id = ? AND c.user_id = ? GROUP BY c.id",
            (chat_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        return None
    return ChatResponse(
        id=row[0],
        user_id=row[1],
        title=row[2],
        created_at=datetime.fromisoformat(row[3]),
        updated_at=datetime.fromisoformat(row[4]),
        message_count=row[5],
    )


async def list_chats(user_id: str) -> list[ChatResponse]:
    """List a user's chats, most recently updated first."""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT c.id, c.user_id, c.title, c.created_at, c.updated_at, "
            "COUNT(m.id) FROM chats c LEFT JOIN messages m ON c.id = m.chat_id "
            "WHERE c.user_id = ? GROUP BY c.id ORDER BY c.updated_at DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()

    return [
        ChatResponse(
            id=row[0],
            user_id=row[1],
            title=row[2],
            created_at=datetime.fromisoformat(row[3]),
            updated_at=datetime.fromisoformat(row[4]),
            message_count=row[5],
        )
        for row in rows
    ]


async def create_message(
    chat_id: str,
    role: str,
    content: str,
    metadata: dict[str, Any] | None = None,
) -> ChatMessage:
    """Persist a single message and return it."""
    message = ChatMessage(
        id=str(uuid.uuid4()),
        chat_id=chat_id,
        role=role,
        content=content,
        metadata=metadata,
        created_at=_now(),
    )
    async with get_db() as db:
        await db.execute(
            "INSERT INTO messages (id, chat_id, role, content, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.chat_id,
                message.role,
                message.content,
                json.dumps(metadata) if metadata is not None else None,
                message.created_at.isoformat(),
            ),
        )
        await db.commit()
    return message


async def touch_chat(chat_id: str) -> None:
    """Bump the chat's updated_at to now."""
    async with get_db() as db:
        await db.execute(
            "UPDATE chats SET updated_at = ? WHERE id = ?",
            (_now().isoformat(), chat_id),
        )
        await db.commit()


async def get_messages(chat_id: str, limit: int = 50) -> list[ChatMessage]:
    """Retrieve the most recent ``limit`` messages for a chat, oldest first."""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT id, chat_id, role, content, metadata, created_at FROM ("
            "  SELECT * FROM messages WHERE chat_id = ? "
            "  ORDER BY created_at DESC LIMIT ?"
            ") ORDER BY created_at ASC",
            (chat_id, limit),
        )
        rows = await cursor.fetchall()

    return [_row_to_message(row) for row in rows]


async def count_messages(chat_id: str, role: str | None = None) -> int:
    """Count messages in a chat, optionally for one role."""
    query = "SELECT COUNT(*) FROM messages WHERE chat_id = ?"
    params: tuple[Any, ...] = (chat_id,)
    if role is not None:
        query += " AND role = ?"
        params += (role,)
    async with get_db() as db:
        cursor = await db.execute(query, params)
        row = await cursor.fetchone()
    return row[0] if row else 0


# ---------------------------------------------------------------------------
# Users: subscriptions and API tokens
# ---------------------------------------------------------------------------

async def set_subscription(user_id: str, plan_type: str, status: str) -> None:
    """Upsert a user's subscription row."""
    async with get_db() as db:
        await db.execute(
            "INSERT INTO subscriptions (user_id, plan_type, status, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET plan_type = excluded.plan_type, "
            "status = excluded.status, updated_at = excluded.updated_at",
            (user_id, plan_type, status, _now().isoformat()),
        )
        await db.commit()


async def get_subscription(user_id: str) -> tuple[str, str] | None:
    """Return (plan_type, status) for a user, or None if they never subscribed."""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT plan_type, status FROM subscriptions WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
    return (row[0], row[1]) if row else None


async def create_api_token(user_id: str) -> str:
    """Issue a bearer token for a user."""
    token = uuid.uuid4().hex
    async with get_db() as db:
        await db.execute(
            "INSERT INTO api_tokens (token, user_id, created_at) VALUES (?, ?, ?)",
            (token, user_id, _now().isoformat()),
        )
        await db.commit()
    return token


async def resolve_api_token(token: str) -> str | None:
    """Map a bearer token to its user id."""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT user_id FROM api_tokens WHERE token = ?", (token,)
        )
        row = await cursor.fetchone()
    return row[0] if row else None
