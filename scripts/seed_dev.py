#!/usr/bin/env python3
"""Seed the local database with a user, a bearer token, and a chat.

Requires the package installed (pip install -e .).

Usage:
    python scripts/seed_dev.py
    SEED_USER_ID=alice SEED_PLAN=pro python scripts/seed_dev.py

Prints the token and chat id so you can hit the stream endpoint right away:
    curl -N -X POST localhost:8000/api/chat/<chat_id>/stream \\
        -H "Authorization: Bearer <token>" \\
        -H "Content-Type: application/json" \\
        -d '{"content": "What changed in Python 3.13?"}'

SEED_PLAN=pro marks the user as an active Pro subscriber (no hourly limit,
deep research mode allowed).
"""

import asyncio
import os

from agentstream import chat_store, entitlements
from agentstream.database import init_db

USER_ID = os.environ.get("SEED_USER_ID", "dev-user")
PLAN = os.environ.get("SEED_PLAN", "free")
CHAT_TITLE = os.environ.get("SEED_CHAT_TITLE", "Scratchpad")


async def main() -> None:
    await init_db()

    token = await chat_store.create_api_token(USER_ID)
    print(f"  Token for {USER_ID}: {token}")

    if PLAN != "free":
        await entitlements.update_subscription(USER_ID, PLAN, "active")
        print(f"  Subscription: {PLAN} (active)")

    chat = await chat_store.create_chat(USER_ID, CHAT_TITLE)
    print(f"  Chat '{chat.title}': {chat.id}")


if __name__ == "__main__":
    asyncio.run(main())
