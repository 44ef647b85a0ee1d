"""Entitlement gates consumed by the relay.

- Hourly message limit for free users, counted in Redis.
- Pro status from the subscriptions table, cached in Redis.

Both degrade open to the database: if Redis is down the rate limit allows the
message, and Pro status is read straight from SQLite.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from agentstream import chat_store
from agentstream.config import settings
from agentstream.redis_client import cache_delete, cache_get, cache_set, incr_with_ttl

logger = logging.getLogger(__name__)

PRO_PLAN_TYPES = frozenset({"pro", "premium"})


def _hour_bucket(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d%H")


def usage_key(user_id: str, now: datetime | None = None) -> str:
    return f"usage:{user_id}:{_hour_bucket(now)}"


def _pro_key(user_id: str) -> str:
    return f"pro:{user_id}"


async def is_pro_subscriber(user_id: str) -> bool:
    """True when the user has an active non-free subscription."""
    cache_key = _pro_key(user_id)
    cached = await cache_get(cache_key)
    if cached is not None:
        return bool(cached)

    subscription = await chat_store.get_subscription(user_id)
    is_pro = (
        subscription is not None
        and subscription[0] in PRO_PLAN_TYPES
        and subscription[1] == "active"
    )
    await cache_set(cache_key, is_pro, ttl=settings.pro_status_cache_ttl)
    return is_pro


async def update_subscription(user_id: str, plan_type: str, status: str) -> None:
    """Write a subscription change and drop the cached Pro status."""
    await chat_store.set_subscription(user_id, plan_type, status)
    await cache_delete(_pro_key(user_id))


async def check_rate_limit(user_id: str) -> bool:
    """Count one message for this hour; return False if the user is over the limit.

    Pro users are never limited, but their messages are still counted.
    """
    count = await incr_with_ttl(usage_key(user_id), ttl=3600)
    if count is None:
        logger.warning("Usage counter unavailable; allowing message for %s", user_id)
        return True
    if count <= settings.free_hourly_message_limit:
        return True
    if await is_pro_subscriber(user_id):
        return True
    logger.info("User %s over hourly limit (%d messages)", user_id, count)
    return False
