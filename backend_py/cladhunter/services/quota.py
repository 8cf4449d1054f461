"""
Ad-watch cooldown and daily quota.

Days are UTC calendar days. The daily counter itself lives in the ledger
store; this module only decides and delegates.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from cladhunter.core.errors import CooldownActive

if TYPE_CHECKING:
    from cladhunter.ledger.store import LedgerStore


def day_key(now: datetime) -> str:
    """UTC day key YYYY-MM-DD"""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%d")


def cooldown_remaining(last_watch_at: datetime | None, now: datetime, cooldown_seconds: int) -> int:
    """Whole seconds left before the next watch may be credited (0 = ready)."""
    if last_watch_at is None or cooldown_seconds <= 0:
        return 0
    elapsed = (now - last_watch_at).total_seconds()
    if elapsed >= cooldown_seconds:
        return 0
    return min(cooldown_seconds, math.ceil(cooldown_seconds - elapsed))


def check_cooldown(last_watch_at: datetime | None, now: datetime, cooldown_seconds: int) -> None:
    remaining = cooldown_remaining(last_watch_at, now, cooldown_seconds)
    if remaining > 0:
        raise CooldownActive(remaining)


async def try_consume_daily_quota(store: "LedgerStore", user_id: str, day: str, limit: int) -> int:
    """Take one slot of the user's daily quota. Raises DailyLimitReached when full."""
    return await store.consume_daily_quota(user_id, day, limit)
