"""
In-process ledger store.

Each primitive runs to completion without awaiting, so on a single event
loop it is atomic. Suitable for tests and single-process demos only: state
is lost on restart and is not shared between workers.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from cladhunter.core.errors import AlreadyClaimed, AlreadyProcessed, CooldownActive, DailyLimitReached
from cladhunter.ledger.store import (
    ORDER_PAID,
    ORDER_PENDING,
    Account,
    AdWatchRecord,
    LedgerStore,
    OrderRecord,
    WatchCredit,
    WatchTotals,
)
from cladhunter.services.quota import cooldown_remaining

logger = logging.getLogger(__name__)


class InMemoryLedgerStore(LedgerStore):
    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._counters: dict[tuple[str, str], int] = {}
        self._watches: defaultdict[str, list[AdWatchRecord]] = defaultdict(list)
        self._claims: dict[tuple[str, str], tuple[int, datetime]] = {}
        self._orders: dict[str, OrderRecord] = {}
        self._sessions: defaultdict[str, int] = defaultdict(int)

    async def get_account(self, user_id: str) -> Account | None:
        return self._accounts.get(user_id)

    async def get_or_create_account(self, user_id: str, now: datetime) -> Account:
        acc = self._accounts.get(user_id)
        if acc is None:
            acc = Account(
                id=user_id,
                energy=0,
                boost_level=0,
                boost_expires_at=None,
                last_watch_at=None,
                created_at=now,
            )
            self._accounts[user_id] = acc
            logger.info("Created account %s", user_id)
        return acc

    async def expire_boost(self, user_id: str, now: datetime) -> Account:
        acc = self._accounts[user_id]
        if acc.boost_expires_at is not None and acc.boost_expires_at <= now:
            acc = replace(acc, boost_level=0, boost_expires_at=None)
            self._accounts[user_id] = acc
        return acc

    async def credit_ad_watch(
        self,
        user_id: str,
        ad_id: str,
        reward: int,
        base_reward: int,
        multiplier: Decimal,
        now: datetime,
        cooldown_seconds: int,
        day: str,
        daily_limit: int,
    ) -> WatchCredit:
        acc = self._accounts[user_id]
        remaining = cooldown_remaining(acc.last_watch_at, now, cooldown_seconds)
        if remaining > 0:
            raise CooldownActive(remaining)
        count = self._counters.get((user_id, day), 0)
        if count + 1 > daily_limit:
            raise DailyLimitReached()

        count += 1
        acc = replace(acc, energy=acc.energy + reward, last_watch_at=now)
        self._counters[(user_id, day)] = count
        self._accounts[user_id] = acc
        self._watches[user_id].append(
            AdWatchRecord(
                user_id=user_id,
                ad_id=ad_id,
                reward=reward,
                base_reward=base_reward,
                multiplier=multiplier,
                created_at=now,
            )
        )
        return WatchCredit(account=acc, watch_count=count)

    async def consume_daily_quota(self, user_id: str, day: str, limit: int) -> int:
        count = self._counters.get((user_id, day), 0)
        if count + 1 > limit:
            raise DailyLimitReached()
        self._counters[(user_id, day)] = count + 1
        return count + 1

    async def daily_watch_count(self, user_id: str, day: str) -> int:
        return self._counters.get((user_id, day), 0)

    async def watch_totals(self, user_id: str) -> WatchTotals:
        watches = self._watches.get(user_id, [])
        return WatchTotals(total_watches=len(watches), total_reward=sum(w.reward for w in watches))

    async def recent_watches(self, user_id: str, limit: int) -> list[AdWatchRecord]:
        watches = self._watches.get(user_id, [])
        return sorted(watches, key=lambda w: w.created_at, reverse=True)[:limit]

    async def claim_partner_reward(
        self, user_id: str, partner_id: str, reward: int, now: datetime
    ) -> Account:
        key = (user_id, partner_id)
        if key in self._claims:
            raise AlreadyClaimed()
        acc = self._accounts[user_id]
        acc = replace(acc, energy=acc.energy + reward)
        self._claims[key] = (reward, now)
        self._accounts[user_id] = acc
        return acc

    async def claimed_partner_ids(self, user_id: str) -> list[str]:
        return [pid for (uid, pid) in self._claims if uid == user_id]

    async def insert_order(self, order: OrderRecord) -> bool:
        if order.id in self._orders:
            return False
        self._orders[order.id] = order
        return True

    async def get_order(self, order_id: str) -> OrderRecord | None:
        return self._orders.get(order_id)

    async def mark_order_paid(
        self,
        order_id: str,
        tx_hash: str,
        user_id: str,
        boost_level: int,
        boost_expires_at: datetime | None,
        now: datetime,
    ) -> Account:
        order = self._orders[order_id]
        if order.status != ORDER_PENDING:
            raise AlreadyProcessed()
        acc = self._accounts[user_id]
        acc = replace(acc, boost_level=boost_level, boost_expires_at=boost_expires_at)
        self._orders[order_id] = replace(order, status=ORDER_PAID, tx_hash=tx_hash, updated_at=now)
        self._accounts[user_id] = acc
        return acc

    async def record_session(self, user_id: str, now: datetime) -> None:
        self._sessions[user_id] += 1

    async def count_sessions(self, user_id: str) -> int:
        return self._sessions.get(user_id, 0)
