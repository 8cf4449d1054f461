"""
Ledger store contract.

The reward services are written once against ``LedgerStore``; adapters
(SQLAlchemy, in-memory) provide the atomicity. Every mutating primitive is a
single atomic unit on the backing store: either all of its effects are
visible or none are. Callers never hold locks across these awaits.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_FAILED = "failed"


@dataclass(frozen=True)
class Account:
    id: str
    energy: int
    boost_level: int
    boost_expires_at: datetime | None
    last_watch_at: datetime | None
    created_at: datetime


@dataclass(frozen=True)
class AdWatchRecord:
    user_id: str
    ad_id: str
    reward: int
    base_reward: int
    multiplier: Decimal
    created_at: datetime


@dataclass(frozen=True)
class OrderRecord:
    id: str
    user_id: str
    boost_level: int
    ton_amount: Decimal
    status: str
    payload: str
    tx_hash: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class WatchCredit:
    """Outcome of a credited ad watch: account after the credit and today's count."""

    account: Account
    watch_count: int


@dataclass(frozen=True)
class WatchTotals:
    total_watches: int
    total_reward: int


class LedgerStore(abc.ABC):
    # --- accounts -------------------------------------------------------

    @abc.abstractmethod
    async def get_account(self, user_id: str) -> Account | None:
        ...

    @abc.abstractmethod
    async def get_or_create_account(self, user_id: str, now: datetime) -> Account:
        """Insert a zero-balance account if absent, then return the stored one."""

    @abc.abstractmethod
    async def expire_boost(self, user_id: str, now: datetime) -> Account:
        """Reset boost to level 0 if ``boost_expires_at <= now``; idempotent."""

    # --- ad watches -----------------------------------------------------

    @abc.abstractmethod
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
        """
        One atomic unit: verify cooldown, increment the daily counter within
        ``daily_limit``, add ``reward`` to energy, set ``last_watch_at`` and
        append the audit record.

        Raises CooldownActive or DailyLimitReached with nothing applied.
        """

    @abc.abstractmethod
    async def consume_daily_quota(self, user_id: str, day: str, limit: int) -> int:
        """Increment the (user, day) counter only if the result is <= limit."""

    @abc.abstractmethod
    async def daily_watch_count(self, user_id: str, day: str) -> int:
        ...

    @abc.abstractmethod
    async def watch_totals(self, user_id: str) -> WatchTotals:
        ...

    @abc.abstractmethod
    async def recent_watches(self, user_id: str, limit: int) -> list[AdWatchRecord]:
        """Newest first."""

    # --- partner claims -------------------------------------------------

    @abc.abstractmethod
    async def claim_partner_reward(
        self, user_id: str, partner_id: str, reward: int, now: datetime
    ) -> Account:
        """
        Insert the (user, partner) claim and credit ``reward`` as one unit.

        Raises AlreadyClaimed, applying nothing, if the claim exists.
        """

    @abc.abstractmethod
    async def claimed_partner_ids(self, user_id: str) -> list[str]:
        ...

    # --- orders ---------------------------------------------------------

    @abc.abstractmethod
    async def insert_order(self, order: OrderRecord) -> bool:
        """Insert-if-absent by order id. False if the id is taken."""

    @abc.abstractmethod
    async def get_order(self, order_id: str) -> OrderRecord | None:
        ...

    @abc.abstractmethod
    async def mark_order_paid(
        self,
        order_id: str,
        tx_hash: str,
        user_id: str,
        boost_level: int,
        boost_expires_at: datetime | None,
        now: datetime,
    ) -> Account:
        """
        Transition the order pending -> paid and set the account boost, as one unit.

        Raises AlreadyProcessed if the order is no longer pending.
        """

    # --- sessions -------------------------------------------------------

    @abc.abstractmethod
    async def record_session(self, user_id: str, now: datetime) -> None:
        ...

    @abc.abstractmethod
    async def count_sessions(self, user_id: str) -> int:
        ...

    async def close(self) -> None:
        return None
