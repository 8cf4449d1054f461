"""
Reward engine: ad-watch credits, partner rewards and balance/stat reads.

All balance mutations go through a single atomic ledger-store primitive, so
concurrent requests from any number of instances can neither lose nor double
a credit. The engine keeps no locks and no per-user state of its own.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from cladhunter.core.economy import Partner, PartnerRegistry, ad_reward, boost_multiplier
from cladhunter.core.errors import (
    InvalidRequest,
    PartnerInactive,
    PartnerNotFound,
    StoreUnavailable,
)
from cladhunter.ledger.store import Account, AdWatchRecord, LedgerStore
from cladhunter.services.quota import check_cooldown, day_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

WATCH_HISTORY_LIMIT = 20


@dataclass(frozen=True)
class RewardPolicy:
    base_ad_reward: int = 10
    cooldown_seconds: int = 30
    daily_view_limit: int = 200


@dataclass(frozen=True)
class AdWatchResult:
    reward: int
    new_balance: int
    multiplier: Decimal
    daily_remaining: int


@dataclass(frozen=True)
class PartnerClaimResult:
    reward: int
    new_balance: int
    partner_name: str


@dataclass(frozen=True)
class BalanceView:
    energy: int
    boost_level: int
    multiplier: Decimal
    boost_expires_at: datetime | None


@dataclass(frozen=True)
class UserStats:
    total_energy: int
    total_watches: int
    total_earned: int
    total_sessions: int
    today_watches: int
    daily_limit: int
    boost_level: int
    multiplier: Decimal
    boost_expires_at: datetime | None
    watch_history: list[AdWatchRecord]


@dataclass(frozen=True)
class RewardStatus:
    claimed_partners: list[str]
    available_rewards: int


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class RewardEngine:
    def __init__(
        self,
        store: LedgerStore,
        partners: PartnerRegistry,
        policy: RewardPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
        retry_attempts: int = 2,
    ) -> None:
        self.store = store
        self.partners = partners
        self.policy = policy or RewardPolicy()
        self._clock = clock
        self._retry_attempts = max(0, retry_attempts)

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def idempotent(self, op: Callable[[], Awaitable[T]]) -> T:
        """Run an idempotent store call, retrying transient store failures."""
        attempt = 0
        while True:
            try:
                return await op()
            except StoreUnavailable:
                if attempt >= self._retry_attempts:
                    raise
                attempt += 1
                logger.warning("Store unavailable, retrying idempotent call (%s/%s)", attempt, self._retry_attempts)

    async def load_account(self, user_id: str, now: datetime) -> Account:
        """Get or create the account, resetting an expired boost on the way."""
        if not user_id:
            raise InvalidRequest("Missing user id")
        acc = await self.idempotent(lambda: self.store.get_or_create_account(user_id, now))
        if acc.boost_expires_at is not None and acc.boost_expires_at <= now:
            acc = await self.idempotent(lambda: self.store.expire_boost(user_id, now))
            logger.info("Boost expired for %s", user_id)
        return acc

    # --- ad watches -----------------------------------------------------

    async def award_ad_watch(self, user_id: str, ad_id: str, now: datetime | None = None) -> AdWatchResult:
        if not ad_id:
            raise InvalidRequest("Missing ad_id")
        now = as_utc(now) if now else self.now()
        policy = self.policy

        acc = await self.load_account(user_id, now)
        # Fast rejection; the store re-checks atomically with the credit.
        check_cooldown(acc.last_watch_at, now, policy.cooldown_seconds)

        multiplier = boost_multiplier(acc.boost_level)
        reward = ad_reward(policy.base_ad_reward, multiplier)

        # Not retried: a timed-out credit may have been applied.
        credit = await self.store.credit_ad_watch(
            user_id=user_id,
            ad_id=ad_id,
            reward=reward,
            base_reward=policy.base_ad_reward,
            multiplier=multiplier,
            now=now,
            cooldown_seconds=policy.cooldown_seconds,
            day=day_key(now),
            daily_limit=policy.daily_view_limit,
        )
        logger.info(
            "Credited %s energy to %s for ad %s (x%s, %s today)",
            reward,
            user_id,
            ad_id,
            multiplier,
            credit.watch_count,
        )
        return AdWatchResult(
            reward=reward,
            new_balance=credit.account.energy,
            multiplier=multiplier,
            daily_remaining=max(0, policy.daily_view_limit - credit.watch_count),
        )

    # --- partner rewards ------------------------------------------------

    async def claim_partner_reward(
        self, user_id: str, partner_id: str, now: datetime | None = None
    ) -> PartnerClaimResult:
        """
        Credit a partner's one-time reward.

        The amount is the registry's value for ``partner_id``; callers have no
        way to pass one in.
        """
        if not partner_id:
            raise InvalidRequest("Missing or invalid partner_id")
        partner = self.partners.get(partner_id)
        if partner is None:
            raise PartnerNotFound()
        if not partner.active:
            raise PartnerInactive()

        now = as_utc(now) if now else self.now()
        await self.load_account(user_id, now)
        acc = await self.store.claim_partner_reward(user_id, partner.id, partner.reward, now)
        logger.info("Partner reward %s (%s) credited to %s", partner.id, partner.reward, user_id)
        return PartnerClaimResult(reward=partner.reward, new_balance=acc.energy, partner_name=partner.name)

    def list_partners(self) -> list[Partner]:
        return self.partners.active()

    async def get_reward_status(self, user_id: str) -> RewardStatus:
        claimed = await self.idempotent(lambda: self.store.claimed_partner_ids(user_id))
        claimed_set = set(claimed)
        available = sum(1 for p in self.partners.active() if p.id not in claimed_set)
        return RewardStatus(claimed_partners=claimed, available_rewards=available)

    # --- reads ----------------------------------------------------------

    async def init_user(self, user_id: str, now: datetime | None = None) -> Account:
        now = as_utc(now) if now else self.now()
        acc = await self.load_account(user_id, now)
        await self.store.record_session(user_id, now)
        return acc

    async def get_balance(self, user_id: str, now: datetime | None = None) -> BalanceView:
        now = as_utc(now) if now else self.now()
        acc = await self.load_account(user_id, now)
        return BalanceView(
            energy=acc.energy,
            boost_level=acc.boost_level,
            multiplier=boost_multiplier(acc.boost_level),
            boost_expires_at=acc.boost_expires_at,
        )

    async def get_stats(self, user_id: str, now: datetime | None = None) -> UserStats:
        now = as_utc(now) if now else self.now()
        acc = await self.load_account(user_id, now)
        totals = await self.idempotent(lambda: self.store.watch_totals(user_id))
        history = await self.idempotent(lambda: self.store.recent_watches(user_id, WATCH_HISTORY_LIMIT))
        sessions = await self.idempotent(lambda: self.store.count_sessions(user_id))
        today = await self.idempotent(lambda: self.store.daily_watch_count(user_id, day_key(now)))
        return UserStats(
            total_energy=acc.energy,
            total_watches=totals.total_watches,
            total_earned=totals.total_reward,
            total_sessions=sessions,
            today_watches=today,
            daily_limit=self.policy.daily_view_limit,
            boost_level=acc.boost_level,
            multiplier=boost_multiplier(acc.boost_level),
            boost_expires_at=acc.boost_expires_at,
            watch_history=history,
        )
