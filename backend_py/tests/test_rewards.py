import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from cladhunter.core.economy import Partner, PartnerRegistry
from cladhunter.core.errors import (
    AlreadyClaimed,
    CooldownActive,
    DailyLimitReached,
    InvalidRequest,
    PartnerInactive,
    PartnerNotFound,
    StoreUnavailable,
)
from cladhunter.db.session import create_db_engine
from cladhunter.ledger.memory import InMemoryLedgerStore
from cladhunter.ledger.sql import SqlLedgerStore
from cladhunter.services import RewardEngine, RewardPolicy

from conftest import T0

USER = "tg_1001"


def _engine(store, **policy):
    return RewardEngine(store, PartnerRegistry.load(None), policy=RewardPolicy(**policy), clock=lambda: T0)


@pytest.mark.asyncio
async def test_first_watch_credits_base_reward(engine):
    result = await engine.award_ad_watch(USER, "ad_1")

    assert result.reward == 10
    assert result.new_balance == 10
    assert result.multiplier == Decimal("1")
    assert result.daily_remaining == 199


@pytest.mark.asyncio
async def test_concurrent_watches_are_all_credited(store):
    engine = _engine(store, cooldown_seconds=0)

    results = await asyncio.gather(*(engine.award_ad_watch(USER, f"ad_{i}", now=T0) for i in range(5)))

    assert max(r.new_balance for r in results) == 50
    acc = await store.get_account(USER)
    assert acc.energy == 50
    totals = await store.watch_totals(USER)
    assert totals.total_watches == 5
    assert totals.total_reward == 50


@pytest.mark.asyncio
async def test_watch_inside_cooldown_is_rejected(engine, store):
    await engine.award_ad_watch(USER, "ad_1", now=T0)

    with pytest.raises(CooldownActive) as exc:
        await engine.award_ad_watch(USER, "ad_2", now=T0 + timedelta(seconds=10))

    assert exc.value.remaining_seconds == 20
    assert exc.value.payload() == {"error": "Cooldown active", "cooldown_remaining": 20}
    acc = await store.get_account(USER)
    assert acc.energy == 10
    assert (await store.watch_totals(USER)).total_watches == 1


@pytest.mark.asyncio
async def test_concurrent_watches_inside_cooldown_credit_once(store):
    engine = _engine(store, cooldown_seconds=30)

    outcomes = await asyncio.gather(
        *(engine.award_ad_watch(USER, f"ad_{i}", now=T0) for i in range(8)),
        return_exceptions=True,
    )

    credited = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, Exception)]
    assert len(credited) == 1
    assert len(rejected) == 7
    assert all(isinstance(e, CooldownActive) for e in rejected)
    assert (await store.get_account(USER)).energy == 10
    assert (await store.watch_totals(USER)).total_watches == 1

@pytest.mark.asyncio
async def test_watch_after_cooldown_is_credited(engine):
    await engine.award_ad_watch(USER, "ad_1", now=T0)
    result = await engine.award_ad_watch(USER, "ad_2", now=T0 + timedelta(seconds=30))

    assert result.new_balance == 20
    assert result.daily_remaining == 198


@pytest.mark.asyncio
async def test_store_rechecks_cooldown(store):
    """The store rejects a credit even when the caller skipped the pre-check."""
    engine = _engine(store)
    await engine.award_ad_watch(USER, "ad_1", now=T0)

    with pytest.raises(CooldownActive) as exc:
        await store.credit_ad_watch(
            user_id=USER,
            ad_id="ad_2",
            reward=10,
            base_reward=10,
            multiplier=Decimal("1"),
            now=T0 + timedelta(seconds=5),
            cooldown_seconds=30,
            day="2026-03-01",
            daily_limit=200,
        )
    assert exc.value.remaining_seconds == 25
    assert (await store.get_account(USER)).energy == 10


@pytest.mark.asyncio
async def test_daily_limit(store):
    engine = _engine(store, cooldown_seconds=0, daily_view_limit=200)

    for i in range(199):
        await engine.award_ad_watch(USER, f"ad_{i}", now=T0 + timedelta(seconds=i))
    last = await engine.award_ad_watch(USER, "ad_199", now=T0 + timedelta(seconds=199))
    assert last.daily_remaining == 0
    assert last.new_balance == 2000

    with pytest.raises(DailyLimitReached):
        await engine.award_ad_watch(USER, "ad_200", now=T0 + timedelta(seconds=200))
    assert (await store.get_account(USER)).energy == 2000


@pytest.mark.asyncio
async def test_daily_limit_resets_on_next_utc_day(store):
    engine = _engine(store, cooldown_seconds=0, daily_view_limit=2)
    await engine.award_ad_watch(USER, "ad_1", now=T0)
    await engine.award_ad_watch(USER, "ad_2", now=T0)
    with pytest.raises(DailyLimitReached):
        await engine.award_ad_watch(USER, "ad_3", now=T0)

    result = await engine.award_ad_watch(USER, "ad_3", now=T0 + timedelta(days=1))
    assert result.daily_remaining == 1


@pytest.mark.asyncio
async def test_missing_ad_id(engine):
    with pytest.raises(InvalidRequest):
        await engine.award_ad_watch(USER, "")


@pytest.mark.asyncio
async def test_partner_claim_credits_registry_amount(engine):
    result = await engine.claim_partner_reward(USER, "telegram_cladhunter_official")

    assert result.reward == 1000
    assert result.new_balance == 1000
    assert result.partner_name == "Cladhunter Official"


@pytest.mark.asyncio
async def test_partner_claim_race_credits_once(engine, store):
    outcomes = await asyncio.gather(
        engine.claim_partner_reward(USER, "telegram_crypto_insights"),
        engine.claim_partner_reward(USER, "telegram_crypto_insights"),
        return_exceptions=True,
    )

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyClaimed)
    assert (await store.get_account(USER)).energy == 750

    with pytest.raises(AlreadyClaimed):
        await engine.claim_partner_reward(USER, "telegram_crypto_insights")
    assert (await store.get_account(USER)).energy == 750


@pytest.mark.asyncio
async def test_unknown_partner(engine):
    with pytest.raises(PartnerNotFound):
        await engine.claim_partner_reward(USER, "nope")


@pytest.mark.asyncio
async def test_inactive_partner(store):
    partners = PartnerRegistry(
        [Partner(id="old", platform="telegram", name="Old", username="@old", url="", reward=5, active=False)]
    )
    engine = RewardEngine(store, partners, clock=lambda: T0)

    with pytest.raises(PartnerInactive):
        await engine.claim_partner_reward(USER, "old")
    assert engine.list_partners() == []


@pytest.mark.asyncio
async def test_reward_status(engine):
    status = await engine.get_reward_status(USER)
    assert status.claimed_partners == []
    assert status.available_rewards == 4

    await engine.claim_partner_reward(USER, "x_cladhunter")
    status = await engine.get_reward_status(USER)
    assert status.claimed_partners == ["x_cladhunter"]
    assert status.available_rewards == 3


@pytest.mark.asyncio
async def test_stats(store):
    engine = _engine(store, cooldown_seconds=0)
    await engine.init_user(USER, now=T0)
    await engine.init_user(USER, now=T0)
    await engine.award_ad_watch(USER, "ad_1", now=T0)
    await engine.award_ad_watch(USER, "ad_2", now=T0 + timedelta(seconds=1))
    await engine.claim_partner_reward(USER, "youtube_crypto_tutorials", now=T0)

    stats = await engine.get_stats(USER, now=T0 + timedelta(seconds=2))

    assert stats.total_energy == 520
    assert stats.total_watches == 2
    assert stats.total_earned == 20
    assert stats.total_sessions == 2
    assert stats.today_watches == 2
    assert stats.daily_limit == 200
    assert [w.ad_id for w in stats.watch_history] == ["ad_2", "ad_1"]


@pytest.mark.asyncio
async def test_new_account_starts_empty(engine):
    balance = await engine.get_balance("anon_fresh")

    assert balance.energy == 0
    assert balance.boost_level == 0
    assert balance.multiplier == Decimal("1")
    assert balance.boost_expires_at is None


class FlakyStore(InMemoryLedgerStore):
    """Fails the first call of each watched primitive with StoreUnavailable."""

    def __init__(self):
        super().__init__()
        self.calls = {"get_or_create_account": 0, "credit_ad_watch": 0}

    async def get_or_create_account(self, user_id, now):
        self.calls["get_or_create_account"] += 1
        if self.calls["get_or_create_account"] == 1:
            raise StoreUnavailable()
        return await super().get_or_create_account(user_id, now)

    async def credit_ad_watch(self, **kwargs):
        self.calls["credit_ad_watch"] += 1
        if self.calls["credit_ad_watch"] == 1:
            raise StoreUnavailable()
        return await super().credit_ad_watch(**kwargs)


@pytest.mark.asyncio
async def test_only_idempotent_calls_are_retried():
    store = FlakyStore()
    engine = RewardEngine(store, PartnerRegistry.load(None), clock=lambda: T0, retry_attempts=2)

    with pytest.raises(StoreUnavailable):
        await engine.award_ad_watch(USER, "ad_1")

    assert store.calls == {"get_or_create_account": 2, "credit_ad_watch": 1}
    acc = await store.get_account(USER)
    assert acc.energy == 0
    assert (await store.watch_totals(USER)).total_watches == 0


@pytest.mark.asyncio
async def test_sql_connection_failure_is_store_unavailable(tmp_path):
    # Parent directory does not exist, so sqlite cannot open the file.
    store = SqlLedgerStore(create_db_engine(f"sqlite:///{tmp_path / 'missing' / 'ledger.db'}"))
    engine = RewardEngine(store, PartnerRegistry.load(None), clock=lambda: T0, retry_attempts=1)
    try:
        with pytest.raises(StoreUnavailable):
            await store.get_account(USER)
        with pytest.raises(StoreUnavailable):
            await engine.get_balance(USER)
    finally:
        await store.close()
