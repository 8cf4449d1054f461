from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from cladhunter.core.config import Settings
from cladhunter.core.economy import PartnerRegistry
from cladhunter.db.session import create_db_engine
from cladhunter.ledger.memory import InMemoryLedgerStore
from cladhunter.ledger.sql import SqlLedgerStore
from cladhunter.main import create_app
from cladhunter.services import OrderManager, RewardEngine, RewardPolicy

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

JWT_SECRET = "test-secret"
ANON_KEY = "test-anon-key"


class FakeClock:
    """Settable clock so cooldown and boost expiry can be driven from tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Every ledger test runs against both store backends."""
    if request.param == "memory":
        s = InMemoryLedgerStore()
    else:
        s = SqlLedgerStore(create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}"))
        s.create_schema()
    yield s
    await s.close()


@pytest.fixture
def policy():
    return RewardPolicy(base_ad_reward=10, cooldown_seconds=30, daily_view_limit=200)


@pytest.fixture
def engine(store, policy, clock):
    return RewardEngine(store, PartnerRegistry.load(None), policy=policy, clock=clock)


@pytest.fixture
def orders(engine):
    return OrderManager(engine, merchant_address="UQ_test_merchant")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        jwt_secret=JWT_SECRET,
        public_anon_key=ANON_KEY,
        tg_bot_token="123456:TEST",
        ton_merchant_address="UQ_test_merchant",
    )


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def anon_headers():
    return {"Authorization": f"Bearer {ANON_KEY}", "X-User-ID": "anon_device_1"}
