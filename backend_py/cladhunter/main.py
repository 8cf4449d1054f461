from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cladhunter.api.routes.ads import router as ads_router
from cladhunter.api.routes.auth import router as auth_router
from cladhunter.api.routes.config import router as config_router
from cladhunter.api.routes.orders import router as orders_router
from cladhunter.api.routes.rewards import router as rewards_router
from cladhunter.api.routes.stats import router as stats_router
from cladhunter.api.routes.user import router as user_router
from cladhunter.auth.resolver import AuthResolver
from cladhunter.core.config import Settings, get_settings
from cladhunter.core.economy import PartnerRegistry
from cladhunter.core.errors import InvalidRequest, LedgerError
from cladhunter.db.session import create_db_engine
from cladhunter.ledger.memory import InMemoryLedgerStore
from cladhunter.ledger.sql import SqlLedgerStore
from cladhunter.ledger.store import LedgerStore
from cladhunter.services import OrderManager, PaymentVerifier, RewardEngine, RewardPolicy
from cladhunter.services.rewards import utc_now
from cladhunter.services.ton_payments import TonApiPaymentVerifier

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> LedgerStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory ledger store; balances are lost on restart")
        return InMemoryLedgerStore()
    if settings.store_backend != "sql":
        raise ValueError(f"unknown store_backend: {settings.store_backend}")
    return SqlLedgerStore(create_db_engine(settings.database_url))


def build_verifier(settings: Settings) -> PaymentVerifier | None:
    if settings.payment_verifier == "tonapi":
        return TonApiPaymentVerifier(
            settings.ton_merchant_address,
            api_key=settings.tonapi_key,
            base_url=settings.tonapi_url,
        )
    if settings.payment_verifier != "manual":
        raise ValueError(f"unknown payment_verifier: {settings.payment_verifier}")
    return None


def create_app(
    settings: Settings | None = None,
    store: LedgerStore | None = None,
    verifier: PaymentVerifier | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or build_store(settings)
    verifier = verifier or build_verifier(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(store, SqlLedgerStore):
            # Dev bootstrap; production schemas are managed outside the app.
            store.create_schema()
        logger.info("Ledger service started (store=%s)", type(store).__name__)
        try:
            yield
        finally:
            await store.close()

    app = FastAPI(title="Cladhunter Ledger", lifespan=lifespan)

    # For dev: allow any origin. Tighten to your domain(s) in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = RewardEngine(
        store=store,
        partners=PartnerRegistry.load(settings.partners_file or None),
        policy=RewardPolicy(
            base_ad_reward=settings.base_ad_reward,
            cooldown_seconds=settings.ad_cooldown_seconds,
            daily_view_limit=settings.daily_view_limit,
        ),
        clock=clock,
        retry_attempts=settings.store_retry_attempts,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.reward_engine = engine
    app.state.order_manager = OrderManager(engine, settings.ton_merchant_address, verifier)
    app.state.auth = AuthResolver(
        jwt_secret=settings.jwt_secret,
        public_anon_key=settings.public_anon_key,
        jwt_expires_sec=settings.jwt_expires_sec,
    )

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = InvalidRequest()
        return JSONResponse(status_code=err.status_code, content=err.payload())

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(config_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(ads_router)
    app.include_router(stats_router)
    app.include_router(rewards_router)
    app.include_router(orders_router)

    return app
