"""
Boost purchases: create a pending order, confirm it with a payment proof,
activate the boost.

Payment verification is a trust boundary. ``confirm_order`` hands the proof
to a ``PaymentVerifier``; the default ``ManualPaymentVerifier`` accepts any
proof (manual/demo confirmation), so a deployment that needs on-chain checks
must plug in its own verifier. The order state machine does not change
either way.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol

from cladhunter.core.economy import BoostTier, boost_multiplier, get_boost
from cladhunter.core.errors import (
    AlreadyProcessed,
    Forbidden,
    InvalidBoostLevel,
    OrderNotFound,
    PaymentRejected,
    StoreUnavailable,
)
from cladhunter.ledger.store import ORDER_PENDING, OrderRecord
from cladhunter.services.rewards import RewardEngine, as_utc

logger = logging.getLogger(__name__)

ORDER_ID_ATTEMPTS = 5


class PaymentVerifier(Protocol):
    async def verify(self, order: OrderRecord, proof: str) -> bool:
        """True if ``proof`` shows ``order.ton_amount`` was paid with ``order.payload``."""
        ...


class ManualPaymentVerifier:
    """Accepts every proof. Confirmation is trusted, not verified."""

    async def verify(self, order: OrderRecord, proof: str) -> bool:
        logger.warning(
            "Order %s confirmed without on-chain verification (proof=%s)",
            order.id,
            proof[:64],
        )
        return True


@dataclass(frozen=True)
class CreatedOrder:
    order: OrderRecord
    tier: BoostTier
    merchant_address: str


@dataclass(frozen=True)
class BoostActivation:
    boost_level: int
    boost_expires_at: datetime | None
    multiplier: Decimal


def _new_order_id() -> str:
    return f"order_{secrets.token_urlsafe(18)}"


def _payment_payload(boost_level: int, user_id: str) -> str:
    return f"boost_{boost_level}_{user_id}_{secrets.token_hex(6)}"


class OrderManager:
    def __init__(
        self,
        engine: RewardEngine,
        merchant_address: str,
        verifier: PaymentVerifier | None = None,
    ) -> None:
        self.engine = engine
        self.store = engine.store
        self.merchant_address = merchant_address
        self.verifier = verifier or ManualPaymentVerifier()

    async def create_order(self, user_id: str, boost_level: int, now: datetime | None = None) -> CreatedOrder:
        tier = get_boost(boost_level)
        # Level 0 is the free base tier, not for sale.
        if tier is None or tier.level == 0:
            raise InvalidBoostLevel()

        now = as_utc(now) if now else self.engine.now()
        await self.engine.load_account(user_id, now)

        for _ in range(ORDER_ID_ATTEMPTS):
            order = OrderRecord(
                id=_new_order_id(),
                user_id=user_id,
                boost_level=tier.level,
                ton_amount=tier.price_ton,
                status=ORDER_PENDING,
                payload=_payment_payload(tier.level, user_id),
                tx_hash=None,
                created_at=now,
                updated_at=now,
            )
            if await self.store.insert_order(order):
                logger.info(
                    "Created order %s for %s: %s boost, %s TON",
                    order.id,
                    user_id,
                    tier.name,
                    tier.price_ton,
                )
                return CreatedOrder(order=order, tier=tier, merchant_address=self.merchant_address)
        logger.error("Could not allocate a unique order id for %s", user_id)
        raise StoreUnavailable("Could not allocate order id")

    async def get_order(self, user_id: str, order_id: str) -> OrderRecord:
        order = await self.engine.idempotent(lambda: self.store.get_order(order_id))
        if order is None:
            raise OrderNotFound()
        if order.user_id != user_id:
            raise Forbidden()
        return order

    async def confirm_order(
        self,
        user_id: str,
        order_id: str,
        proof: str | None = None,
        now: datetime | None = None,
    ) -> BoostActivation:
        now = as_utc(now) if now else self.engine.now()
        order = await self.get_order(user_id, order_id)
        if order.status != ORDER_PENDING:
            # Same error the store raises if another confirm wins the race.
            raise AlreadyProcessed()

        tx_hash = (proof or "").strip() or f"manual_{int(now.timestamp())}"
        if not await self.verifier.verify(order, tx_hash):
            logger.warning("Payment proof rejected for order %s", order.id)
            raise PaymentRejected()

        tier = get_boost(order.boost_level)
        expires_at = None
        if tier is not None and tier.duration_days:
            expires_at = now + timedelta(days=tier.duration_days)

        await self.engine.load_account(user_id, now)
        acc = await self.store.mark_order_paid(
            order_id=order.id,
            tx_hash=tx_hash,
            user_id=user_id,
            boost_level=order.boost_level,
            boost_expires_at=expires_at,
            now=now,
        )
        logger.info(
            "Order %s paid, boost level %s active for %s until %s",
            order.id,
            acc.boost_level,
            user_id,
            acc.boost_expires_at,
        )
        return BoostActivation(
            boost_level=acc.boost_level,
            boost_expires_at=acc.boost_expires_at,
            multiplier=boost_multiplier(acc.boost_level),
        )
