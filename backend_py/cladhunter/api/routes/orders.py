"""Orders API: buy a boost tier, check an order, confirm payment."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cladhunter.api.dependencies import get_order_manager, get_principal
from cladhunter.auth.resolver import Principal
from cladhunter.services.boosts import OrderManager

router = APIRouter(prefix="/api/orders", tags=["orders"])


class CreateOrderIn(BaseModel):
    boost_level: int


class CreateOrderOut(BaseModel):
    order_id: str
    address: str
    amount: float
    payload: str
    boost_name: str
    duration_days: int | None = None


class OrderOut(BaseModel):
    order_id: str
    status: str
    boost_level: int
    ton_amount: float
    tx_hash: str | None = None
    created_at: datetime


class ConfirmOrderIn(BaseModel):
    tx_hash: str | None = Field(default=None, max_length=256)


class ConfirmOrderOut(BaseModel):
    success: bool = True
    boost_level: int
    boost_expires_at: datetime | None = None
    multiplier: float


@router.post("/create", response_model=CreateOrderOut)
async def create_order(
    body: CreateOrderIn,
    principal: Principal = Depends(get_principal),
    orders: OrderManager = Depends(get_order_manager),
) -> CreateOrderOut:
    """Create a pending order; the client pays ``amount`` TON to ``address`` with ``payload`` as comment."""
    created = await orders.create_order(principal.id, body.boost_level)
    return CreateOrderOut(
        order_id=created.order.id,
        address=created.merchant_address,
        amount=float(created.order.ton_amount),
        payload=created.order.payload,
        boost_name=created.tier.name,
        duration_days=created.tier.duration_days,
    )


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    orders: OrderManager = Depends(get_order_manager),
) -> OrderOut:
    order = await orders.get_order(principal.id, order_id)
    return OrderOut(
        order_id=order.id,
        status=order.status,
        boost_level=order.boost_level,
        ton_amount=float(order.ton_amount),
        tx_hash=order.tx_hash,
        created_at=order.created_at,
    )


@router.post("/{order_id}/confirm", response_model=ConfirmOrderOut)
async def confirm_order(
    order_id: str,
    body: ConfirmOrderIn | None = None,
    principal: Principal = Depends(get_principal),
    orders: OrderManager = Depends(get_order_manager),
) -> ConfirmOrderOut:
    """Mark the order paid and activate its boost. 409 if it was already processed."""
    proof = body.tx_hash if body else None
    activation = await orders.confirm_order(principal.id, order_id, proof)
    return ConfirmOrderOut(
        boost_level=activation.boost_level,
        boost_expires_at=activation.boost_expires_at,
        multiplier=float(activation.multiplier),
    )
