"""Public config endpoint for the frontend (boost tiers, limits, merchant wallet)."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from cladhunter.api.dependencies import get_order_manager, get_reward_engine
from cladhunter.core.economy import BOOSTS
from cladhunter.services.boosts import OrderManager
from cladhunter.services.rewards import RewardEngine

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def get_config(
    engine: RewardEngine = Depends(get_reward_engine),
    orders: OrderManager = Depends(get_order_manager),
):
    policy = engine.policy
    return {
        "boosts": [
            {
                "level": b.level,
                "name": b.name,
                "multiplier": float(b.multiplier),
                "price_ton": float(b.price_ton),
                "duration_days": b.duration_days,
            }
            for b in BOOSTS
        ],
        "base_ad_reward": policy.base_ad_reward,
        "ad_cooldown_seconds": policy.cooldown_seconds,
        "daily_view_limit": policy.daily_view_limit,
        "merchant_address": orders.merchant_address,
    }
