"""Ad watch completion."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cladhunter.api.dependencies import get_principal, get_reward_engine
from cladhunter.auth.resolver import Principal
from cladhunter.services.rewards import RewardEngine

router = APIRouter(prefix="/api/ads", tags=["ads"])


class CompleteAdIn(BaseModel):
    ad_id: str = Field(min_length=1, max_length=128)


class CompleteAdOut(BaseModel):
    success: bool = True
    reward: int
    new_balance: int
    multiplier: float
    daily_watches_remaining: int


@router.post("/complete", response_model=CompleteAdOut)
async def complete_ad(
    body: CompleteAdIn,
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> CompleteAdOut:
    """
    Credit one ad watch.

    429 with ``cooldown_remaining`` while the cooldown runs, 429 once the
    daily limit is used up.
    """
    result = await engine.award_ad_watch(principal.id, body.ad_id)
    return CompleteAdOut(
        reward=result.reward,
        new_balance=result.new_balance,
        multiplier=float(result.multiplier),
        daily_watches_remaining=result.daily_remaining,
    )
