from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cladhunter.api.dependencies import get_principal, get_reward_engine
from cladhunter.auth.resolver import Principal
from cladhunter.services.rewards import RewardEngine

router = APIRouter(prefix="/api/user", tags=["user"])


class UserOut(BaseModel):
    id: str
    energy: int
    boost_level: int
    boost_expires_at: datetime | None = None


class InitUserOut(BaseModel):
    user: UserOut


class BalanceOut(BaseModel):
    energy: int
    boost_level: int
    multiplier: float
    boost_expires_at: datetime | None = None


@router.post("/init", response_model=InitUserOut)
async def init_user(
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> InitUserOut:
    """Called on app load: creates the account on first visit and records a session."""
    acc = await engine.init_user(principal.id)
    return InitUserOut(
        user=UserOut(
            id=acc.id,
            energy=acc.energy,
            boost_level=acc.boost_level,
            boost_expires_at=acc.boost_expires_at,
        )
    )


@router.get("/balance", response_model=BalanceOut)
async def get_balance(
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> BalanceOut:
    bal = await engine.get_balance(principal.id)
    return BalanceOut(
        energy=bal.energy,
        boost_level=bal.boost_level,
        multiplier=float(bal.multiplier),
        boost_expires_at=bal.boost_expires_at,
    )
