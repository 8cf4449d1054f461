from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cladhunter.api.dependencies import get_principal, get_reward_engine
from cladhunter.auth.resolver import Principal
from cladhunter.services.rewards import RewardEngine

router = APIRouter(prefix="/api/stats", tags=["stats"])


class WatchLogOut(BaseModel):
    ad_id: str
    reward: int
    base_reward: int
    multiplier: float
    created_at: datetime


class StatsOut(BaseModel):
    total_energy: int
    total_watches: int
    total_earned: int
    total_sessions: int
    today_watches: int
    daily_limit: int
    boost_level: int
    multiplier: float
    boost_expires_at: datetime | None = None
    watch_history: list[WatchLogOut]


@router.get("", response_model=StatsOut)
async def get_stats(
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> StatsOut:
    """Balance, lifetime and today's watch counts, last 20 watches."""
    stats = await engine.get_stats(principal.id)
    return StatsOut(
        total_energy=stats.total_energy,
        total_watches=stats.total_watches,
        total_earned=stats.total_earned,
        total_sessions=stats.total_sessions,
        today_watches=stats.today_watches,
        daily_limit=stats.daily_limit,
        boost_level=stats.boost_level,
        multiplier=float(stats.multiplier),
        boost_expires_at=stats.boost_expires_at,
        watch_history=[
            WatchLogOut(
                ad_id=w.ad_id,
                reward=w.reward,
                base_reward=w.base_reward,
                multiplier=float(w.multiplier),
                created_at=w.created_at,
            )
            for w in stats.watch_history
        ],
    )
