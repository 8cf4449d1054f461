"""Partner rewards: list partners, claim status, one-time claims."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cladhunter.api.dependencies import get_principal, get_reward_engine
from cladhunter.auth.resolver import Principal
from cladhunter.services.rewards import RewardEngine

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


class PartnerOut(BaseModel):
    id: str
    platform: str
    name: str
    username: str
    url: str
    reward: int
    description: str | None = None
    icon: str | None = None


class RewardStatusOut(BaseModel):
    claimed_partners: list[str]
    available_rewards: int


class ClaimRewardIn(BaseModel):
    # Any other field a client sends (reward_amount, partner_name) is ignored.
    partner_id: str = Field(min_length=1, max_length=128)


class ClaimRewardOut(BaseModel):
    success: bool = True
    reward: int
    new_balance: int
    partner_name: str


@router.get("/partners", response_model=list[PartnerOut])
async def list_partners(engine: RewardEngine = Depends(get_reward_engine)) -> list[PartnerOut]:
    return [
        PartnerOut(
            id=p.id,
            platform=p.platform,
            name=p.name,
            username=p.username,
            url=p.url,
            reward=p.reward,
            description=p.description,
            icon=p.icon,
        )
        for p in engine.list_partners()
    ]


@router.get("/status", response_model=RewardStatusOut)
async def reward_status(
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> RewardStatusOut:
    status = await engine.get_reward_status(principal.id)
    return RewardStatusOut(
        claimed_partners=status.claimed_partners,
        available_rewards=status.available_rewards,
    )


@router.post("/claim", response_model=ClaimRewardOut)
async def claim_reward(
    body: ClaimRewardIn,
    principal: Principal = Depends(get_principal),
    engine: RewardEngine = Depends(get_reward_engine),
) -> ClaimRewardOut:
    result = await engine.claim_partner_reward(principal.id, body.partner_id)
    return ClaimRewardOut(
        reward=result.reward,
        new_balance=result.new_balance,
        partner_name=result.partner_name,
    )
