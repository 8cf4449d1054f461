"""
Shared FastAPI dependencies: caller identity and the services built at startup.
"""
from __future__ import annotations

from fastapi import Header, Request

from cladhunter.auth.resolver import AuthResolver, Principal
from cladhunter.services.boosts import OrderManager
from cladhunter.services.rewards import RewardEngine


def get_principal(
    request: Request,
    authorization: str | None = Header(None),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> Principal:
    """
    Resolve the caller. Raises Unauthorized (401) for missing or bad credentials.

    Usage:
        @router.get("/endpoint")
        async def endpoint(principal: Principal = Depends(get_principal)):
            ...
    """
    resolver: AuthResolver = request.app.state.auth
    return resolver.resolve(authorization, x_user_id)


def get_reward_engine(request: Request) -> RewardEngine:
    return request.app.state.reward_engine


def get_order_manager(request: Request) -> OrderManager:
    return request.app.state.order_manager


def get_auth_resolver(request: Request) -> AuthResolver:
    return request.app.state.auth
