from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from cladhunter.api.dependencies import get_auth_resolver
from cladhunter.auth.resolver import AuthResolver
from cladhunter.auth.telegram import verify_init_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class TelegramAuthIn(BaseModel):
    initData: str = Field(min_length=1)


class TelegramAuthOut(BaseModel):
    token: str
    user_id: str


@router.post("/telegram", response_model=TelegramAuthOut)
async def auth_telegram(
    body: TelegramAuthIn,
    request: Request,
    resolver: AuthResolver = Depends(get_auth_resolver),
) -> TelegramAuthOut:
    """Exchange Telegram WebApp initData for a bearer token bound to ``tg_<telegram id>``."""
    settings = request.app.state.settings
    login = verify_init_data(
        body.initData,
        settings.tg_bot_token,
        max_age_sec=settings.tg_auth_max_age_sec,
    )
    token = resolver.issue_token(login.user_id, {"telegram_id": login.telegram_id})
    logger.info("Telegram login for %s", login.user_id)
    return TelegramAuthOut(token=token, user_id=login.user_id)
