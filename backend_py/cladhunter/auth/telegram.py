"""
Telegram Mini App login.

https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from cladhunter.core.errors import Unauthorized

TELEGRAM_ID_PREFIX = "tg_"


@dataclass(frozen=True)
class TelegramLogin:
    telegram_id: int
    user: dict[str, Any]
    auth_date: int | None
    start_param: str | None

    @property
    def user_id(self) -> str:
        return f"{TELEGRAM_ID_PREFIX}{self.telegram_id}"


def _data_check_string(pairs: list[tuple[str, str]]) -> tuple[str, str | None]:
    hash_value = None
    items: list[tuple[str, str]] = []
    for k, v in pairs:
        if k == "hash":
            hash_value = v
            continue
        items.append((k, v))
    items.sort(key=lambda kv: kv[0])
    return "\n".join(f"{k}={v}" for k, v in items), hash_value


def verify_init_data(
    init_data_raw: str,
    bot_token: str,
    max_age_sec: int = 86400,
    now: int | None = None,
) -> TelegramLogin:
    """Validate WebApp initData and return the Telegram user it vouches for."""
    if not init_data_raw:
        raise Unauthorized("initData is empty")
    if not bot_token:
        raise Unauthorized("telegram login is not configured")

    pairs = parse_qsl(init_data_raw, keep_blank_values=True)
    data_check_string, hash_value = _data_check_string(pairs)
    if not hash_value:
        raise Unauthorized("hash missing")

    secret_key = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    computed = hmac.new(secret_key, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(computed, hash_value):
        raise Unauthorized("hash mismatch")

    params = dict(pairs)
    auth_date: int | None = None
    if params.get("auth_date") is not None:
        try:
            auth_date = int(params["auth_date"])
        except ValueError:
            raise Unauthorized("auth_date invalid")
        ts = int(time.time()) if now is None else now
        if auth_date > ts + 60:
            raise Unauthorized("auth_date is in the future")
        if ts - auth_date > max_age_sec:
            raise Unauthorized("initData expired")

    try:
        user = json.loads(params.get("user") or "null")
    except ValueError:
        user = None
    if not isinstance(user, dict) or not isinstance(user.get("id"), int):
        raise Unauthorized("user missing")

    return TelegramLogin(
        telegram_id=user["id"],
        user=user,
        auth_date=auth_date,
        start_param=params.get("start_param"),
    )
