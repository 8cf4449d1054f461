"""
Maps request credentials to a typed principal.

Two kinds of callers:
- Authenticated: ``Authorization: Bearer <jwt>`` signed with ``jwt_secret``;
  the ``sub`` claim is the user id.
- Anonymous: ``Authorization: Bearer <public anon key>`` plus
  ``X-User-ID: anon_<device id>``.

The reward services only ever see ``Principal.id``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Union

import jwt

from cladhunter.core.errors import Unauthorized

ANON_PREFIX = "anon_"
MAX_USER_ID_LEN = 128


@dataclass(frozen=True)
class Anonymous:
    id: str


@dataclass(frozen=True)
class Authenticated:
    id: str


Principal = Union[Anonymous, Authenticated]


class AuthResolver:
    def __init__(self, jwt_secret: str, public_anon_key: str = "", jwt_expires_sec: int = 60 * 60 * 24 * 30) -> None:
        self.jwt_secret = jwt_secret
        self.public_anon_key = public_anon_key
        self.jwt_expires_sec = jwt_expires_sec

    def resolve(self, authorization: str | None, user_id_header: str | None = None) -> Principal:
        if not authorization:
            raise Unauthorized("missing authorization")
        if not authorization.lower().startswith("bearer "):
            raise Unauthorized("invalid authorization")
        token = authorization.split(" ", 1)[1].strip()
        if not token:
            raise Unauthorized("empty bearer token")

        if self.public_anon_key and token == self.public_anon_key:
            anon_id = (user_id_header or "").strip()
            if not anon_id.startswith(ANON_PREFIX) or len(anon_id) <= len(ANON_PREFIX):
                raise Unauthorized("anonymous access requires an anon_ user id")
            if len(anon_id) > MAX_USER_ID_LEN:
                raise Unauthorized("user id too long")
            return Anonymous(anon_id)

        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise Unauthorized("token expired")
        except jwt.InvalidTokenError:
            raise Unauthorized("invalid token")

        sub = payload.get("sub")
        if not sub or not isinstance(sub, str) or len(sub) > MAX_USER_ID_LEN:
            raise Unauthorized("invalid token payload")
        # Anonymous ids are never vouched for by a token.
        if sub.startswith(ANON_PREFIX):
            raise Unauthorized("invalid token payload")
        return Authenticated(sub)

    def issue_token(self, user_id: str, extra: dict[str, Any] | None = None) -> str:
        now = int(time.time())
        token = jwt.encode(
            {**(extra or {}), "sub": user_id, "iat": now, "exp": now + int(self.jwt_expires_sec)},
            self.jwt_secret,
            algorithm="HS256",
        )
        # PyJWT may return str or bytes depending on version
        if isinstance(token, bytes):
            return token.decode("utf-8")
        return token
