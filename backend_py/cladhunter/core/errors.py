"""
Domain errors raised by the ledger services.

Every error carries the HTTP status it maps to and a stable client-facing
message, so a duplicate request gets the same response whether it raced the
first one or arrived later.
"""
from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    status_code: int = 500
    message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def payload(self) -> dict[str, Any]:
        return {"error": self.message}


class Unauthorized(LedgerError):
    status_code = 401
    message = "Unauthorized"


class InvalidRequest(LedgerError):
    status_code = 400
    message = "Invalid request"


class CooldownActive(LedgerError):
    status_code = 429
    message = "Cooldown active"

    def __init__(self, remaining_seconds: int) -> None:
        super().__init__()
        self.remaining_seconds = remaining_seconds

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "cooldown_remaining": self.remaining_seconds}


class DailyLimitReached(LedgerError):
    status_code = 429
    message = "Daily limit reached"


class AlreadyClaimed(LedgerError):
    status_code = 409
    message = "Reward already claimed"


class AlreadyProcessed(LedgerError):
    status_code = 409
    message = "Order already processed"


class InvalidBoostLevel(LedgerError):
    status_code = 400
    message = "Invalid boost_level"


class PartnerNotFound(LedgerError):
    status_code = 404
    message = "Partner not found"


class PartnerInactive(LedgerError):
    status_code = 400
    message = "Partner is not active"


class OrderNotFound(LedgerError):
    status_code = 404
    message = "Order not found"


class Forbidden(LedgerError):
    status_code = 403
    message = "Forbidden"


class PaymentRejected(LedgerError):
    status_code = 400
    message = "Payment verification failed"


class StoreUnavailable(LedgerError):
    """Transient storage failure. Only idempotent operations may be retried."""

    status_code = 503
    message = "Storage temporarily unavailable"
