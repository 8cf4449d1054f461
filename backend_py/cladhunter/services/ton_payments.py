"""
On-chain boost payment check.

Looks up recent TonAPI events of the merchant wallet for an incoming
TonTransfer whose comment is the order payload and whose amount covers the
order price.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import httpx
from pytoniq_core.boc.address import Address

from cladhunter.ledger.store import OrderRecord

logger = logging.getLogger(__name__)

NANOTON = 10**9
TONAPI_URL = "https://tonapi.io"


def _get_addr(obj: dict, key: str) -> str:
    v = obj.get(key)
    if v is None:
        return ""
    if isinstance(v, dict):
        return (v.get("address") or "").strip()
    return str(v).strip()


def _addr_match(a: str, b: str) -> bool:
    """Same account in any address form (raw, bounceable, non-bounceable)."""
    if not a or not b:
        return False
    try:
        return Address(a.strip()).hash_part == Address(b.strip()).hash_part
    except Exception:
        # Not a parseable address; only an exact match counts.
        return a.strip() == b.strip()


def _matching_transfer(event: dict, order: OrderRecord, proof: str, merchant_address: str) -> bool:
    for action in event.get("actions") or []:
        if action.get("type") not in ("TonTransfer", "ton_transfer"):
            continue
        data = action.get("TonTransfer") or action
        if (data.get("comment") or "").strip() != order.payload:
            continue
        # Outgoing transfers of the merchant wallet show up in its events too.
        if not _addr_match(_get_addr(data, "recipient"), merchant_address):
            continue
        try:
            amount_nano = Decimal(data.get("amount"))
        except (TypeError, ValueError, InvalidOperation):
            continue
        if amount_nano < order.ton_amount * NANOTON:
            logger.warning(
                "Underpaid transfer for order %s: %s nanoton < %s TON",
                order.id,
                amount_nano,
                order.ton_amount,
            )
            continue
        # A supplied proof must point at this very transfer.
        txs = event.get("base_transactions") or []
        if proof and not proof.startswith("manual_") and proof not in txs and proof != event.get("event_id"):
            continue
        return True
    return False


class TonApiPaymentVerifier:
    def __init__(
        self,
        merchant_address: str,
        api_key: str = "",
        base_url: str = TONAPI_URL,
        client: httpx.AsyncClient | None = None,
        event_limit: int = 100,
    ) -> None:
        self.merchant_address = merchant_address
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.event_limit = event_limit

    async def _fetch_events(self) -> list[dict]:
        url = f"{self.base_url}/v2/accounts/{self.merchant_address}/events"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        params = {"limit": self.event_limit}
        if self._client is not None:
            resp = await self._client.get(url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                resp = await client.get(url, params=params, headers=headers)
        resp.raise_for_status()
        return resp.json().get("events") or []

    async def verify(self, order: OrderRecord, proof: str) -> bool:
        try:
            events = await self._fetch_events()
        except httpx.HTTPError as e:
            logger.warning("TonAPI lookup for order %s failed: %s", order.id, e)
            return False
        for event in events:
            if _matching_transfer(event, order, proof, self.merchant_address):
                logger.info("Payment for order %s found on chain (proof=%s)", order.id, proof[:64])
                return True
        return False
