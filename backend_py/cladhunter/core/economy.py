"""Boost tiers and the partner-reward registry (server-side only)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoostTier:
    level: int
    name: str
    multiplier: Decimal
    price_ton: Decimal
    duration_days: int | None = None


BOOSTS: tuple[BoostTier, ...] = (
    BoostTier(0, "Base", Decimal("1"), Decimal("0")),
    BoostTier(1, "Bronze", Decimal("1.25"), Decimal("0.3"), 7),
    BoostTier(2, "Silver", Decimal("1.5"), Decimal("0.7"), 14),
    BoostTier(3, "Gold", Decimal("2"), Decimal("1.5"), 30),
    BoostTier(4, "Diamond", Decimal("3"), Decimal("3.5"), 60),
)


def get_boost(level: int) -> BoostTier | None:
    for tier in BOOSTS:
        if tier.level == level:
            return tier
    return None


def boost_multiplier(level: int) -> Decimal:
    """Multiplier for a boost level; unknown levels count as no boost."""
    tier = get_boost(level)
    return tier.multiplier if tier else Decimal("1")


def ad_reward(base_reward: int, multiplier: Decimal) -> int:
    """floor(base * multiplier)"""
    return int((Decimal(base_reward) * multiplier).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class Partner:
    id: str
    platform: str
    name: str
    username: str
    url: str
    reward: int
    active: bool = True
    description: str | None = None
    icon: str | None = None


DEFAULT_PARTNERS: tuple[Partner, ...] = (
    Partner(
        id="telegram_cladhunter_official",
        platform="telegram",
        name="Cladhunter Official",
        username="@cladhunter",
        url="https://t.me/cladhunter",
        reward=1000,
        description="Official Cladhunter news and updates",
        icon="📢",
    ),
    Partner(
        id="telegram_crypto_insights",
        platform="telegram",
        name="Crypto Insights",
        username="@cryptoinsights",
        url="https://t.me/cryptoinsights",
        reward=750,
        description="Daily crypto market analysis",
        icon="💰",
    ),
    Partner(
        id="x_cladhunter",
        platform="x",
        name="Cladhunter X",
        username="@cladhunter",
        url="https://x.com/cladhunter",
        reward=800,
        description="Follow us on X for updates",
        icon="🐦",
    ),
    Partner(
        id="youtube_crypto_tutorials",
        platform="youtube",
        name="Crypto Tutorials",
        username="@cryptotutorials",
        url="https://youtube.com/@cryptotutorials",
        reward=500,
        description="Learn crypto mining basics",
        icon="🎥",
    ),
)


class PartnerRegistry:
    """
    Partner channels users can subscribe to for a one-time reward.

    Reward amounts are only ever read from here; request bodies are never
    consulted for them.
    """

    def __init__(self, partners: list[Partner] | tuple[Partner, ...]) -> None:
        self._partners: dict[str, Partner] = {}
        for p in partners:
            if p.id in self._partners:
                raise ValueError(f"duplicate partner id: {p.id}")
            if p.reward <= 0:
                raise ValueError(f"partner {p.id} reward must be positive")
            self._partners[p.id] = p

    @classmethod
    def from_file(cls, path: str | Path) -> "PartnerRegistry":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError("partners file must be a JSON array")
        partners = [
            Partner(
                id=str(item["id"]),
                platform=str(item.get("platform") or "telegram"),
                name=str(item["name"]),
                username=str(item.get("username") or ""),
                url=str(item.get("url") or ""),
                reward=int(item["reward"]),
                active=bool(item.get("active", True)),
                description=item.get("description"),
                icon=item.get("icon"),
            )
            for item in data
        ]
        logger.info("Loaded %s partners from %s", len(partners), path)
        return cls(partners)

    @classmethod
    def load(cls, path: str | None) -> "PartnerRegistry":
        if path:
            return cls.from_file(path)
        return cls(DEFAULT_PARTNERS)

    def get(self, partner_id: str) -> Partner | None:
        return self._partners.get(partner_id)

    def active(self) -> list[Partner]:
        return [p for p in self._partners.values() if p.active]
