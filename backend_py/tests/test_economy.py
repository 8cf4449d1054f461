import json
from decimal import Decimal

import pytest

from cladhunter.core.economy import BOOSTS, Partner, PartnerRegistry, ad_reward, boost_multiplier, get_boost


@pytest.mark.parametrize(
    "level, expected",
    [(0, 10), (1, 12), (2, 15), (3, 20), (4, 30)],
)
def test_ad_reward_per_tier(level, expected):
    assert ad_reward(10, boost_multiplier(level)) == expected


def test_unknown_level_has_no_boost():
    assert get_boost(9) is None
    assert boost_multiplier(9) == Decimal("1")


def test_tiers_are_ordered():
    assert [b.level for b in BOOSTS] == [0, 1, 2, 3, 4]
    assert BOOSTS[0].duration_days is None


def test_default_registry():
    registry = PartnerRegistry.load(None)
    assert registry.get("telegram_cladhunter_official").reward == 1000
    assert len(registry.active()) == 4


def test_registry_from_file(tmp_path):
    path = tmp_path / "partners.json"
    path.write_text(
        json.dumps(
            [
                {"id": "p1", "name": "One", "reward": 100},
                {"id": "p2", "name": "Two", "platform": "x", "reward": 50, "active": False},
            ]
        ),
        encoding="utf-8",
    )

    registry = PartnerRegistry.load(str(path))

    assert registry.get("p1").platform == "telegram"
    assert [p.id for p in registry.active()] == ["p1"]


def test_registry_rejects_duplicates():
    p = Partner(id="dup", platform="telegram", name="Dup", username="", url="", reward=1)
    with pytest.raises(ValueError):
        PartnerRegistry([p, p])


def test_registry_rejects_non_positive_reward():
    with pytest.raises(ValueError):
        PartnerRegistry([Partner(id="zero", platform="x", name="Zero", username="", url="", reward=0)])
