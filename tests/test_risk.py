from __future__ import annotations

import pytest

from chartsignal.errors import RiskUnavailable
from chartsignal.vision.risk import compute_risk, parse_price
from chartsignal.vision.schema import RiskSettings, SignalPlan


def _plan(entry="1.2345", stop="1.2000", targets=("1.2500", "1.2700", "1.3000")) -> SignalPlan:
    return SignalPlan(signal="BUY", confidence=85, entry=entry, stopLoss=stop, targets=list(targets))


def test_risk_reward_and_position_size():
    risk = compute_risk(_plan(), RiskSettings(balance=10000, riskPercent=1))

    assert risk.riskDistance == pytest.approx(0.0345)
    assert risk.rewardDistance == pytest.approx(0.0155)
    assert risk.rr == pytest.approx(0.4493, abs=1e-4)
    assert risk.rrLabel == "1:0.45"
    assert risk.riskCash == pytest.approx(100.0)
    # 100 cash at risk / 0.0345 per unit
    assert risk.positionSize == pytest.approx(2898.55, abs=0.01)


def test_default_risk_settings():
    settings = RiskSettings()
    assert settings.balance == 10000
    assert settings.riskPercent == 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.2345", 1.2345),
        ("$1,234.50", 1234.5),
        ("~ 42.10 USD", 42.10),
        ("1.2340 - 1.2350", 1.2340),
        (".75", 0.75),
        ("n/a", None),
        ("", None),
    ],
)
def test_parse_price_strips_noise(raw, expected):
    assert parse_price(raw) == expected


def test_unreadable_entry_is_unavailable():
    with pytest.raises(RiskUnavailable):
        compute_risk(_plan(entry="market"), RiskSettings())


def test_zero_risk_distance_is_unavailable():
    with pytest.raises(RiskUnavailable):
        compute_risk(_plan(entry="100", stop="$100.00"), RiskSettings())
