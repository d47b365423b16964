from __future__ import annotations

import re
from typing import Optional

from ..errors import RiskUnavailable
from .schema import RiskPlan, RiskSettings, SignalPlan

_NUM_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def parse_price(s: str | None) -> Optional[float]:
    """Best-effort price parse: "$1,234.50" -> 1234.5, "1.2340 - 1.2350" -> 1.234.

    Thousands separators and currency symbols are dropped; the first number
    wins. No locale handling (',' is never a decimal point).
    """
    if s is None:
        return None
    m = _NUM_RE.search(str(s).replace(",", ""))
    if not m:
        return None
    return float(m.group(0))


def compute_risk(plan: SignalPlan, settings: RiskSettings) -> RiskPlan:
    entry = parse_price(plan.entry)
    stop = parse_price(plan.stopLoss)
    target = parse_price(plan.targets[0]) if plan.targets else None
    if entry is None or stop is None:
        raise RiskUnavailable(f"Unreadable entry/stop: {plan.entry!r} / {plan.stopLoss!r}")
    if target is None:
        raise RiskUnavailable(f"Unreadable first target: {plan.targets[0]!r}")

    risk = abs(entry - stop)
    if risk <= 0:
        raise RiskUnavailable("Entry and stop loss are the same price")
    reward = abs(target - entry)

    rr = reward / risk
    risk_cash = settings.balance * (settings.riskPercent / 100)
    return RiskPlan(
        riskDistance=round(risk, 8),
        rewardDistance=round(reward, 8),
        rr=round(rr, 4),
        rrLabel=f"1:{rr:.2f}",
        riskCash=round(risk_cash, 2),
        positionSize=round(risk_cash / risk, 2),
    )
