from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ----------------------------
# Users / settings
# ----------------------------
DEFAULT_BALANCE = 10000.0
DEFAULT_RISK_PERCENT = 1.0


class RiskSettings(BaseModel):
    balance: float = Field(DEFAULT_BALANCE, gt=0)
    riskPercent: float = Field(DEFAULT_RISK_PERCENT, gt=0, le=100)


class User(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
    apiKey: str = ""
    riskSettings: Optional[RiskSettings] = None
    joined: Optional[str] = None


# ----------------------------
# Model output
# ----------------------------
Mode = Literal["scalp", "swing"]
MODES = ("scalp", "swing")

Signal = Literal["BUY", "SELL", "WAIT"]


class SignalPlan(BaseModel):
    signal: Signal
    confidence: int = Field(ge=0, le=100)
    entry: str
    stopLoss: str
    targets: List[str] = Field(min_length=1)  # nearest -> farthest
    reasoning: List[str] = Field(default_factory=list)


# ----------------------------
# Journal
# ----------------------------
class ImageRef(BaseModel):
    filename: str
    path: str
    url: str
    content_type: str
    size: int


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    userId: str
    mode: Optional[str] = None
    imageUrl: str
    timestamp: str
    result: SignalPlan


# ----------------------------
# Risk sizing
# ----------------------------
class RiskPlan(BaseModel):
    riskDistance: float
    rewardDistance: float
    rr: float
    rrLabel: str
    riskCash: float
    positionSize: float
