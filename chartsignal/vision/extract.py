from __future__ import annotations

import json
import math
from typing import Any, List, Optional

from pydantic import ValidationError

from ..errors import MalformedData, NoStructuredData, SchemaViolation
from .schema import SignalPlan

SIGNAL_ALIASES = {"HOLD": "WAIT", "NEUTRAL": "WAIT"}
SIGNALS = ("BUY", "SELL", "WAIT")


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level {...} in `text`, or None.

    Braces inside JSON string literals are ignored, so prose before the object
    and markdown fences or commentary after it do not matter.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    # opened but never closed (truncated answer)
    return None


def _signal(data: dict) -> str:
    raw = data.get("signal")
    if not isinstance(raw, str) or not raw.strip():
        raise SchemaViolation("signal", "missing or not a string")
    sig = raw.strip().upper()
    sig = SIGNAL_ALIASES.get(sig, sig)
    if sig not in SIGNALS:
        raise SchemaViolation("signal", f"{raw!r} is not one of {', '.join(SIGNALS)}")
    return sig


def _confidence(data: dict) -> int:
    raw = data.get("confidence")
    if isinstance(raw, bool) or raw is None:
        raise SchemaViolation("confidence", "missing or not a number")
    if isinstance(raw, str):
        raw = raw.strip().rstrip("%").strip()
    try:
        val = float(raw)
    except (TypeError, ValueError):
        raise SchemaViolation("confidence", f"{data.get('confidence')!r} is not a number") from None
    if not math.isfinite(val):
        raise SchemaViolation("confidence", "not a finite number")
    conf = int(round(val))
    if conf < 0 or conf > 100:
        raise SchemaViolation("confidence", f"{conf} is outside 0..100")
    return conf


def _price(data: dict, key: str) -> str:
    raw = data.get(key)
    if isinstance(raw, bool) or raw is None:
        raise SchemaViolation(key, "missing")
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    raise SchemaViolation(key, "must be a price string")


def _targets(data: dict) -> List[str]:
    raw = data.get("targets")
    if not isinstance(raw, list) or not raw:
        raise SchemaViolation("targets", "must be a non-empty list")
    out: List[str] = []
    for i, t in enumerate(raw):
        if isinstance(t, (int, float)) and not isinstance(t, bool):
            out.append(str(t))
        elif isinstance(t, str) and t.strip():
            out.append(t.strip())
        else:
            raise SchemaViolation("targets", f"item {i} is not a price string")
    return out


def _reasoning(data: dict) -> List[str]:
    raw = data.get("reasoning")
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw.strip()] if raw.strip() else []
    if not isinstance(raw, list):
        raise SchemaViolation("reasoning", "must be a list of strings")
    return [str(r).strip() for r in raw if r is not None and str(r).strip()]


def validate_plan(data: Any) -> SignalPlan:
    if not isinstance(data, dict):
        raise MalformedData(f"Expected a JSON object, got {type(data).__name__}")
    fields: dict[str, Any] = {
        "signal": _signal(data),
        "confidence": _confidence(data),
        "entry": _price(data, "entry"),
        "stopLoss": _price(data, "stopLoss"),
        "targets": _targets(data),
        "reasoning": _reasoning(data),
    }
    try:
        return SignalPlan.model_validate(fields)
    except ValidationError as e:
        err = e.errors()[0]
        raise SchemaViolation(".".join(str(p) for p in err["loc"]) or "plan", err["msg"]) from e


def extract(raw_text: str) -> SignalPlan:
    """Model free text -> validated SignalPlan.

    Tolerant of formatting noise (prose, code fences, trailing commentary),
    strict about the resulting fields.
    """
    candidate = find_json_object(raw_text or "")
    if candidate is None:
        raise NoStructuredData("No JSON object found in the model response")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedData(f"Model JSON could not be parsed: {e.msg} at position {e.pos}") from e
    return validate_plan(data)
