"""Parse free-form judge output into a Recommendation."""

from __future__ import annotations

import json
import re

from ..types import Decision, Recommendation

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def normalize_decision(value: object) -> Decision:
    """Map a loosely formatted decision onto the closed set; unknown means confirm."""
    text = str(value or "").strip().upper()
    try:
        return Decision(text)
    except ValueError:
        return Decision.REQUIRE_CONFIRMATION


def parse_recommendation(text: str) -> Recommendation | None:
    """Return the recommendation embedded in ``text``, or None when malformed."""
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None

    explanation = str(parsed.get("explanation") or "").strip()
    if not explanation:
        return None
    raw_factors = parsed.get("riskFactors", parsed.get("risk_factors"))
    risk_factors = tuple(str(item) for item in raw_factors) if isinstance(raw_factors, list) else ()
    return Recommendation(
        decision=normalize_decision(parsed.get("decision")),
        risk_factors=risk_factors,
        explanation=explanation,
    )
