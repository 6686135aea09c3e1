"""
core/tiering.py -- CIA rating to application tier.

The submission questionnaire asks for confidentiality, integrity and
availability ratings on a 1-3 scale. Their mean, rounded to two decimals,
decides the tier that later drives the In Progress SLA window.

  score >= 2.33 -> High
  score >= 1.67 -> Medium
  otherwise     -> Low
"""

from dataclasses import dataclass
from typing import Any

_HIGH_THRESHOLD = 2.33
_MEDIUM_THRESHOLD = 1.67
_VALID_RATINGS = (1, 2, 3)

# Questionnaire keys, as stored in Ticket.details
CIA_FIELDS = ("confidentialityRating", "integrityRating", "availabilityRating")
TIER_FIELD = "calculatedTier"


@dataclass(frozen=True)
class TierResult:
    score: float
    tier: str


def calculate_tier(confidentiality: int, integrity: int, availability: int) -> TierResult:
    """Map three 1-3 ratings to a rounded score and a tier.

    Raises ValueError for ratings outside 1-3. The form layer constrains the
    inputs, so this only fires on programmatic misuse.
    """
    ratings = (confidentiality, integrity, availability)
    for rating in ratings:
        if rating not in _VALID_RATINGS:
            raise ValueError(f"CIA rating must be 1, 2 or 3, got {rating!r}")

    score = round(sum(ratings) / 3, 2)
    if score >= _HIGH_THRESHOLD:
        tier = "High"
    elif score >= _MEDIUM_THRESHOLD:
        tier = "Medium"
    else:
        tier = "Low"
    return TierResult(score=score, tier=tier)


def refresh_calculated_tier(details: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Recompute calculatedTier from the CIA ratings in a questionnaire record.

    Returns (details, changed). When the mapped tier equals the stored one the
    original dict is returned untouched, so callers can skip the write.
    Ratings may be stored as "1".."3" strings (the form's select values) or ints.
    """
    ratings = [int(details.get(key, 1)) for key in CIA_FIELDS]
    result = calculate_tier(*ratings)
    if details.get(TIER_FIELD) == result.tier:
        return details, False
    return {**details, TIER_FIELD: result.tier}, True
