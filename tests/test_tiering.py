"""Unit tests for core/tiering.py -- CIA ratings to application tier.

Covers:
- Threshold boundaries (2.33 -> High, 1.67 -> Medium) after two-decimal rounding
- Out-of-range ratings raise ValueError
- refresh_calculated_tier() accepts string ratings and skips no-op writes
"""

import pytest

from core.tiering import TIER_FIELD, calculate_tier, refresh_calculated_tier


class TestCalculateTier:
    @pytest.mark.parametrize(
        "ratings, score, tier",
        [
            ((3, 3, 3), 3.0, "High"),
            ((3, 2, 2), 2.33, "High"),
            ((2, 2, 2), 2.0, "Medium"),
            ((2, 2, 1), 1.67, "Medium"),
            ((2, 1, 1), 1.33, "Low"),
            ((1, 1, 1), 1.0, "Low"),
        ],
    )
    def test_thresholds(self, ratings, score, tier) -> None:
        result = calculate_tier(*ratings)
        assert result.score == score
        assert result.tier == tier

    def test_rating_order_does_not_matter(self) -> None:
        assert calculate_tier(1, 2, 3).tier == calculate_tier(3, 2, 1).tier == "Medium"

    @pytest.mark.parametrize("bad", [0, 4, -1])
    def test_out_of_range_rating_raises(self, bad: int) -> None:
        with pytest.raises(ValueError):
            calculate_tier(bad, 2, 2)


class TestRefreshCalculatedTier:
    def test_string_ratings_are_recomputed(self) -> None:
        """The form stores ratings as "1".."3" strings."""
        details = {
            "confidentialityRating": "3",
            "integrityRating": "3",
            "availabilityRating": "2",
            TIER_FIELD: "Low",
        }
        updated, changed = refresh_calculated_tier(details)
        assert changed is True
        assert updated[TIER_FIELD] == "High"
        # Input dict is not mutated
        assert details[TIER_FIELD] == "Low"

    def test_matching_tier_returns_same_dict(self) -> None:
        details = {
            "confidentialityRating": "2",
            "integrityRating": "2",
            "availabilityRating": "2",
            TIER_FIELD: "Medium",
        }
        updated, changed = refresh_calculated_tier(details)
        assert changed is False
        assert updated is details

    def test_missing_ratings_default_to_lowest(self) -> None:
        updated, changed = refresh_calculated_tier({})
        assert changed is True
        assert updated[TIER_FIELD] == "Low"
