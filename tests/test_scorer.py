"""
Tests for MatchComputer, MatchWeights and Tier

Covers:
- Weighted average over computable dimensions only
- Half-up rounding and clamping of the total
- Tier bands at their boundaries
- Weight validation
"""

from datetime import date

import pytest

from matchiq.errors import InvalidWeights
from matchiq.matching.dimensions import Dimension
from matchiq.matching.scorer import MatchWeights, Tier, round_half_up

from conftest import make_investor, make_target


REFERENCE = date(2026, 1, 1)


# =============================================================================
# TOTAL SCORE
# =============================================================================

class TestCompute:

    def test_single_industry_dimension(self, computer):
        investor = make_investor(industries=["Tech", "Retail"])
        target = make_target(industries=["Tech"])
        card = computer.compute(investor, target, reference_date=REFERENCE)

        assert card.score_for(Dimension.INDUSTRY) == 0.5
        assert card.total_score == 50
        # 50 sits in the low band: fair starts at 60
        assert card.tier == Tier.LOW

    def test_budget_fit_is_excellent(self, computer):
        investor = make_investor(budget={"min": 1_000_000, "max": 5_000_000, "currency": "USD"})
        target = make_target(financials={"investment_amount": 3_000_000, "currency": "USD"})
        card = computer.compute(investor, target, reference_date=REFERENCE)

        assert card.score_for(Dimension.FINANCIAL) == 1.0
        assert card.total_score == 100
        assert card.tier == Tier.EXCELLENT

    def test_nothing_computable_scores_zero(self, computer):
        card = computer.compute(make_investor(), make_target(), reference_date=REFERENCE)
        assert card.total_score == 0
        assert all(card.score_for(d) is None for d in Dimension)

    def test_weights_of_missing_dimensions_do_not_matter(self, computer):
        investor = make_investor(industries=["Tech", "Retail"])
        target = make_target(industries=["Tech"])
        heavy_geo = MatchWeights(geography=5.0, financial=3.0)

        default = computer.compute(investor, target, reference_date=REFERENCE)
        weighted = computer.compute(investor, target, heavy_geo, reference_date=REFERENCE)
        assert default.total_score == weighted.total_score == 50

    def test_weighted_average(self, computer):
        # industry 1.0 (w 0.25) and timeline 0.25 (w 0.10)
        investor = make_investor(industries=["Tech"], timeline="ASAP")
        target = make_target(industries=["Tech"], timeline="6-12 months")
        card = computer.compute(investor, target, reference_date=REFERENCE)
        assert card.total_score == round(100 * (0.25 + 0.025) / 0.35)

    def test_deterministic(self, computer):
        investor = make_investor(
            industries=["Food Processing"],
            target_countries=["ASEAN"],
            timeline="3-6 months",
        )
        target = make_target(
            industries=["Food Processing Industry"],
            hq_country="Vietnam",
            timeline="6-12 months",
        )
        first = computer.compute(investor, target, reference_date=REFERENCE)
        second = computer.compute(investor, target, reference_date=REFERENCE)
        assert first.to_dict() == second.to_dict()
        assert 0 <= first.total_score <= 100

    def test_record_values(self, computer):
        investor = make_investor(industries=["Tech"])
        target = make_target(industries=["Tech"])
        values = computer.compute(investor, target, reference_date=REFERENCE).record_values()

        assert values["investor_id"] == 1
        assert values["target_id"] == 2
        assert values["industry_score"] == 1.0
        assert values["geography_score"] is None
        assert set(values["explanations"]) == {d.value for d in Dimension}

    def test_invalid_weights_rejected_before_scoring(self, computer):
        zero = MatchWeights(
            industry=0, geography=0, financial=0, profile=0, timeline=0, transaction=0
        )
        with pytest.raises(InvalidWeights):
            computer.compute(make_investor(), make_target(), zero)

    def test_batch(self, computer):
        pairs = [(make_investor(), make_target(id=n)) for n in range(2, 5)]
        cards = computer.compute_batch(pairs, reference_date=REFERENCE)
        assert [c.target_id for c in cards] == [2, 3, 4]


# =============================================================================
# ROUNDING
# =============================================================================

class TestRoundHalfUp:

    @pytest.mark.parametrize("value,digits,expected", [
        (62.5, 0, 63.0),
        (0.5, 0, 1.0),
        (49.4999, 0, 49.0),
        (0.12345, 4, 0.1235),
    ])
    def test_rounding(self, value, digits, expected):
        assert round_half_up(value, digits) == expected


# =============================================================================
# TIERS
# =============================================================================

class TestTier:

    @pytest.mark.parametrize("score,tier", [
        (100, Tier.EXCELLENT),
        (90, Tier.EXCELLENT),
        (89, Tier.STRONG),
        (80, Tier.STRONG),
        (79, Tier.GOOD),
        (70, Tier.GOOD),
        (69, Tier.FAIR),
        (60, Tier.FAIR),
        (59, Tier.LOW),
        (0, Tier.LOW),
    ])
    def test_boundaries(self, score, tier):
        assert Tier.from_score(score) == tier

    def test_label_and_range(self):
        assert Tier.STRONG.label == "Strong Match"
        assert Tier.GOOD.score_range == (70, 79)


# =============================================================================
# WEIGHTS
# =============================================================================

class TestMatchWeights:

    def test_defaults(self):
        weights = MatchWeights()
        assert weights.as_dict() == {
            "industry": 0.25,
            "geography": 0.20,
            "financial": 0.20,
            "profile": 0.10,
            "timeline": 0.10,
            "transaction": 0.15,
        }

    def test_partial_mapping(self):
        weights = MatchWeights.from_mapping({"industry": "0.5"})
        assert weights.industry == 0.5
        assert weights.geography == 0.20

    def test_unknown_name(self):
        with pytest.raises(InvalidWeights, match="colour"):
            MatchWeights.from_mapping({"colour": 1})

    def test_negative(self):
        with pytest.raises(InvalidWeights):
            MatchWeights.from_mapping({"timeline": -0.1})

    def test_not_a_number(self):
        with pytest.raises(InvalidWeights):
            MatchWeights.from_mapping({"timeline": "lots"})

    def test_invalid_weights_is_a_value_error(self):
        with pytest.raises(ValueError):
            MatchWeights.from_mapping({"industry": float("nan")})
