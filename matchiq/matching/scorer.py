"""Composite match score calculation.

Combines the six dimension scores into a 0-100 total:

    total = round(100 * sum(w_i * s_i) / sum(w_i))

where the sums only run over dimensions that could be computed. Default
weights:
- industry * 0.25
- geography * 0.20
- financial * 0.20
- profile * 0.10
- timeline * 0.10
- transaction * 0.15
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from matchiq.errors import InvalidWeights
from matchiq.matching.dimensions import Dimension, DimensionScore, DimensionScorer
from matchiq.profile.models import InvestorProfile, TargetProfile

logger = logging.getLogger(__name__)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a person would: 0.5 always goes up."""
    exponent = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP))


class MatchWeights(BaseModel):
    """Relative importance of each dimension.

    Weights need not sum to 1: the total is normalised by the weights of
    the dimensions actually scored.
    """

    industry: float = 0.25
    geography: float = 0.20
    financial: float = 0.20
    profile: float = 0.10
    timeline: float = 0.10
    transaction: float = 0.15

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MatchWeights":
        """Build weights from a partial mapping, rejecting unknown names."""
        known = {d.value for d in Dimension}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidWeights(f"Unknown weight(s): {', '.join(unknown)}")
        try:
            values = {name: float(value) for name, value in data.items()}
        except (TypeError, ValueError) as e:
            raise InvalidWeights(f"Weights must be numbers: {e}") from e
        weights = cls(**values)
        weights.check()
        return weights

    def check(self) -> None:
        """Raise InvalidWeights unless all weights are finite, non-negative
        and at least one is positive."""
        values = self.as_dict()
        bad = [name for name, value in values.items() if not math.isfinite(value) or value < 0]
        if bad:
            raise InvalidWeights(f"Weights must be non-negative: {', '.join(bad)}")
        if not any(value > 0 for value in values.values()):
            raise InvalidWeights("At least one weight must be positive")

    def as_dict(self) -> Dict[str, float]:
        return {d.value: getattr(self, d.value) for d in Dimension}

    def for_dimension(self, dimension: Dimension) -> float:
        return getattr(self, dimension.value)


class Tier(str, Enum):
    """Match quality band derived from the total score."""

    EXCELLENT = "excellent"
    STRONG = "strong"
    GOOD = "good"
    FAIR = "fair"
    LOW = "low"

    @classmethod
    def from_score(cls, score: int) -> "Tier":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 80:
            return cls.STRONG
        if score >= 70:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        return cls.LOW

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} Match"

    @property
    def score_range(self) -> Tuple[int, int]:
        """Inclusive (min, max) total score for this tier."""
        return TIER_RANGES[self]


TIER_RANGES: Dict[Tier, Tuple[int, int]] = {
    Tier.EXCELLENT: (90, 100),
    Tier.STRONG: (80, 89),
    Tier.GOOD: (70, 79),
    Tier.FAIR: (60, 69),
    Tier.LOW: (0, 59),
}


@dataclass
class ScoreCard:
    """Complete match score with per-dimension breakdown."""
    investor_id: int
    target_id: int
    total_score: int                               # 0-100
    dimensions: Dict[Dimension, DimensionScore] = field(default_factory=dict)

    @property
    def tier(self) -> Tier:
        return Tier.from_score(self.total_score)

    def score_for(self, dimension: Dimension) -> Optional[float]:
        """Dimension score rounded to 4 decimals, None if not computable."""
        result = self.dimensions.get(dimension)
        if result is None or result.score is None:
            return None
        return round_half_up(result.score, 4)

    @property
    def explanations(self) -> Dict[str, str]:
        return {d.value: result.explanation for d, result in self.dimensions.items()}

    def record_values(self) -> Dict[str, Any]:
        """Column values for the matches table."""
        values: Dict[str, Any] = {
            "investor_id": self.investor_id,
            "target_id": self.target_id,
            "total_score": self.total_score,
            "explanations": self.explanations,
        }
        for dimension in Dimension:
            values[f"{dimension.value}_score"] = self.score_for(dimension)
        return values

    def to_dict(self) -> Dict[str, Any]:
        return {
            "investor_id": self.investor_id,
            "target_id": self.target_id,
            "total_score": self.total_score,
            "tier": self.tier.value,
            "breakdown": {d.value: self.score_for(d) for d in Dimension},
            "explanations": self.explanations,
        }


class MatchComputer:
    """Calculates composite match scores."""

    def __init__(self, scorer: Optional[DimensionScorer] = None):
        """Initialize the computer.

        Args:
            scorer: Dimension scorer to use (default: one with default config)
        """
        self.scorer = scorer or DimensionScorer()

    def compute(
        self,
        investor: InvestorProfile,
        target: TargetProfile,
        weights: Optional[MatchWeights] = None,
        reference_date: Optional[date] = None,
    ) -> ScoreCard:
        """Score one investor/target pair.

        Args:
            investor: Investor profile
            target: Target profile
            weights: Dimension weights (default: MatchWeights())
            reference_date: Date used for company age (default: today)

        Returns:
            ScoreCard with total and breakdown

        Raises:
            InvalidWeights: If the weights cannot be used
        """
        if weights is None:
            weights = MatchWeights()
        weights.check()

        results = self.scorer.score_all(investor, target, reference_date)

        weighted_sum = 0.0
        weight_total = 0.0
        for result in results:
            if result.score is None:
                continue
            weight = weights.for_dimension(result.dimension)
            weighted_sum += weight * result.score
            weight_total += weight

        total = 0
        if weight_total > 0:
            total = int(round_half_up(100 * weighted_sum / weight_total))
        total = min(100, max(0, total))

        return ScoreCard(
            investor_id=investor.id,
            target_id=target.id,
            total_score=total,
            dimensions={result.dimension: result for result in results},
        )

    def compute_batch(
        self,
        pairs: List[Tuple[InvestorProfile, TargetProfile]],
        weights: Optional[MatchWeights] = None,
        reference_date: Optional[date] = None,
    ) -> List[ScoreCard]:
        """Score several pairs with the same weights and reference date."""
        if reference_date is None:
            reference_date = date.today()

        cards = [self.compute(investor, target, weights, reference_date) for investor, target in pairs]
        logger.info(f"Calculated {len(cards)} match scores")
        return cards
