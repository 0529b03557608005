"""Per-dimension compatibility scorers.

Each scorer compares one aspect of an investor and a target and returns a
DimensionScore in [0, 1] with a short explanation. A score of None means
the dimension could not be computed (missing data on either side); the
MatchComputer leaves such dimensions out of the weighted average instead
of counting them as zero.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from matchiq.errors import UpstreamUnavailable
from matchiq.matching.currency import ExchangeRateConverter
from matchiq.matching.regions import RegionTable
from matchiq.processing.normalizer import Normalizer
from matchiq.profile.models import (
    IndustryRef,
    InvestorProfile,
    OwnershipPreference,
    TargetProfile,
)

logger = logging.getLogger(__name__)


class Dimension(str, Enum):
    """The six scored dimensions, in display order."""

    INDUSTRY = "industry"
    GEOGRAPHY = "geography"
    FINANCIAL = "financial"
    PROFILE = "profile"
    TIMELINE = "timeline"
    TRANSACTION = "transaction"


@dataclass(frozen=True)
class DimensionScore:
    """Score for one dimension. ``score`` is None when not computable."""

    dimension: Dimension
    score: Optional[float]
    explanation: str

    @property
    def computable(self) -> bool:
        return self.score is not None


class ScoringConfig(BaseModel):
    """Tunable thresholds and tolerances for the dimension scorers."""

    industry_fuzzy_threshold: float = Field(
        0.75, ge=0, le=1, description="Minimum name similarity for a fuzzy industry match"
    )
    region_match_score: float = Field(
        0.6, ge=0, le=1, description="Score when countries only share a region"
    )
    financial_tolerance: float = Field(
        0.5, gt=0, description="Relative distance outside the budget at which the score hits 0"
    )
    profile_tolerance: float = Field(
        0.5, gt=0, description="Relative distance outside a profile range at which the score hits 0"
    )
    flexible_timeline_score: float = Field(0.9, ge=0, le=1)
    timeline_zero_distance: int = Field(
        4, gt=0, description="Bucket distance at which the timeline score hits 0"
    )
    ownership_tolerance: float = Field(
        25.0, gt=0, description="Percentage-point gap at which the ownership score hits 0"
    )
    ownership_disjoint_score: float = Field(
        0.25, ge=0, le=1, description="Ownership score for adjacent, non-overlapping ranges"
    )
    structure_weight: float = Field(
        0.6, ge=0, le=1, description="Share of ownership structure in the transaction score"
    )


# Investor M&A purpose -> target reasons it is compatible with
PURPOSE_COMPATIBILITY: Dict[str, List[str]] = {
    "strategic expansion": ["strategic partnership", "market expansion", "growth acceleration"],
    "market entry": ["market expansion", "cross-border expansion", "strategic partnership"],
    "talent acquisition": ["strategic partnership", "growth acceleration"],
    "diversification": ["non-core divestment", "market expansion", "technology integration"],
    "technology acquisition": ["technology integration", "strategic partnership"],
    "financial investment": [
        "full exit",
        "partial exit",
        "capital raising",
        "owner's retirement",
        "business succession",
    ],
}

PURPOSE_ALIGNED_SCORE = 0.9
PURPOSE_NEAR_FACTOR = 0.85
PURPOSE_NEAR_THRESHOLD = 0.7
PURPOSE_UNRECOGNISED_SCORE = 0.15
PURPOSE_NONE_SCORE = 0.05

# Ownership condition keywords -> percentage range
OWNERSHIP_KEYWORDS: List[Tuple[Tuple[str, ...], Tuple[float, float]]] = [
    (("flexible", "negotiable", "open"), (0.0, 100.0)),
    (("full acquisition", "full buyout", "100%", "full"), (100.0, 100.0)),
    (("majority", "controlling", "51"), (51.0, 100.0)),
    (("minority", "<50", "less than 50"), (0.0, 49.0)),
]


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class DimensionScorer:
    """Scores an investor/target pair on each of the six dimensions.

    Holds only read-only configuration and lookup tables, so one instance
    can be shared across worker threads.
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        regions: Optional[RegionTable] = None,
        converter: Optional[ExchangeRateConverter] = None,
    ):
        self.config = config or ScoringConfig()
        self.regions = regions or RegionTable()
        self.converter = converter or ExchangeRateConverter()
        self.normalizer = Normalizer()

    def score_all(
        self,
        investor: InvestorProfile,
        target: TargetProfile,
        reference_date: Optional[date] = None,
    ) -> List[DimensionScore]:
        """Score every dimension, in Dimension order."""
        if reference_date is None:
            reference_date = date.today()

        return [
            self.score_industry(investor, target),
            self.score_geography(investor, target),
            self.score_financial(investor, target),
            self.score_profile(investor, target, reference_date),
            self.score_timeline(investor, target),
            self.score_transaction(investor, target),
        ]

    # ------------------------------------------------------------------
    # Industry
    # ------------------------------------------------------------------

    def score_industry(self, investor: InvestorProfile, target: TargetProfile) -> DimensionScore:
        """Jaccard overlap of industries, with a fuzzy name fallback."""
        dim = Dimension.INDUSTRY
        if not investor.industries:
            return DimensionScore(dim, None, "Investor has no industry preference")
        if not target.industries:
            return DimensionScore(dim, None, "Target has no industry on record")

        investor_ids = {i.id for i in investor.industries if i.id is not None}
        target_ids = {i.id for i in target.industries if i.id is not None}
        if investor_ids and target_ids:
            shared = investor_ids & target_ids
            if shared:
                names = sorted(i.name for i in target.industries if i.id in shared)
                return DimensionScore(
                    dim,
                    _clamp(len(shared) / len(investor_ids | target_ids)),
                    f"Shared industries: {', '.join(names)}",
                )

        investor_names = {i.key for i in investor.industries}
        target_names = {i.key for i in target.industries}
        shared_names = investor_names & target_names
        if shared_names:
            return DimensionScore(
                dim,
                _clamp(len(shared_names) / len(investor_names | target_names)),
                f"Shared industries: {', '.join(sorted(shared_names))}",
            )

        return self._fuzzy_industry(investor.industries, target.industries)

    def _fuzzy_industry(
        self, investor_industries: Sequence[IndustryRef], target_industries: Sequence[IndustryRef]
    ) -> DimensionScore:
        best = 0.0
        best_pair: Optional[Tuple[str, str]] = None
        for t in target_industries:
            for i in investor_industries:
                similarity = max(
                    self.normalizer.text_similarity(t.name, i.name),
                    self.normalizer.token_overlap(t.name, i.name),
                )
                if similarity > best:
                    best = similarity
                    best_pair = (t.name, i.name)

        if best_pair is not None and best >= self.config.industry_fuzzy_threshold:
            return DimensionScore(
                Dimension.INDUSTRY,
                _clamp(best),
                f'Similar industries: "{best_pair[0]}" ~ "{best_pair[1]}"',
            )
        return DimensionScore(Dimension.INDUSTRY, 0.0, "No industry overlap")

    # ------------------------------------------------------------------
    # Geography
    # ------------------------------------------------------------------

    def score_geography(self, investor: InvestorProfile, target: TargetProfile) -> DimensionScore:
        """Target HQ vs investor target countries, and the reverse direction."""
        dim = Dimension.GEOGRAPHY
        forward = self._geography_direction(investor.target_countries, target.hq_country)
        reverse = self._geography_direction(
            target.preferred_investor_countries, investor.hq_country
        )

        results = [r for r in (forward, reverse) if r is not None]
        if not results:
            if not investor.target_countries:
                return DimensionScore(dim, None, "Investor has no target country preference")
            return DimensionScore(dim, None, "Target has no HQ country on record")

        # Ties go to the forward direction, which is listed first
        score, explanation = max(results, key=lambda r: r[0])
        if forward is not None and reverse is not None and reverse[0] > forward[0]:
            explanation = f"{explanation} (target's investor preference)"
        return DimensionScore(dim, _clamp(score), explanation)

    def _geography_direction(
        self, wanted: Sequence[str], hq: Optional[str]
    ) -> Optional[Tuple[float, str]]:
        """Score one direction: an HQ country against a list of wanted places.

        Returns None when either side is missing.
        """
        if not wanted or not hq:
            return None

        hq_country = self.regions.resolve_country(hq) or hq.strip()
        hq_key = hq_country.lower()
        hq_regions = self.regions.regions_for(hq_country)

        for place in wanted:
            if self.regions.is_wildcard(place):
                return 1.0, f"{place} covers {hq_country}"
            resolved = self.regions.resolve(place) or place.strip()
            if resolved.lower() == hq_key:
                return 1.0, f"HQ country {hq_country} is a target country"

        for place in wanted:
            resolved = self.regions.resolve(place) or place.strip()
            if self.regions.is_region(resolved):
                if hq_country in self.regions.members(resolved):
                    return self.config.region_match_score, f"{hq_country} is in {resolved}"
                continue
            shared = hq_regions & self.regions.regions_for(resolved)
            if shared:
                region = sorted(shared)[0]
                return (
                    self.config.region_match_score,
                    f"{hq_country} shares region {region} with {resolved}",
                )

        return 0.0, f"{hq_country} is outside the target countries"

    # ------------------------------------------------------------------
    # Financial
    # ------------------------------------------------------------------

    def score_financial(self, investor: InvestorProfile, target: TargetProfile) -> DimensionScore:
        """Target ask vs investor budget, both converted to USD."""
        dim = Dimension.FINANCIAL
        budget = investor.budget
        if budget is None or budget.is_empty():
            return DimensionScore(dim, None, "Investor has no budget set")

        ask = target.financials.ask()
        if ask is None:
            return DimensionScore(dim, None, "Target has no investment amount or valuation")

        try:
            budget_min = self.converter.to_usd(budget.min or 0.0, budget.currency)
            budget_max = (
                self.converter.to_usd(budget.max, budget.currency)
                if budget.max is not None
                else math.inf
            )
            ask_min = self.converter.to_usd(ask[0], target.financials.currency)
            ask_max = self.converter.to_usd(ask[1], target.financials.currency)
        except UpstreamUnavailable as e:
            logger.warning(f"Financial score skipped for investor {investor.id}: {e}")
            return DimensionScore(dim, None, "Exchange rates unavailable")

        if ask_min >= budget_min and ask_max <= budget_max:
            return DimensionScore(dim, 1.0, "Deal size fits the investor budget (USD)")

        excess = 0.0
        if ask_max > budget_max:
            excess = (ask_max - budget_max) / budget_max if budget_max > 0 else math.inf
        if ask_min < budget_min:
            excess = max(excess, (budget_min - ask_min) / budget_min)

        score = _clamp(1.0 - excess / self.config.financial_tolerance)
        direction = "above" if ask_max > budget_max else "below"
        return DimensionScore(
            dim, score, f"Deal size {excess:.0%} {direction} the investor budget (USD)"
        )

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def score_profile(
        self,
        investor: InvestorProfile,
        target: TargetProfile,
        reference_date: Optional[date] = None,
    ) -> DimensionScore:
        """Average of company type, employee count and company age checks."""
        if reference_date is None:
            reference_date = date.today()

        prefs = investor.attributes
        attrs = target.attributes
        checks: List[Tuple[str, float]] = []

        if prefs.company_types and attrs.company_type:
            wanted = {self.normalizer.normalize_text(t) for t in prefs.company_types}
            matched = self.normalizer.normalize_text(attrs.company_type) in wanted
            checks.append(("company type", 1.0 if matched else 0.0))

        if (prefs.employee_min is not None or prefs.employee_max is not None) and (
            attrs.employee_count is not None
        ):
            checks.append((
                "employees",
                self._range_score(attrs.employee_count, prefs.employee_min, prefs.employee_max),
            ))

        if (
            prefs.min_years_in_business is not None or prefs.max_years_in_business is not None
        ) and attrs.year_founded is not None:
            years = max(0, reference_date.year - attrs.year_founded)
            checks.append((
                "years in business",
                self._range_score(years, prefs.min_years_in_business, prefs.max_years_in_business),
            ))

        if not checks:
            return DimensionScore(Dimension.PROFILE, None, "No comparable profile attributes")

        score = sum(value for _, value in checks) / len(checks)
        details = ", ".join(f"{name} {value:.0%}" for name, value in checks)
        return DimensionScore(Dimension.PROFILE, _clamp(score), f"Profile fit: {details}")

    def _range_score(self, value: float, low: Optional[float], high: Optional[float]) -> float:
        """1.0 inside [low, high], decaying with relative distance outside."""
        distance = 0.0
        if low is not None and value < low:
            distance = (low - value) / low if low > 0 else 0.0
        elif high is not None and value > high:
            distance = (value - high) / high if high > 0 else math.inf
        return _clamp(1.0 - distance / self.config.profile_tolerance)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def score_timeline(self, investor: InvestorProfile, target: TargetProfile) -> DimensionScore:
        """Distance between timeline buckets."""
        dim = Dimension.TIMELINE
        buckets = Normalizer.TIMELINE_BUCKETS
        flexible = Normalizer.FLEXIBLE_TIMELINE

        investor_timeline = self.normalizer.normalize_timeline(investor.timeline)
        target_timeline = self.normalizer.normalize_timeline(target.timeline)
        if investor_timeline is None:
            return DimensionScore(dim, None, "Investor timeline missing or unrecognised")
        if target_timeline is None:
            return DimensionScore(dim, None, "Target timeline missing or unrecognised")

        if investor_timeline == flexible or target_timeline == flexible:
            who = "Investor" if investor_timeline == flexible else "Target"
            return DimensionScore(
                dim, self.config.flexible_timeline_score, f"{who} timeline is flexible"
            )

        distance = abs(buckets.index(investor_timeline) - buckets.index(target_timeline))
        score = _clamp(1.0 - distance / self.config.timeline_zero_distance)
        if distance == 0:
            return DimensionScore(dim, score, f"Both expect {investor_timeline}")
        return DimensionScore(
            dim, score, f"Investor expects {investor_timeline}, target {target_timeline}"
        )

    # ------------------------------------------------------------------
    # Transaction / ownership
    # ------------------------------------------------------------------

    def score_transaction(self, investor: InvestorProfile, target: TargetProfile) -> DimensionScore:
        """Ownership structure (60%) combined with M&A purpose alignment (40%)."""
        structure = self.score_structure(investor.ownership, target.ownership)
        purpose = self.score_purpose(investor.purposes, target.reasons)

        if structure is None and purpose is None:
            return DimensionScore(
                Dimension.TRANSACTION, None, "No ownership or purpose data on both sides"
            )
        if purpose is None:
            return DimensionScore(Dimension.TRANSACTION, structure[0], structure[1])
        if structure is None:
            return DimensionScore(Dimension.TRANSACTION, purpose[0], purpose[1])

        weight = self.config.structure_weight
        combined = structure[0] * weight + purpose[0] * (1 - weight)
        return DimensionScore(
            Dimension.TRANSACTION, _clamp(combined), f"{structure[1]}; {purpose[1]}"
        )

    def ownership_range(self, pref: OwnershipPreference) -> Optional[Tuple[float, float]]:
        """Percentage range for an ownership preference, or None if unknown."""
        if pref.min_pct is not None and pref.max_pct is not None:
            return pref.min_pct, pref.max_pct

        ranges = []
        for condition in pref.conditions:
            text = self.normalizer.normalize_text(condition)
            for keywords, pct_range in OWNERSHIP_KEYWORDS:
                if any(keyword in text for keyword in keywords):
                    ranges.append(pct_range)
                    break
        if not ranges:
            return None
        return min(r[0] for r in ranges), max(r[1] for r in ranges)

    def score_structure(
        self, investor_pref: OwnershipPreference, target_pref: OwnershipPreference
    ) -> Optional[Tuple[float, str]]:
        """Compare ownership ranges. None when either side is unknown."""
        wanted = self.ownership_range(investor_pref)
        offered = self.ownership_range(target_pref)
        if wanted is None or offered is None:
            return None

        w_low, w_high = wanted
        o_low, o_high = offered
        label = f"investor {w_low:g}-{w_high:g}%, target {o_low:g}-{o_high:g}%"

        if (w_low <= o_low and o_high <= w_high) or (o_low <= w_low and w_high <= o_high):
            return 1.0, f"Ownership compatible ({label})"

        overlap = min(w_high, o_high) - max(w_low, o_low)
        if overlap > 0:
            narrower = min(w_high - w_low, o_high - o_low)
            return _clamp(overlap / narrower), f"Ownership partially overlaps ({label})"

        gap = -overlap
        tolerance = self.config.ownership_tolerance
        score = self.config.ownership_disjoint_score * _clamp(1.0 - gap / tolerance)
        return score, f"Ownership mismatch ({label})"

    def score_purpose(
        self, purposes: Sequence[str], reasons: Sequence[str]
    ) -> Optional[Tuple[float, str]]:
        """Investor purposes against target reasons via the compatibility table."""
        if not purposes or not reasons:
            return None

        investor_purposes = [self.normalizer.normalize_text(p) for p in purposes]
        target_reasons = [self.normalizer.normalize_text(r) for r in reasons]

        best = 0.0
        best_explanation = ""
        unrecognised = False

        for purpose in investor_purposes:
            compatible = PURPOSE_COMPATIBILITY.get(purpose)
            if compatible is None:
                unrecognised = True
                continue

            for reason in target_reasons:
                if reason in compatible:
                    return PURPOSE_ALIGNED_SCORE, f'Purpose "{purpose}" aligns with "{reason}"'

                for candidate in compatible:
                    similarity = self.normalizer.text_similarity(reason, candidate)
                    score = similarity * PURPOSE_NEAR_FACTOR
                    if similarity > PURPOSE_NEAR_THRESHOLD and score > best:
                        best = score
                        best_explanation = f'Purpose "{reason}" is close to "{candidate}"'

        if best > 0:
            return best, best_explanation
        if unrecognised:
            return PURPOSE_UNRECOGNISED_SCORE, "Purpose not recognised"
        return PURPOSE_NONE_SCORE, "No purpose alignment"
