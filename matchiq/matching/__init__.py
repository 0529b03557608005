"""Matching module for dimension scoring, weighted totals and the review lifecycle."""

from matchiq.matching.currency import ExchangeRateConverter, StaticRateSource
from matchiq.matching.dimensions import Dimension, DimensionScore, DimensionScorer, ScoringConfig
from matchiq.matching.lifecycle import LifecycleAction, MatchLifecycle, MatchStatus
from matchiq.matching.regions import RegionTable
from matchiq.matching.scorer import MatchComputer, MatchWeights, ScoreCard, Tier

__all__ = [
    "ExchangeRateConverter",
    "StaticRateSource",
    "Dimension",
    "DimensionScore",
    "DimensionScorer",
    "ScoringConfig",
    "LifecycleAction",
    "MatchLifecycle",
    "MatchStatus",
    "RegionTable",
    "MatchComputer",
    "MatchWeights",
    "ScoreCard",
    "Tier",
]
