"""MatchIQ: investor/target match scoring for M&A deal origination."""

__version__ = "0.1.0"
