"""Profile module for investor and target prospect data."""

from matchiq.profile.models import (
    FinancialFigures,
    IndustryRef,
    InvestorAttributes,
    InvestorProfile,
    MoneyRange,
    OwnershipPreference,
    ProspectStatus,
    TargetAttributes,
    TargetProfile,
)

__all__ = [
    "FinancialFigures",
    "IndustryRef",
    "InvestorAttributes",
    "InvestorProfile",
    "MoneyRange",
    "OwnershipPreference",
    "ProspectStatus",
    "TargetAttributes",
    "TargetProfile",
]
