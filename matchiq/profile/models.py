"""Pydantic models for investor and target profile data.

Collaborators store most profile fields as JSON or delimited strings;
validators here coerce them into lists and ranges so the scorers never see
raw storage formats.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from matchiq.processing.normalizer import Normalizer

_normalizer = Normalizer()


class ProspectStatus(str, Enum):
    """Record status of an investor or target prospect."""

    ACTIVE = "active"
    DRAFT = "draft"
    INACTIVE = "inactive"


class IndustryRef(BaseModel):
    """An industry entry, with its canonical id when known.

    Ad-hoc industries typed in during imports only carry a name.
    """

    id: Optional[int] = Field(None, description="Canonical industry id")
    name: str = Field(..., min_length=1, description="Industry name")

    @property
    def key(self) -> str:
        return _normalizer.normalize_text(self.name)


class MoneyRange(BaseModel):
    """A monetary range in a single currency. Either bound may be open."""

    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = Field("USD", description="ISO 4217 currency code")

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        # Accept 5000000, "$1M - $5M", [min, max] and {"min": .., "max": ..}
        if isinstance(data, (int, float)):
            return {"min": data, "max": data}
        if isinstance(data, str):
            low, high = _normalizer.normalize_amount(data)
            return {"min": low, "max": high}
        if isinstance(data, (list, tuple)):
            values = list(data) + [None, None]
            return {"min": values[0], "max": values[1]}
        return data

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> str:
        if not value:
            return "USD"
        return str(value).strip().upper()

    @model_validator(mode="after")
    def _ordered(self) -> "MoneyRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            self.min, self.max = self.max, self.min
        return self

    def is_empty(self) -> bool:
        return self.min is None and self.max is None


class OwnershipPreference(BaseModel):
    """Ownership stake sought (investor) or offered (target).

    Percentages are 0-100. Conditions are free keywords such as
    "majority", "minority", "full acquisition" or "flexible".
    """

    min_pct: Optional[float] = Field(None, ge=0, le=100)
    max_pct: Optional[float] = Field(None, ge=0, le=100)
    conditions: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, (int, float)):
            return {"min_pct": data, "max_pct": data}
        if isinstance(data, str):
            pct = _normalizer.normalize_percentage(data) if "%" in data else None
            if pct is not None:
                return {"min_pct": pct, "max_pct": pct}
            return {"conditions": data}
        if isinstance(data, list):
            return {"conditions": data}
        return data

    @field_validator("conditions", mode="before")
    @classmethod
    def _parse_conditions(cls, value: Any) -> list[str]:
        return [str(v) for v in _normalizer.parse_multi_value(value)]

    @model_validator(mode="after")
    def _ordered(self) -> "OwnershipPreference":
        if self.min_pct is not None and self.max_pct is None:
            self.max_pct = self.min_pct
        if self.max_pct is not None and self.min_pct is None:
            self.min_pct = self.max_pct
        if self.min_pct is not None and self.max_pct is not None and self.min_pct > self.max_pct:
            self.min_pct, self.max_pct = self.max_pct, self.min_pct
        return self

    def is_empty(self) -> bool:
        return self.min_pct is None and not self.conditions


class InvestorAttributes(BaseModel):
    """Qualitative preferences an investor has about its targets."""

    company_types: list[str] = Field(
        default_factory=list, description="Preferred target company types"
    )
    employee_min: Optional[int] = Field(None, ge=0)
    employee_max: Optional[int] = Field(None, ge=0)
    min_years_in_business: Optional[int] = Field(None, ge=0)
    max_years_in_business: Optional[int] = Field(None, ge=0)

    @field_validator("company_types", mode="before")
    @classmethod
    def _parse_types(cls, value: Any) -> list[str]:
        return [str(v) for v in _normalizer.parse_multi_value(value)]


class TargetAttributes(BaseModel):
    """Descriptive attributes of a target company."""

    company_type: Optional[str] = None
    employee_count: Optional[int] = Field(None, ge=0)
    year_founded: Optional[int] = Field(None, ge=1600, le=3000)


class FinancialFigures(BaseModel):
    """Financial figures disclosed by a target."""

    revenue: Optional[float] = Field(None, ge=0)
    ebitda: Optional[float] = None
    ebitda_multiple: Optional[float] = Field(None, ge=0)
    asking_valuation: Optional[float] = Field(None, ge=0)
    investment_amount: Optional[MoneyRange] = Field(
        None, description="Desired investment amount (range or single value)"
    )
    currency: str = Field("USD", description="Currency of all figures above")

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> str:
        if not value:
            return "USD"
        return str(value).strip().upper()

    @model_validator(mode="after")
    def _investment_currency(self) -> "FinancialFigures":
        # The investment range is always quoted in the target's currency
        if self.investment_amount is not None:
            self.investment_amount.currency = self.currency
        return self

    def ask(self) -> Optional[tuple[float, float]]:
        """Return the target's ask as a (min, max) range in its own currency.

        Uses the desired investment amount when present, otherwise the
        asking valuation (or EBITDA x multiple) as a single point.
        """
        amount = self.investment_amount
        if amount is not None and not amount.is_empty():
            low = amount.min if amount.min is not None else amount.max
            high = amount.max if amount.max is not None else amount.min
            return low, high

        valuation = self.asking_valuation
        if valuation is None and self.ebitda is not None and self.ebitda_multiple is not None:
            valuation = max(0.0, self.ebitda * self.ebitda_multiple)
        if valuation is not None:
            return valuation, valuation
        return None


def _parse_industries(value: Any) -> list[Any]:
    items = []
    for item in _normalizer.parse_multi_value(value):
        if isinstance(item, dict):
            if item.get("name"):
                items.append(item)
        elif isinstance(item, IndustryRef):
            items.append(item)
        else:
            items.append({"name": str(item)})
    return items


def _parse_countries(value: Any) -> list[str]:
    countries = []
    for item in _normalizer.parse_multi_value(value):
        if isinstance(item, dict):
            item = item.get("name") or item.get("id") or item.get("country_id")
        if item is None or item == "":
            continue
        countries.append(str(item).strip())
    return countries


class InvestorProfile(BaseModel):
    """An investor (buyer) prospect as seen by the matching engine."""

    id: int
    name: Optional[str] = None
    status: ProspectStatus = ProspectStatus.ACTIVE
    hq_country: Optional[str] = None

    industries: list[IndustryRef] = Field(
        default_factory=list, description="Industries the investor wants to buy into"
    )
    target_countries: list[str] = Field(
        default_factory=list, description="Countries or regions the investor targets"
    )
    budget: Optional[MoneyRange] = None
    timeline: Optional[str] = Field(None, description="Expected transaction timeline")
    ownership: OwnershipPreference = Field(default_factory=OwnershipPreference)
    purposes: list[str] = Field(default_factory=list, description="M&A purposes")
    attributes: InvestorAttributes = Field(default_factory=InvestorAttributes)

    _parse_industries = field_validator("industries", mode="before")(
        classmethod(lambda cls, v: _parse_industries(v))
    )
    _parse_countries = field_validator("target_countries", mode="before")(
        classmethod(lambda cls, v: _parse_countries(v))
    )

    @field_validator("purposes", mode="before")
    @classmethod
    def _parse_purposes(cls, value: Any) -> list[str]:
        return [str(v) for v in _normalizer.parse_multi_value(value)]

    @field_validator("timeline", mode="before")
    @classmethod
    def _normalize_timeline(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return _normalizer.normalize_timeline(str(value)) or str(value)

    @property
    def display_name(self) -> str:
        return self.name or f"Investor #{self.id}"

    @property
    def is_active(self) -> bool:
        return self.status == ProspectStatus.ACTIVE


class TargetProfile(BaseModel):
    """A target (seller) prospect as seen by the matching engine."""

    id: int
    name: Optional[str] = None
    status: ProspectStatus = ProspectStatus.ACTIVE
    hq_country: Optional[str] = None
    preferred_investor_countries: list[str] = Field(
        default_factory=list,
        description="Countries or regions the target would like its investor to come from",
    )

    industries: list[IndustryRef] = Field(default_factory=list)
    financials: FinancialFigures = Field(default_factory=FinancialFigures)
    timeline: Optional[str] = None
    ownership: OwnershipPreference = Field(default_factory=OwnershipPreference)
    reasons: list[str] = Field(default_factory=list, description="Reasons for the transaction")
    attributes: TargetAttributes = Field(default_factory=TargetAttributes)

    _parse_industries = field_validator("industries", mode="before")(
        classmethod(lambda cls, v: _parse_industries(v))
    )
    _parse_countries = field_validator("preferred_investor_countries", mode="before")(
        classmethod(lambda cls, v: _parse_countries(v))
    )

    @field_validator("reasons", mode="before")
    @classmethod
    def _parse_reasons(cls, value: Any) -> list[str]:
        return [str(v) for v in _normalizer.parse_multi_value(value)]

    @field_validator("timeline", mode="before")
    @classmethod
    def _normalize_timeline(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return _normalizer.normalize_timeline(str(value)) or str(value)

    @property
    def display_name(self) -> str:
        return self.name or f"Target #{self.id}"

    @property
    def is_active(self) -> bool:
        return self.status == ProspectStatus.ACTIVE
