"""SQLAlchemy models for the MatchIQ database."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class InvestorRecord(Base):
    """Investor (buyer) prospect. Profile fields are stored as JSON."""

    __tablename__ = "investors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<InvestorRecord(id={self.id}, name={self.name!r}, status={self.status!r})>"


class TargetRecord(Base):
    """Target (seller) prospect. Profile fields are stored as JSON."""

    __tablename__ = "targets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<TargetRecord(id={self.id}, name={self.name!r}, status={self.status!r})>"


# Per-dimension score columns, in display order
SCORE_COLUMNS = (
    "industry_score",
    "geography_score",
    "financial_score",
    "profile_score",
    "timeline_score",
    "transaction_score",
)


class MatchRecord(Base):
    """Computed compatibility between one investor and one target.

    Rescans refresh the score columns, explanations and computed_at only;
    status, reviewed_by, deal_id and notes belong to the review workflow.
    """

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    investor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("investors.id"), nullable=False, index=True
    )
    target_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("targets.id"), nullable=False, index=True
    )
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # 0.0-1.0 at 4 decimals, NULL when the dimension could not be computed
    industry_score: Mapped[Optional[float]] = mapped_column(Float)
    geography_score: Mapped[Optional[float]] = mapped_column(Float)
    financial_score: Mapped[Optional[float]] = mapped_column(Float)
    profile_score: Mapped[Optional[float]] = mapped_column(Float)
    timeline_score: Mapped[Optional[float]] = mapped_column(Float)
    transaction_score: Mapped[Optional[float]] = mapped_column(Float)
    explanations: Mapped[Optional[dict]] = mapped_column(JSON)

    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    reviewed_by: Mapped[Optional[int]] = mapped_column(Integer)
    deal_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("deals.id"))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    computed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("investor_id", "target_id", name="uq_matches_investor_target"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "investor_id": self.investor_id,
            "target_id": self.target_id,
            "total_score": self.total_score,
            **{column: getattr(self, column) for column in SCORE_COLUMNS},
            "explanations": self.explanations or {},
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "deal_id": self.deal_id,
            "notes": self.notes,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<MatchRecord(id={self.id}, investor_id={self.investor_id}, "
            f"target_id={self.target_id}, total_score={self.total_score}, status={self.status!r})>"
        )


class Deal(Base):
    """Deal created when a match is converted."""

    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    investor_id: Mapped[int] = mapped_column(Integer, ForeignKey("investors.id"), nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, ForeignKey("targets.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    stage_code: Mapped[str] = mapped_column(String(10), default="F", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, name={self.name!r}, stage_code={self.stage_code!r})>"


class ExchangeRate(Base):
    """USD conversion rate per currency code."""

    __tablename__ = "exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    rate_to_usd: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ExchangeRate({self.currency_code}={self.rate_to_usd})>"


class RescanRun(Base):
    """Rescan history, also used to keep rescans from overlapping."""

    __tablename__ = "rescan_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(50), nullable=False, default="all")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    pairs_scored: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    strong_matches: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[Optional[str]] = mapped_column(Text)

    # At most one running row per database
    __table_args__ = (
        Index(
            "uq_rescan_runs_running",
            "status",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<RescanRun(id={self.id}, scope={self.scope!r}, status={self.status!r})>"
