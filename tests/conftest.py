"""
Shared fixtures for the MatchIQ test suite.

Handles:
- In-memory SQLite engine (StaticPool so every session sees the same database)
- Investor / target record factories
- A MatchService wired to static exchange rates and a recording notifier
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from matchiq.config import EngineSettings
from matchiq.matching.currency import ExchangeRateConverter, StaticRateSource
from matchiq.matching.dimensions import DimensionScorer
from matchiq.matching.regions import RegionTable
from matchiq.matching.scorer import MatchComputer
from matchiq.matching.service import MatchService
from matchiq.profile.models import InvestorProfile, TargetProfile
from matchiq.storage.models import Base, InvestorRecord, TargetRecord


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------

@pytest.fixture
def add_investor(session_factory):
    """Insert an investor record and return its id."""
    def _add(name="Investor", status="active", **profile):
        with session_factory() as s:
            record = InvestorRecord(name=name, status=status, profile=profile)
            s.add(record)
            s.commit()
            return record.id
    return _add


@pytest.fixture
def add_target(session_factory):
    """Insert a target record and return its id."""
    def _add(name="Target", status="active", **profile):
        with session_factory() as s:
            record = TargetRecord(name=name, status=status, profile=profile)
            s.add(record)
            s.commit()
            return record.id
    return _add


# ---------------------------------------------------------------------------
# Profiles and scoring
# ---------------------------------------------------------------------------

def make_investor(**overrides) -> InvestorProfile:
    data = {"id": 1, "name": "Acme Capital"}
    data.update(overrides)
    return InvestorProfile.model_validate(data)


def make_target(**overrides) -> TargetProfile:
    data = {"id": 2, "name": "Bangkok Foods"}
    data.update(overrides)
    return TargetProfile.model_validate(data)


@pytest.fixture
def scorer():
    return DimensionScorer(
        regions=RegionTable(),
        converter=ExchangeRateConverter(StaticRateSource()),
    )


@pytest.fixture
def computer(scorer):
    return MatchComputer(scorer)


class RecordingNotifier:
    """Notification sink that remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def notify_strong_match(self, match, investor_name, target_name):
        if self.fail:
            raise RuntimeError("sink down")
        self.sent.append((match, investor_name, target_name))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def service(session_factory, settings, notifier):
    return MatchService(
        session_factory,
        settings=settings,
        notifier=notifier,
        rate_source=StaticRateSource(),
    )


# Profiles that score 100 on every computable dimension
STRONG_INVESTOR = {
    "industries": [{"id": 1, "name": "Food & Beverage"}],
    "target_countries": ["Thailand"],
    "budget": {"min": 1_000_000, "max": 5_000_000, "currency": "USD"},
    "timeline": "3-6 months",
}

STRONG_TARGET = {
    "industries": [{"id": 1, "name": "Food & Beverage"}],
    "hq_country": "Thailand",
    "financials": {"investment_amount": {"min": 2_000_000, "max": 3_000_000}, "currency": "USD"},
    "timeline": "3-6 months",
}

# A target that shares nothing with STRONG_INVESTOR
WEAK_TARGET = {
    "industries": [{"id": 9, "name": "Mining"}],
    "hq_country": "Brazil",
    "financials": {"asking_valuation": 500_000_000, "currency": "USD"},
    "timeline": "24+ months",
}
