"""
Tests for ProfileRepository and MatchRepository

Covers:
- Profile loading from JSON columns, skipping invalid records
- Upsert keeps one row per (investor, target)
- Refreshing scores never touches the review fields
- Search filters and ordering
"""

import pytest

from matchiq.errors import MatchNotFound, ProfileNotFound
from matchiq.storage.models import MatchRecord
from matchiq.storage.repository import MatchRepository, ProfileRepository


def score_row(investor_id, target_id, total, industry=0.5):
    return {
        "investor_id": investor_id,
        "target_id": target_id,
        "total_score": total,
        "industry_score": industry,
        "geography_score": None,
        "financial_score": None,
        "profile_score": None,
        "timeline_score": None,
        "transaction_score": None,
        "explanations": {"industry": "Shared industries: Tech"},
    }


# =============================================================================
# PROFILES
# =============================================================================

class TestProfileRepository:

    def test_loads_profile_json(self, session, add_investor):
        investor_id = add_investor(
            name="Acme Capital",
            industries='[{"id": 1, "name": "Tech"}]',
            target_countries="Thailand, Vietnam",
        )
        profile = ProfileRepository(session).get_investor(investor_id)
        assert profile.name == "Acme Capital"
        assert profile.industries[0].id == 1
        assert profile.target_countries == ["Thailand", "Vietnam"]

    def test_missing_profile(self, session):
        with pytest.raises(ProfileNotFound):
            ProfileRepository(session).get_target(999)

    def test_active_only(self, session, add_target):
        active = add_target(name="Live")
        add_target(name="Draft", status="draft")
        add_target(name="Gone", status="inactive")
        assert [t.id for t in ProfileRepository(session).active_targets()] == [active]

    def test_invalid_profile_is_skipped(self, session, add_investor, caplog):
        good = add_investor(name="Good")
        add_investor(name="Bad", budget={"min": -5})
        investors = ProfileRepository(session).active_investors()
        assert [i.id for i in investors] == [good]
        assert "invalid profile data" in caplog.text

    def test_names_fall_back_to_ids(self, session, add_investor):
        named = add_investor(name="Acme")
        unnamed = add_investor(name=None)
        names = ProfileRepository(session).investor_names()
        assert names == {named: "Acme", unnamed: f"Investor #{unnamed}"}


# =============================================================================
# MATCHES
# =============================================================================

class TestMatchRepository:

    @pytest.fixture
    def pair(self, add_investor, add_target):
        return add_investor(), add_target()

    def test_upsert_inserts_pending(self, session, pair):
        match = MatchRepository(session).upsert(score_row(*pair, 55))
        session.commit()
        assert match.id is not None
        assert match.status == "pending"
        assert match.total_score == 55
        assert match.explanations["industry"].startswith("Shared")

    def test_upsert_is_unique_per_pair(self, session, pair):
        repo = MatchRepository(session)
        first = repo.upsert(score_row(*pair, 55))
        second = repo.upsert(score_row(*pair, 80, industry=1.0))
        session.commit()

        assert first.id == second.id
        assert repo.count() == 1
        assert second.total_score == 80
        assert second.industry_score == 1.0

    def test_refresh_keeps_review_fields(self, session, pair):
        repo = MatchRepository(session)
        match = repo.upsert(score_row(*pair, 55))
        match.status = "reviewed"
        match.reviewed_by = 7
        match.notes = "call next week"
        session.commit()

        refreshed = repo.upsert(score_row(*pair, 90))
        session.commit()
        assert refreshed.total_score == 90
        assert refreshed.status == "reviewed"
        assert refreshed.reviewed_by == 7
        assert refreshed.notes == "call next week"

    def test_bulk_upsert(self, session, add_investor, add_target):
        investor = add_investor()
        targets = [add_target(name=f"T{n}") for n in range(3)]
        repo = MatchRepository(session)

        written = repo.bulk_upsert([score_row(investor, t, 40 + n) for n, t in enumerate(targets)])
        session.commit()
        assert written == 3

        repo.bulk_upsert([score_row(investor, t, 70) for t in targets])
        session.commit()
        assert repo.count() == 3
        assert {m.total_score for m in repo.search()} == {70}

    def test_bulk_upsert_empty(self, session):
        assert MatchRepository(session).bulk_upsert([]) == 0

    def test_get_missing(self, session):
        with pytest.raises(MatchNotFound):
            MatchRepository(session).get(42)

    def test_existing_state(self, session, pair):
        repo = MatchRepository(session)
        repo.upsert(score_row(*pair, 65))
        session.commit()
        assert repo.existing_state() == {pair: (65, "pending")}
        assert repo.existing_state(investor_ids=[pair[0] + 100]) == {}

    def test_search_filters_and_orders(self, session, add_investor, add_target):
        investor = add_investor()
        low, high, dismissed = (add_target(name=n) for n in ("low", "high", "dismissed"))
        repo = MatchRepository(session)
        repo.bulk_upsert([
            score_row(investor, low, 35),
            score_row(investor, high, 85),
            score_row(investor, dismissed, 95),
        ])
        session.commit()
        session.get(MatchRecord, repo.find(investor, dismissed).id).status = "dismissed"
        session.commit()

        results = repo.search(min_score=30, exclude_statuses=["dismissed"])
        assert [m.target_id for m in results] == [high, low]

        assert [m.target_id for m in repo.search(min_score=80, max_score=89)] == [high]
        assert [m.target_id for m in repo.search(statuses=["dismissed"])] == [dismissed]
