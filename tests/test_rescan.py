"""
Tests for RescanOrchestrator

Covers:
- Full and per-prospect rescans over active prospects only
- Idempotence: rescanning twice leaves the same rows and scores
- Dismissed pairs skipped unless forced
- Strong-match notifications fire once, and a failing sink never fails a run
- Cancellation between batches
- Refusal to overlap with another running rescan
- Per-pair failures isolated and counted
- Run-level failures abort with the count of pairs already saved
"""

import threading
from datetime import date, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from matchiq.errors import InvalidWeights, ProfileNotFound, RescanAborted, RescanInProgress
from matchiq.matching import rescan as rescan_module
from matchiq.matching.rescan import RescanOptions, RescanOrchestrator, Viewpoint
from matchiq.matching.scorer import MatchComputer, MatchWeights
from matchiq.storage.models import MatchRecord, RescanRun, TargetRecord, utcnow
from matchiq.storage.repository import MatchRepository, ProfileRepository

from conftest import STRONG_INVESTOR, STRONG_TARGET, WEAK_TARGET, RecordingNotifier


REFERENCE = date(2026, 1, 1)


def options(**overrides):
    return RescanOptions(reference_date=REFERENCE, **overrides)


def all_matches(session_factory):
    with session_factory() as s:
        return {
            (m.investor_id, m.target_id): (m.total_score, m.status)
            for m in s.scalars(select(MatchRecord))
        }


def set_status(session_factory, investor_id, target_id, status):
    with session_factory() as s:
        match = s.scalar(
            select(MatchRecord).where(
                MatchRecord.investor_id == investor_id,
                MatchRecord.target_id == target_id,
            )
        )
        match.status = status
        s.commit()


@pytest.fixture
def orchestrator(session_factory, computer, notifier):
    return RescanOrchestrator(session_factory, computer, notifier)


@pytest.fixture
def market(add_investor, add_target):
    """One investor, a strong and a weak target, plus a draft target."""
    investor = add_investor(name="Acme Capital", **STRONG_INVESTOR)
    strong = add_target(name="Bangkok Foods", **STRONG_TARGET)
    weak = add_target(name="Rio Mining", **WEAK_TARGET)
    draft = add_target(name="Draft Co", status="draft", **STRONG_TARGET)
    return {"investor": investor, "strong": strong, "weak": weak, "draft": draft}


# =============================================================================
# FULL RESCAN
# =============================================================================

class TestRescanAll:

    def test_scores_active_pairs(self, orchestrator, market, session_factory):
        summary = orchestrator.rescan(MatchWeights(), options())

        assert summary.updated_count == 2
        assert summary.strong_match_count == 1
        assert not summary.cancelled

        stored = all_matches(session_factory)
        assert stored[(market["investor"], market["strong"])] == (100, "pending")
        assert stored[(market["investor"], market["weak"])][0] < 30
        assert (market["investor"], market["draft"]) not in stored

    def test_idempotent(self, orchestrator, market, session_factory):
        orchestrator.rescan(MatchWeights(), options())
        first = all_matches(session_factory)
        orchestrator.rescan(MatchWeights(), options())
        assert all_matches(session_factory) == first

    def test_records_run_history(self, orchestrator, market, session_factory):
        summary = orchestrator.rescan(MatchWeights(), options())
        with session_factory() as s:
            run = s.get(RescanRun, summary.run_id)
            assert run.status == "completed"
            assert run.scope == "all"
            assert run.pairs_scored == 2
            assert run.strong_matches == 1
            assert run.finished_at is not None

    def test_min_persist_score(self, orchestrator, market, session_factory):
        summary = orchestrator.rescan(MatchWeights(), options(min_persist_score=30))
        assert summary.updated_count == 1
        assert summary.skipped_count == 1
        assert list(all_matches(session_factory)) == [(market["investor"], market["strong"])]

    def test_min_persist_score_still_rescores_stored_pairs(self, orchestrator, market, session_factory):
        orchestrator.rescan(MatchWeights(), options(min_persist_score=30))
        with session_factory() as s:
            s.get(TargetRecord, market["strong"]).profile = dict(WEAK_TARGET)
            s.commit()

        summary = orchestrator.rescan(MatchWeights(), options(min_persist_score=30))

        score, status = all_matches(session_factory)[(market["investor"], market["strong"])]
        assert score < 30
        assert status == "pending"
        assert summary.updated_count == 1
        assert summary.skipped_count == 1

    def test_eligibility_filter(self, orchestrator, market, session_factory):
        only_strong = lambda investor, target: target.id == market["strong"]
        summary = orchestrator.rescan(MatchWeights(), options(eligibility=only_strong))
        assert summary.updated_count == 1
        assert summary.skipped_count == 1

    def test_invalid_weights_fail_fast(self, orchestrator, market, session_factory):
        zero = MatchWeights(
            industry=0, geography=0, financial=0, profile=0, timeline=0, transaction=0
        )
        with pytest.raises(InvalidWeights):
            orchestrator.rescan(zero, options())
        with session_factory() as s:
            assert s.scalars(select(RescanRun)).first() is None


# =============================================================================
# DISMISSED PAIRS
# =============================================================================

class TestDismissed:

    def test_skipped_by_default(self, orchestrator, market, session_factory):
        orchestrator.rescan(MatchWeights(), options())
        set_status(session_factory, market["investor"], market["weak"], "dismissed")

        summary = orchestrator.rescan(MatchWeights(), options())
        assert summary.updated_count == 1
        assert summary.skipped_count == 1

    def test_force_rescores_but_keeps_status(self, orchestrator, market, session_factory):
        orchestrator.rescan(MatchWeights(), options())
        set_status(session_factory, market["investor"], market["weak"], "dismissed")

        summary = orchestrator.rescan(MatchWeights(), options(force=True))
        assert summary.updated_count == 2
        assert all_matches(session_factory)[(market["investor"], market["weak"])][1] == "dismissed"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class TestNotifications:

    def test_notify_once_per_newly_strong_pair(self, orchestrator, market, notifier):
        first = orchestrator.rescan(MatchWeights(), options())
        second = orchestrator.rescan(MatchWeights(), options())

        assert first.notified_count == 1
        assert second.notified_count == 0
        assert second.strong_match_count == 1

        match, investor_name, target_name = notifier.sent[0]
        assert match["total_score"] == 100
        assert (investor_name, target_name) == ("Acme Capital", "Bangkok Foods")

    def test_custom_threshold(self, orchestrator, market, notifier):
        summary = orchestrator.rescan(MatchWeights(), options(strong_threshold=101))
        assert summary.strong_match_count == 0
        assert notifier.sent == []

    def test_failing_sink_does_not_fail_rescan(self, session_factory, computer, market):
        orchestrator = RescanOrchestrator(session_factory, computer, RecordingNotifier(fail=True))
        summary = orchestrator.rescan(MatchWeights(), options())
        assert summary.updated_count == 2
        assert summary.strong_match_count == 1
        assert summary.notified_count == 0


# =============================================================================
# CANCELLATION AND OVERLAP
# =============================================================================

class TestCancellation:

    def test_cancelled_before_start(self, orchestrator, market, session_factory):
        cancel = threading.Event()
        cancel.set()
        summary = orchestrator.rescan(MatchWeights(), options(), cancel)

        assert summary.cancelled
        assert summary.updated_count == 0
        assert all_matches(session_factory) == {}
        with session_factory() as s:
            assert s.get(RescanRun, summary.run_id).status == "cancelled"

    def test_cancel_between_batches_keeps_finished_batches(self, session_factory, computer, market):
        cancel = threading.Event()

        class CancellingNotifier(RecordingNotifier):
            def notify_strong_match(self, match, investor_name, target_name):
                super().notify_strong_match(match, investor_name, target_name)
                cancel.set()

        orchestrator = RescanOrchestrator(session_factory, computer, CancellingNotifier())
        summary = orchestrator.rescan(MatchWeights(), options(batch_size=1), cancel)

        assert summary.cancelled
        assert summary.updated_count == 1
        assert list(all_matches(session_factory)) == [(market["investor"], market["strong"])]


class TestOverlap:

    def test_refuses_while_lock_held(self, orchestrator, market):
        assert rescan_module._RESCAN_LOCK.acquire(blocking=False)
        try:
            with pytest.raises(RescanInProgress):
                orchestrator.rescan(MatchWeights(), options())
        finally:
            rescan_module._RESCAN_LOCK.release()

    def test_refuses_while_another_run_is_recorded(self, orchestrator, market, session_factory):
        with session_factory() as s:
            s.add(RescanRun(scope="all", status="running", started_at=utcnow()))
            s.commit()
        with pytest.raises(RescanInProgress):
            orchestrator.rescan(MatchWeights(), options())

    def test_stale_run_is_taken_over(self, orchestrator, market, session_factory):
        with session_factory() as s:
            stale = RescanRun(scope="all", status="running", started_at=utcnow() - timedelta(hours=2))
            s.add(stale)
            s.commit()
            stale_id = stale.id

        summary = orchestrator.rescan(MatchWeights(), options())
        assert summary.updated_count == 2
        with session_factory() as s:
            assert s.get(RescanRun, stale_id).status == "failed"

    def test_database_allows_one_running_row(self, session_factory):
        with session_factory() as s:
            s.add(RescanRun(scope="all", status="running", started_at=utcnow()))
            s.commit()
            s.add(RescanRun(scope="target:1", status="running", started_at=utcnow()))
            with pytest.raises(IntegrityError):
                s.commit()

    def test_run_registered_after_the_check_wins(self, session_factory, computer, market):
        class RacedOrchestrator(RescanOrchestrator):
            def _retire_stale_runs(self, session, now, cutoff):
                super()._retire_stale_runs(session, now, cutoff)
                # Another process registers between our check and our insert
                session.add(RescanRun(scope="all", status="running", started_at=now))
                session.flush()

        orchestrator = RacedOrchestrator(session_factory, computer)
        with pytest.raises(RescanInProgress):
            orchestrator.rescan(MatchWeights(), options())
        assert all_matches(session_factory) == {}
        assert not rescan_module._RESCAN_LOCK.locked()


# =============================================================================
# PER-PROSPECT RESCAN AND FAILURES
# =============================================================================

class TestRescanFor:

    def test_one_target_against_all_investors(self, orchestrator, market, add_investor, session_factory):
        other = add_investor(name="Other Fund", **STRONG_INVESTOR)
        summary = orchestrator.rescan_for(Viewpoint.TARGET, market["strong"], MatchWeights(), options())

        assert summary.updated_count == 2
        assert set(all_matches(session_factory)) == {
            (market["investor"], market["strong"]),
            (other, market["strong"]),
        }
        with session_factory() as s:
            assert s.get(RescanRun, summary.run_id).scope == f"target:{market['strong']}"

    def test_one_investor_against_all_targets(self, orchestrator, market):
        summary = orchestrator.rescan_for("investor", market["investor"], MatchWeights(), options())
        assert summary.updated_count == 2

    def test_draft_prospect_yields_nothing(self, orchestrator, market, session_factory):
        summary = orchestrator.rescan_for(Viewpoint.TARGET, market["draft"], MatchWeights(), options())
        assert summary.updated_count == 0
        assert all_matches(session_factory) == {}

    def test_unknown_prospect(self, orchestrator, market, session_factory):
        with pytest.raises(ProfileNotFound):
            orchestrator.rescan_for(Viewpoint.INVESTOR, 999, MatchWeights(), options())
        with session_factory() as s:
            assert s.scalars(select(RescanRun)).one().status == "failed"


class TestPairFailures:

    def test_failing_pair_is_counted_and_others_persist(self, session_factory, computer, market, notifier):
        weak = market["weak"]

        class FlakyComputer(MatchComputer):
            def compute(self, investor, target, weights=None, reference_date=None):
                if target.id == weak:
                    raise RuntimeError("bad data")
                return super().compute(investor, target, weights, reference_date)

        orchestrator = RescanOrchestrator(session_factory, FlakyComputer(computer.scorer), notifier)
        summary = orchestrator.rescan(MatchWeights(), options())

        assert summary.failed_count == 1
        assert summary.updated_count == 1
        assert "bad data" in summary.errors[0]


# =============================================================================
# RUN-LEVEL FAILURES
# =============================================================================

class TestAborted:

    def test_profile_load_failure(self, orchestrator, market, session_factory, monkeypatch):
        def broken(self):
            raise OperationalError("SELECT investors", {}, Exception("database is locked"))

        monkeypatch.setattr(ProfileRepository, "active_investors", broken)

        with pytest.raises(RescanAborted) as excinfo:
            orchestrator.rescan(MatchWeights(), options())

        assert excinfo.value.completed == 0
        assert "Could not load profiles" in str(excinfo.value)
        assert all_matches(session_factory) == {}
        with session_factory() as s:
            run = s.scalars(select(RescanRun)).one()
            assert run.status == "failed"
            assert "database is locked" in run.errors

    def test_batch_save_failure_keeps_earlier_batches(self, orchestrator, market, session_factory, monkeypatch):
        original = MatchRepository.bulk_upsert
        calls = []

        def fail_second_batch(self, rows, *args, **kwargs):
            calls.append(len(rows))
            if len(calls) == 2:
                raise OperationalError("INSERT INTO matches", {}, Exception("disk full"))
            return original(self, rows, *args, **kwargs)

        monkeypatch.setattr(MatchRepository, "bulk_upsert", fail_second_batch)

        with pytest.raises(RescanAborted) as excinfo:
            orchestrator.rescan(MatchWeights(), options(batch_size=1))

        assert excinfo.value.completed == 1
        assert len(all_matches(session_factory)) == 1
        with session_factory() as s:
            run = s.scalars(select(RescanRun)).one()
            assert run.status == "failed"
            assert run.pairs_scored == 1
            assert "disk full" in run.errors
        assert not rescan_module._RESCAN_LOCK.locked()
