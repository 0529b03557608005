"""Batch recomputation of match scores.

A rescan scores every eligible investor/target pair (or every pair
involving one prospect), persists the results batch by batch and notifies
when a pair newly reaches the strong-match threshold. Only one rescan runs
at a time: a process-wide lock guards the current process and a
``rescan_runs`` row guards other processes sharing the database.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from itertools import islice
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from matchiq.errors import RescanAborted, RescanInProgress, UpstreamUnavailable
from matchiq.matching.lifecycle import MatchStatus
from matchiq.matching.scorer import MatchComputer, MatchWeights, ScoreCard
from matchiq.notifications import NotificationSink, safe_notify
from matchiq.profile.models import InvestorProfile, TargetProfile
from matchiq.storage.database import session_scope
from matchiq.storage.models import RescanRun, utcnow
from matchiq.storage.repository import MatchRepository, ProfileRepository

logger = logging.getLogger(__name__)

# Guards against two rescans in the same process
_RESCAN_LOCK = threading.Lock()

Pair = Tuple[InvestorProfile, TargetProfile]


class Viewpoint(str, Enum):
    """Which side of the market a per-prospect operation is centred on."""

    INVESTOR = "investor"
    TARGET = "target"


class RescanConfig(BaseModel):
    """Rescan defaults loaded from settings."""

    batch_size: int = Field(500, gt=0)
    max_workers: int = Field(4, gt=0)
    strong_threshold: int = Field(70, ge=0, le=100)
    min_persist_score: int = Field(0, ge=0, le=100)
    stale_after_seconds: int = Field(3600, gt=0)


@dataclass
class RescanOptions:
    """Options for a single rescan run."""
    batch_size: int = 500
    max_workers: int = 4
    force: bool = False                 # Also rescore dismissed pairs
    min_persist_score: int = 0          # New pairs scoring below this are not stored
    strong_threshold: int = 70
    stale_after_seconds: int = 3600     # A running run older than this is considered dead
    eligibility: Optional[Callable[[InvestorProfile, TargetProfile], bool]] = None
    reference_date: Optional[date] = None

    @classmethod
    def from_config(cls, config: RescanConfig, **overrides: Any) -> "RescanOptions":
        values = config.model_dump()
        values.update(overrides)
        return cls(**values)


@dataclass
class RescanSummary:
    """Outcome of a rescan run."""
    updated_count: int = 0
    strong_match_count: int = 0
    notified_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    cancelled: bool = False
    run_id: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _Scored:
    investor: InvestorProfile
    target: TargetProfile
    card: Optional[ScoreCard] = None
    error: Optional[str] = None


class RescanOrchestrator:
    """Runs full and per-prospect rescans."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        computer: Optional[MatchComputer] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.session_factory = session_factory
        self.computer = computer or MatchComputer()
        self.notifier = notifier

    def rescan(
        self,
        weights: Optional[MatchWeights] = None,
        options: Optional[RescanOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RescanSummary:
        """Rescore every active investor against every active target.

        Raises:
            InvalidWeights: Before any work, if the weights cannot be used
            RescanInProgress: If another rescan is running
            RescanAborted: If profiles cannot be loaded or a batch cannot be saved
        """
        return self._run("all", weights, options, cancel_event)

    def rescan_for(
        self,
        viewpoint: Viewpoint,
        prospect_id: int,
        weights: Optional[MatchWeights] = None,
        options: Optional[RescanOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RescanSummary:
        """Rescore one investor against all targets, or one target against all investors.

        Raises:
            ProfileNotFound: If the prospect does not exist
        """
        viewpoint = Viewpoint(viewpoint)
        scope = f"{viewpoint.value}:{prospect_id}"
        if viewpoint == Viewpoint.INVESTOR:
            return self._run(scope, weights, options, cancel_event, investor_id=prospect_id)
        return self._run(scope, weights, options, cancel_event, target_id=prospect_id)

    def _run(
        self,
        scope: str,
        weights: Optional[MatchWeights],
        options: Optional[RescanOptions],
        cancel_event: Optional[threading.Event],
        investor_id: Optional[int] = None,
        target_id: Optional[int] = None,
    ) -> RescanSummary:
        weights = weights or MatchWeights()
        weights.check()
        options = options or RescanOptions()

        if not _RESCAN_LOCK.acquire(blocking=False):
            raise RescanInProgress("A rescan is already running in this process")

        summary = RescanSummary()
        try:
            summary.run_id = self._start_run(scope, options.stale_after_seconds)
            logger.info(f"Rescan #{summary.run_id} started (scope={scope})")
            self.computer.scorer.converter.refresh()
            try:
                self._execute(summary, weights, options, cancel_event, investor_id, target_id)
            except RescanAborted as e:
                logger.error(f"Rescan #{summary.run_id} aborted: {e}")
                self._finish_run(summary, "failed", str(e))
                raise
            except Exception as e:
                logger.error(f"Rescan #{summary.run_id} failed: {e}")
                self._finish_run(summary, "failed", str(e))
                raise

            status = "cancelled" if summary.cancelled else "completed"
            self._finish_run(summary, status)
            logger.info(
                f"Rescan #{summary.run_id} {status}: {summary.updated_count} updated, "
                f"{summary.strong_match_count} strong, {summary.skipped_count} skipped, "
                f"{summary.failed_count} failed"
            )
            return summary
        finally:
            _RESCAN_LOCK.release()

    def _execute(
        self,
        summary: RescanSummary,
        weights: MatchWeights,
        options: RescanOptions,
        cancel_event: Optional[threading.Event],
        investor_id: Optional[int],
        target_id: Optional[int],
    ) -> None:
        try:
            with session_scope(self.session_factory) as session:
                profiles = ProfileRepository(session)
                if investor_id is not None:
                    investors = [profiles.get_investor(investor_id)]
                else:
                    investors = profiles.active_investors()
                if target_id is not None:
                    targets = [profiles.get_target(target_id)]
                else:
                    targets = profiles.active_targets()
                existing = MatchRepository(session).existing_state(
                    investor_ids=[investor_id] if investor_id is not None else None,
                    target_ids=[target_id] if target_id is not None else None,
                )
        except (SQLAlchemyError, UpstreamUnavailable) as e:
            raise RescanAborted(f"Could not load profiles: {e}", completed=0) from e

        # A draft or inactive prospect is not matched, even on request
        investors = [i for i in investors if i.is_active]
        targets = [t for t in targets if t.is_active]

        reference_date = options.reference_date or date.today()
        pairs = self._eligible_pairs(investors, targets, existing, options, summary)

        with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
            for batch in self._batches(pairs, options.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    summary.cancelled = True
                    logger.info(f"Rescan #{summary.run_id} cancelled after {summary.updated_count} pairs")
                    break

                scored = list(
                    executor.map(lambda pair: self._score_pair(pair, weights, reference_date), batch)
                )
                self._persist_batch(scored, existing, options, summary)

    def _eligible_pairs(
        self,
        investors: Sequence[InvestorProfile],
        targets: Sequence[TargetProfile],
        existing: Dict[Tuple[int, int], Tuple[int, str]],
        options: RescanOptions,
        summary: RescanSummary,
    ) -> Iterator[Pair]:
        for investor in investors:
            for target in targets:
                state = existing.get((investor.id, target.id))
                if state is not None and state[1] == MatchStatus.DISMISSED.value and not options.force:
                    summary.skipped_count += 1
                    continue
                if options.eligibility is not None and not options.eligibility(investor, target):
                    summary.skipped_count += 1
                    continue
                yield investor, target

    def _batches(self, pairs: Iterator[Pair], size: int) -> Iterator[List[Pair]]:
        while True:
            batch = list(islice(pairs, size))
            if not batch:
                return
            yield batch

    def _score_pair(self, pair: Pair, weights: MatchWeights, reference_date: date) -> _Scored:
        investor, target = pair
        try:
            card = self.computer.compute(investor, target, weights, reference_date)
            return _Scored(investor, target, card=card)
        except Exception as e:
            logger.warning(f"Scoring failed for investor {investor.id} / target {target.id}: {str(e)}")
            return _Scored(investor, target, error=str(e))

    def _persist_batch(
        self,
        scored: List[_Scored],
        existing: Dict[Tuple[int, int], Tuple[int, str]],
        options: RescanOptions,
        summary: RescanSummary,
    ) -> None:
        rows = []
        newly_strong: List[_Scored] = []
        for item in scored:
            if item.card is None:
                summary.failed_count += 1
                summary.errors.append(f"{item.investor.id}/{item.target.id}: {item.error}")
                continue
            key = (item.investor.id, item.target.id)
            # The threshold only gates new rows; stored pairs are always rescored
            if item.card.total_score < options.min_persist_score and key not in existing:
                summary.skipped_count += 1
                continue

            rows.append(item.card.record_values())
            if item.card.total_score >= options.strong_threshold:
                summary.strong_match_count += 1
                previous = existing.get(key)
                if previous is None or previous[0] < options.strong_threshold:
                    newly_strong.append(item)

        if not rows:
            return

        notifications = []
        try:
            with session_scope(self.session_factory) as session:
                matches = MatchRepository(session)
                matches.bulk_upsert(rows)
                for item in newly_strong:
                    match = matches.find(item.investor.id, item.target.id)
                    notifications.append((match.to_dict(), item))
        except SQLAlchemyError as e:
            raise RescanAborted(f"Saving batch failed: {e}", completed=summary.updated_count) from e

        summary.updated_count += len(rows)
        for values, item in notifications:
            existing[(item.investor.id, item.target.id)] = (values["total_score"], values["status"])
            if safe_notify(self.notifier, values, item.investor.display_name, item.target.display_name):
                summary.notified_count += 1

    def _start_run(self, scope: str, stale_after_seconds: int) -> int:
        """Register a running rescan, refusing if a live one exists elsewhere.

        The partial unique index on running rows decides races between
        processes that both passed the check below.
        """
        now = utcnow()
        try:
            with session_scope(self.session_factory) as session:
                self._retire_stale_runs(session, now, now - timedelta(seconds=stale_after_seconds))
                run = RescanRun(scope=scope, status="running", started_at=now)
                session.add(run)
                session.flush()
                return run.id
        except IntegrityError as e:
            raise RescanInProgress("Another rescan registered itself first") from e

    def _retire_stale_runs(self, session: Session, now: datetime, cutoff: datetime) -> None:
        running = list(session.scalars(select(RescanRun).where(RescanRun.status == "running")))
        for run in running:
            if run.started_at > cutoff:
                raise RescanInProgress(f"Rescan #{run.id} has been running since {run.started_at}")
            logger.warning(f"Marking stale rescan #{run.id} as failed")
            run.status = "failed"
            run.finished_at = now
            run.errors = "Stale: no progress recorded"
        session.flush()

    def _finish_run(self, summary: RescanSummary, status: str, error: Optional[str] = None) -> None:
        if summary.run_id is None:
            return
        errors = list(summary.errors)
        if error:
            errors.append(error)
        try:
            with session_scope(self.session_factory) as session:
                run = session.get(RescanRun, summary.run_id)
                if run is None:
                    return
                run.status = status
                run.finished_at = utcnow()
                run.pairs_scored = summary.updated_count
                run.strong_matches = summary.strong_match_count
                run.errors = "\n".join(errors[:50]) or None
        except SQLAlchemyError as e:
            logger.error(f"Could not record outcome of rescan #{summary.run_id}: {e}")
