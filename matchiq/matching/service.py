"""MatchService: the entry point used by the TUI and embedding applications."""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from matchiq.config import EngineSettings
from matchiq.matching.currency import (
    DEFAULT_RATES,
    DatabaseRateSource,
    ExchangeRateConverter,
    HttpRateSource,
    RateSource,
    StaticRateSource,
)
from matchiq.matching.dimensions import DimensionScorer
from matchiq.matching.lifecycle import LifecycleAction, MatchLifecycle, MatchStatus
from matchiq.matching.regions import RegionTable
from matchiq.matching.rescan import RescanOptions, RescanOrchestrator, RescanSummary, Viewpoint
from matchiq.matching.scorer import TIER_RANGES, MatchComputer, MatchWeights, Tier
from matchiq.notifications import (
    LoggingNotifier,
    NotificationSink,
    WebhookNotifier,
    safe_notify,
)
from matchiq.processing.normalizer import Normalizer
from matchiq.profile.models import InvestorProfile, TargetProfile
from matchiq.storage.database import session_scope
from matchiq.storage.models import MatchRecord
from matchiq.storage.repository import MatchRepository, ProfileRepository


logger = logging.getLogger(__name__)


@dataclass
class MatchQuery:
    """Filters and paging for match listings."""
    min_score: Optional[int] = None            # None -> settings.list_min_score
    tier: Optional[Union[Tier, str]] = None
    industry: Optional[Union[int, str]] = None  # Canonical id or name
    country: Optional[str] = None
    status: Optional[str] = None
    investor_id: Optional[int] = None
    target_id: Optional[int] = None
    include_dismissed: bool = False
    viewpoint: Viewpoint = Viewpoint.INVESTOR
    page: int = 1
    per_page: Optional[int] = None             # None -> settings.page_size


@dataclass
class MatchEntry:
    """A match as shown in a listing."""
    match: MatchRecord
    investor_name: str
    target_name: str

    @property
    def tier(self) -> Tier:
        return Tier.from_score(self.match.total_score)

    def to_dict(self) -> Dict[str, Any]:
        data = self.match.to_dict()
        data.update(
            investor_name=self.investor_name,
            target_name=self.target_name,
            tier=self.tier.value,
            tier_label=self.tier.label,
        )
        return data


@dataclass
class MatchCluster:
    """Matches grouped under one investor (or one target)."""
    viewpoint: Viewpoint
    prospect_id: int
    name: str
    matches: List[MatchEntry] = field(default_factory=list)

    @property
    def best_score(self) -> int:
        return max((m.match.total_score for m in self.matches), default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.viewpoint.value: {"id": self.prospect_id, "name": self.name},
            "matches": [m.to_dict() for m in self.matches],
            "best_score": self.best_score,
            "count": len(self.matches),
        }


@dataclass
class MatchPage:
    """One page of clusters plus paging metadata."""
    clusters: List[MatchCluster]
    page: int
    last_page: int
    total: int                # Number of clusters
    per_page: int
    total_matches: int

    @property
    def entries(self) -> List[MatchEntry]:
        return [entry for cluster in self.clusters for entry in cluster.matches]

    @property
    def meta(self) -> Dict[str, int]:
        return {
            "current_page": self.page,
            "last_page": self.last_page,
            "total": self.total,
            "per_page": self.per_page,
            "total_matches": self.total_matches,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"data": [c.to_dict() for c in self.clusters], "meta": self.meta}


def build_rate_source(
    settings: EngineSettings, session_factory: sessionmaker[Session]
) -> RateSource:
    """Pick the exchange rate source configured in settings."""
    if settings.rates_url:
        return HttpRateSource(settings.rates_url)
    if settings.exchange_rates:
        return StaticRateSource({**DEFAULT_RATES, **settings.exchange_rates})
    return DatabaseRateSource(session_factory)


def build_notifier(settings: EngineSettings) -> NotificationSink:
    if settings.webhook_url:
        return WebhookNotifier(settings.webhook_url)
    return LoggingNotifier()


class MatchService:
    """Computes, rescans, lists and transitions matches."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Optional[EngineSettings] = None,
        notifier: Optional[NotificationSink] = None,
        rate_source: Optional[RateSource] = None,
    ):
        """Initialize the service.

        Args:
            session_factory: Factory for database sessions
            settings: Engine settings (default: built-in defaults)
            notifier: Sink for strong-match notifications (default: from settings)
            rate_source: Exchange rate source (default: from settings)
        """
        self.session_factory = session_factory
        self.settings = settings or EngineSettings()
        self.notifier = notifier if notifier is not None else build_notifier(self.settings)

        self.converter = ExchangeRateConverter(
            rate_source or build_rate_source(self.settings, session_factory)
        )
        self.regions = RegionTable(self.settings.regions, self.settings.region_aliases)
        self.scorer = DimensionScorer(self.settings.scoring, self.regions, self.converter)
        self.computer = MatchComputer(self.scorer)
        self.lifecycle = MatchLifecycle()
        self.orchestrator = RescanOrchestrator(session_factory, self.computer, self.notifier)
        self.normalizer = Normalizer()

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def compute_one(
        self, investor_id: int, target_id: int, weights: Optional[MatchWeights] = None
    ) -> MatchRecord:
        """Score and persist a single pair.

        Raises:
            ProfileNotFound: If either prospect does not exist
            InvalidWeights: If the weights cannot be used
        """
        weights = weights or self.settings.weights
        threshold = self.settings.rescan.strong_threshold

        with session_scope(self.session_factory) as session:
            profiles = ProfileRepository(session)
            investor = profiles.get_investor(investor_id)
            target = profiles.get_target(target_id)
            card = self.computer.compute(investor, target, weights)

            matches = MatchRepository(session)
            previous = matches.find(investor_id, target_id)
            previous_score = previous.total_score if previous is not None else None

            match = matches.upsert(card.record_values())
            session.expunge(match)

        if card.total_score >= threshold and (previous_score is None or previous_score < threshold):
            safe_notify(self.notifier, match.to_dict(), investor.display_name, target.display_name)

        logger.info(f"Scored investor {investor_id} / target {target_id}: {card.total_score}")
        return match

    def rescan_all(
        self,
        weights: Optional[MatchWeights] = None,
        options: Optional[RescanOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RescanSummary:
        return self.orchestrator.rescan(
            weights or self.settings.weights,
            options or RescanOptions.from_config(self.settings.rescan),
            cancel_event,
        )

    def rescan_for(
        self,
        viewpoint: Viewpoint,
        prospect_id: int,
        weights: Optional[MatchWeights] = None,
        options: Optional[RescanOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RescanSummary:
        return self.orchestrator.rescan_for(
            viewpoint,
            prospect_id,
            weights or self.settings.weights,
            options or RescanOptions.from_config(self.settings.rescan),
            cancel_event,
        )

    # ------------------------------------------------------------------
    # Review workflow
    # ------------------------------------------------------------------

    def transition(
        self,
        match_id: int,
        action: Union[LifecycleAction, str],
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> MatchRecord:
        """Approve, dismiss or convert a match.

        Raises:
            MatchNotFound: If the match does not exist
            InvalidTransition: If the match is already dismissed or converted
        """
        with session_scope(self.session_factory) as session:
            match = MatchRepository(session).get(match_id)
            self.lifecycle.apply(session, match, action, actor_id, notes)
            session.refresh(match)
            session.expunge(match)
        return match

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_matches(self, query: Optional[MatchQuery] = None) -> MatchPage:
        """Filtered matches clustered by investor or target, paginated by cluster."""
        query = query or MatchQuery()
        min_score = query.min_score if query.min_score is not None else self.settings.list_min_score
        per_page = query.per_page or self.settings.page_size

        max_score = None
        if query.tier is not None and query.tier != "all":
            tier_min, tier_max = TIER_RANGES[Tier(query.tier)]
            min_score = max(min_score, tier_min)
            max_score = tier_max

        exclude = None
        if not query.include_dismissed and query.status != MatchStatus.DISMISSED.value:
            exclude = [MatchStatus.DISMISSED.value]

        with session_scope(self.session_factory) as session:
            records = MatchRepository(session).search(
                min_score=min_score,
                max_score=max_score,
                statuses=[query.status] if query.status else None,
                exclude_statuses=exclude,
                investor_id=query.investor_id,
                target_id=query.target_id,
            )

            profiles = ProfileRepository(session)
            investor_ids = {r.investor_id for r in records}
            target_ids = {r.target_id for r in records}
            investor_names = profiles.investor_names(investor_ids)
            target_names = profiles.target_names(target_ids)

            if query.industry is not None or query.country is not None:
                investors = profiles.investors_by_id(investor_ids)
                targets = profiles.targets_by_id(target_ids)
                records = [
                    r for r in records
                    if self._matches_filters(query, investors.get(r.investor_id), targets.get(r.target_id))
                ]

            for record in records:
                session.expunge(record)

        clusters: Dict[int, MatchCluster] = {}
        for record in records:
            entry = MatchEntry(
                match=record,
                investor_name=investor_names.get(record.investor_id, f"Investor #{record.investor_id}"),
                target_name=target_names.get(record.target_id, f"Target #{record.target_id}"),
            )
            if query.viewpoint == Viewpoint.TARGET:
                key, name = record.target_id, entry.target_name
            else:
                key, name = record.investor_id, entry.investor_name
            if key not in clusters:
                clusters[key] = MatchCluster(Viewpoint(query.viewpoint), key, name)
            clusters[key].matches.append(entry)

        ordered = sorted(clusters.values(), key=lambda c: (-c.best_score, c.prospect_id))
        for cluster in ordered:
            cluster.matches.sort(key=lambda e: (-e.match.total_score, e.match.id))

        total = len(ordered)
        last_page = max(1, math.ceil(total / per_page))
        page = min(max(1, query.page), last_page)
        start = (page - 1) * per_page

        return MatchPage(
            clusters=ordered[start:start + per_page],
            page=page,
            last_page=last_page,
            total=total,
            per_page=per_page,
            total_matches=len(records),
        )

    def _matches_filters(
        self,
        query: MatchQuery,
        investor: Optional[InvestorProfile],
        target: Optional[TargetProfile],
    ) -> bool:
        industries = (investor.industries if investor else []) + (target.industries if target else [])
        if query.industry is not None:
            wanted = str(query.industry).strip()
            if wanted.isdigit():
                found = any(i.id == int(wanted) for i in industries)
            else:
                key = self.normalizer.normalize_text(wanted)
                found = any(key in i.key for i in industries)
            if not found:
                return False

        if query.country is not None:
            wanted = self.regions.resolve(query.country) or query.country.strip()
            places = list(investor.target_countries if investor else [])
            if target and target.hq_country:
                places.append(target.hq_country)
            resolved = {(self.regions.resolve(p) or p.strip()).lower() for p in places}
            if wanted.lower() not in resolved:
                return False

        return True

    def match_detail(self, match_id: int) -> Dict[str, Any]:
        """Match record with both profiles and USD-normalised figures.

        Raises:
            MatchNotFound: If the match does not exist
        """
        with session_scope(self.session_factory) as session:
            match = MatchRepository(session).get(match_id)
            profiles = ProfileRepository(session)
            investor = profiles.get_investor(match.investor_id)
            target = profiles.get_target(match.target_id)
            data = match.to_dict()

        tier = Tier.from_score(data["total_score"])
        data.update(tier=tier.value, tier_label=tier.label)
        return {
            "match": data,
            "investor": investor.model_dump(mode="json"),
            "target": target.model_dump(mode="json"),
            "budget_usd": self._budget_usd(investor),
            "ask_usd": self._ask_usd(target),
        }

    def _budget_usd(self, investor: InvestorProfile) -> Optional[Dict[str, Optional[float]]]:
        budget = investor.budget
        if budget is None or budget.is_empty():
            return None
        return {
            "min": self._usd(budget.min, budget.currency),
            "max": self._usd(budget.max, budget.currency),
        }

    def _ask_usd(self, target: TargetProfile) -> Optional[Dict[str, Optional[float]]]:
        ask = target.financials.ask()
        if ask is None:
            return None
        currency = target.financials.currency
        return {"min": self._usd(ask[0], currency), "max": self._usd(ask[1], currency)}

    def _usd(self, amount: Optional[float], currency: str) -> Optional[float]:
        if amount is None:
            return None
        try:
            return round(self.converter.to_usd(amount, currency), 2)
        except Exception as e:
            logger.warning(f"Could not convert {amount} {currency} to USD: {e}")
            return None

    def stats(self) -> Dict[str, Any]:
        """Counts per tier and average score over listed (non-dismissed, >= min) matches."""
        min_score = self.settings.list_min_score
        with session_scope(self.session_factory) as session:
            base = select(MatchRecord.total_score).where(
                MatchRecord.status != MatchStatus.DISMISSED.value,
                MatchRecord.total_score >= min_score,
            )
            scores = list(session.scalars(base))
            avg = session.scalar(
                select(func.avg(MatchRecord.total_score)).where(
                    MatchRecord.status != MatchStatus.DISMISSED.value,
                    MatchRecord.total_score >= min_score,
                )
            )

        counts = {tier.value: 0 for tier in Tier if tier != Tier.LOW}
        for score in scores:
            tier = Tier.from_score(score)
            if tier != Tier.LOW:
                counts[tier.value] += 1

        return {
            "total": len(scores),
            **counts,
            "avg_score": round(float(avg), 1) if avg is not None else 0.0,
        }
