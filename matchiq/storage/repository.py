"""Data access for profiles and matches."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from matchiq.errors import MatchNotFound, ProfileNotFound
from matchiq.profile.models import InvestorProfile, ProspectStatus, TargetProfile
from matchiq.storage.models import (
    SCORE_COLUMNS,
    InvestorRecord,
    MatchRecord,
    TargetRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

# Columns a rescan may overwrite on an existing match
REFRESHED_COLUMNS = (
    "total_score",
    *SCORE_COLUMNS,
    "explanations",
    "computed_at",
    "updated_at",
)


class ProfileRepository:
    """Reads investor and target records as validated profiles."""

    def __init__(self, session: Session):
        self.session = session

    def get_investor(self, investor_id: int) -> InvestorProfile:
        record = self.session.get(InvestorRecord, investor_id)
        if record is None:
            raise ProfileNotFound(f"Investor #{investor_id} not found")
        return self._investor_profile(record)

    def get_target(self, target_id: int) -> TargetProfile:
        record = self.session.get(TargetRecord, target_id)
        if record is None:
            raise ProfileNotFound(f"Target #{target_id} not found")
        return self._target_profile(record)

    def active_investors(self) -> List[InvestorProfile]:
        """All active investors. Records with invalid profile data are skipped."""
        records = self.session.scalars(
            select(InvestorRecord)
            .where(InvestorRecord.status == ProspectStatus.ACTIVE.value)
            .order_by(InvestorRecord.id)
        )
        return self._validate_all(records, self._investor_profile)

    def active_targets(self) -> List[TargetProfile]:
        """All active targets. Records with invalid profile data are skipped."""
        records = self.session.scalars(
            select(TargetRecord)
            .where(TargetRecord.status == ProspectStatus.ACTIVE.value)
            .order_by(TargetRecord.id)
        )
        return self._validate_all(records, self._target_profile)

    def investor_names(self, ids: Optional[Iterable[int]] = None) -> Dict[int, str]:
        stmt = select(InvestorRecord.id, InvestorRecord.name)
        if ids is not None:
            stmt = stmt.where(InvestorRecord.id.in_(list(ids)))
        return {row.id: row.name or f"Investor #{row.id}" for row in self.session.execute(stmt)}

    def target_names(self, ids: Optional[Iterable[int]] = None) -> Dict[int, str]:
        stmt = select(TargetRecord.id, TargetRecord.name)
        if ids is not None:
            stmt = stmt.where(TargetRecord.id.in_(list(ids)))
        return {row.id: row.name or f"Target #{row.id}" for row in self.session.execute(stmt)}

    def investors_by_id(self, ids: Iterable[int]) -> Dict[int, InvestorProfile]:
        records = self.session.scalars(select(InvestorRecord).where(InvestorRecord.id.in_(list(ids))))
        return {p.id: p for p in self._validate_all(records, self._investor_profile)}

    def targets_by_id(self, ids: Iterable[int]) -> Dict[int, TargetProfile]:
        records = self.session.scalars(select(TargetRecord).where(TargetRecord.id.in_(list(ids))))
        return {p.id: p for p in self._validate_all(records, self._target_profile)}

    def _investor_profile(self, record: InvestorRecord) -> InvestorProfile:
        data = dict(record.profile or {})
        data.update(id=record.id, name=record.name, status=record.status)
        return InvestorProfile.model_validate(data)

    def _target_profile(self, record: TargetRecord) -> TargetProfile:
        data = dict(record.profile or {})
        data.update(id=record.id, name=record.name, status=record.status)
        return TargetProfile.model_validate(data)

    def _validate_all(self, records, convert) -> list:
        profiles = []
        for record in records:
            try:
                profiles.append(convert(record))
            except ValidationError as e:
                logger.warning(f"Skipping {record!r}: invalid profile data ({e.error_count()} errors)")
        return profiles


class MatchRepository:
    """Persistence for match records, unique per (investor_id, target_id)."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, match_id: int) -> MatchRecord:
        match = self.session.get(MatchRecord, match_id)
        if match is None:
            raise MatchNotFound(f"Match #{match_id} not found")
        return match

    def find(self, investor_id: int, target_id: int) -> Optional[MatchRecord]:
        return self.session.scalar(
            select(MatchRecord).where(
                MatchRecord.investor_id == investor_id,
                MatchRecord.target_id == target_id,
            )
        )

    def upsert(self, values: Dict[str, Any], computed_at: Optional[datetime] = None) -> MatchRecord:
        """Insert or refresh one match and return the stored record."""
        self.bulk_upsert([values], computed_at)
        match = self.find(values["investor_id"], values["target_id"])
        self.session.refresh(match)
        return match

    def bulk_upsert(
        self, rows: Sequence[Dict[str, Any]], computed_at: Optional[datetime] = None
    ) -> int:
        """Insert or refresh many matches in one statement.

        Existing rows keep their status, reviewed_by, deal_id and notes;
        only the score columns, explanations and timestamps change.

        Args:
            rows: Column values as produced by ScoreCard.record_values()
            computed_at: Timestamp to record (default: now)

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        now = computed_at or utcnow()
        params = []
        for row in rows:
            params.append({
                "status": "pending",
                **row,
                "computed_at": now,
                "created_at": now,
                "updated_at": now,
            })

        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            insert = sqlite.insert(MatchRecord.__table__)
        elif dialect == "postgresql":
            insert = postgresql.insert(MatchRecord.__table__)
        else:
            return self._upsert_each(params)

        stmt = insert.on_conflict_do_update(
            index_elements=["investor_id", "target_id"],
            set_={column: insert.excluded[column] for column in REFRESHED_COLUMNS},
        )
        # Core executemany, one round trip per batch
        self.session.connection().execute(stmt, params)
        return len(params)

    def _upsert_each(self, params: List[Dict[str, Any]]) -> int:
        logger.debug("Dialect has no native upsert, updating row by row")
        for values in params:
            match = self.find(values["investor_id"], values["target_id"])
            if match is None:
                self.session.add(MatchRecord(**values))
            else:
                for column in REFRESHED_COLUMNS:
                    setattr(match, column, values[column])
        self.session.flush()
        return len(params)

    def existing_state(
        self,
        investor_ids: Optional[Iterable[int]] = None,
        target_ids: Optional[Iterable[int]] = None,
    ) -> Dict[Tuple[int, int], Tuple[int, str]]:
        """Current (total_score, status) per pair, optionally narrowed."""
        stmt = select(
            MatchRecord.investor_id,
            MatchRecord.target_id,
            MatchRecord.total_score,
            MatchRecord.status,
        )
        if investor_ids is not None:
            stmt = stmt.where(MatchRecord.investor_id.in_(list(investor_ids)))
        if target_ids is not None:
            stmt = stmt.where(MatchRecord.target_id.in_(list(target_ids)))
        return {
            (row.investor_id, row.target_id): (row.total_score, row.status)
            for row in self.session.execute(stmt)
        }

    def search(
        self,
        min_score: int = 0,
        max_score: Optional[int] = None,
        statuses: Optional[Sequence[str]] = None,
        exclude_statuses: Optional[Sequence[str]] = None,
        investor_id: Optional[int] = None,
        target_id: Optional[int] = None,
    ) -> List[MatchRecord]:
        """Matches filtered on stored columns, best score first."""
        stmt = select(MatchRecord).where(MatchRecord.total_score >= min_score)
        if max_score is not None:
            stmt = stmt.where(MatchRecord.total_score <= max_score)
        if statuses:
            stmt = stmt.where(MatchRecord.status.in_(list(statuses)))
        if exclude_statuses:
            stmt = stmt.where(MatchRecord.status.not_in(list(exclude_statuses)))
        if investor_id is not None:
            stmt = stmt.where(MatchRecord.investor_id == investor_id)
        if target_id is not None:
            stmt = stmt.where(MatchRecord.target_id == target_id)
        stmt = stmt.order_by(MatchRecord.total_score.desc(), MatchRecord.id)
        return list(self.session.scalars(stmt))

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(MatchRecord)) or 0
