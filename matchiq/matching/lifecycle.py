"""Review workflow for persisted matches.

    pending --approve--> reviewed --approve--> reviewed
    pending/reviewed --dismiss--> dismissed   (terminal)
    pending/reviewed --convert--> converted   (terminal, creates a Deal)
"""

import logging
from enum import Enum
from typing import Dict, Optional, Set

from sqlalchemy import update
from sqlalchemy.orm import Session

from matchiq.errors import InvalidTransition
from matchiq.storage.models import Deal, InvestorRecord, MatchRecord, TargetRecord

logger = logging.getLogger(__name__)


class MatchStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"
    CONVERTED = "converted"


class LifecycleAction(str, Enum):
    APPROVE = "approve"
    DISMISS = "dismiss"
    CONVERT = "convert"

    @classmethod
    def parse(cls, value: "str | LifecycleAction") -> "LifecycleAction":
        """Parse an action name. "review" is accepted for approve."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name == "review":
            return cls.APPROVE
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown action: {value}") from None


# Status each action leads to
TRANSITIONS: Dict[LifecycleAction, MatchStatus] = {
    LifecycleAction.APPROVE: MatchStatus.REVIEWED,
    LifecycleAction.DISMISS: MatchStatus.DISMISSED,
    LifecycleAction.CONVERT: MatchStatus.CONVERTED,
}

# Statuses from which any action is allowed
OPEN_STATUSES: Set[MatchStatus] = {MatchStatus.PENDING, MatchStatus.REVIEWED}

DEAL_STATUS = "active"
DEAL_STAGE_CODE = "F"


class MatchLifecycle:
    """Applies review actions to match records inside a caller's session."""

    def apply(
        self,
        session: Session,
        match: MatchRecord,
        action: "str | LifecycleAction",
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> MatchRecord:
        """Apply an action to a match.

        The caller owns the transaction: a converted match and its new Deal
        are committed (or rolled back) together. The status change is a
        conditional UPDATE on the stored row, so of two sessions racing on
        the same match only one gets past it.

        Args:
            session: Session the match is attached to
            match: Match to update
            action: approve (or review), dismiss or convert
            actor_id: User performing the action
            notes: Optional note to attach

        Returns:
            The updated match

        Raises:
            InvalidTransition: If the match is already dismissed or converted
        """
        action = LifecycleAction.parse(action)
        current = MatchStatus(match.status)
        if current not in OPEN_STATUSES:
            raise InvalidTransition(action.value, current.value, match.id)

        new_status = TRANSITIONS[action].value
        self._claim(session, match, action, new_status, actor_id)

        if action == LifecycleAction.CONVERT:
            deal = self._create_deal(session, match)
            match.deal_id = deal.id

        match.status = new_status
        match.reviewed_by = actor_id
        if notes:
            match.notes = notes

        session.flush()
        logger.info(f"Match #{match.id} {current.value} -> {match.status} by user {actor_id}")
        return match

    def _claim(
        self,
        session: Session,
        match: MatchRecord,
        action: LifecycleAction,
        new_status: str,
        actor_id: Optional[int],
    ) -> None:
        """Move the stored row to new_status only if it is still open."""
        result = session.execute(
            update(MatchRecord)
            .where(
                MatchRecord.id == match.id,
                MatchRecord.status.in_([status.value for status in OPEN_STATUSES]),
            )
            .values(status=new_status, reviewed_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.refresh(match)
            raise InvalidTransition(action.value, match.status, match.id)

    def _create_deal(self, session: Session, match: MatchRecord) -> Deal:
        investor = session.get(InvestorRecord, match.investor_id)
        target = session.get(TargetRecord, match.target_id)
        investor_name = (investor.name if investor else None) or f"Investor #{match.investor_id}"
        target_name = (target.name if target else None) or f"Target #{match.target_id}"

        deal = Deal(
            name=f"{investor_name} × {target_name}",
            investor_id=match.investor_id,
            target_id=match.target_id,
            status=DEAL_STATUS,
            stage_code=DEAL_STAGE_CODE,
        )
        session.add(deal)
        session.flush()
        return deal
