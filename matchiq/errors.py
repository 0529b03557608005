"""Exception types raised by the MatchIQ engine."""

from typing import Optional


class MatchIQError(Exception):
    """Base class for all MatchIQ errors."""


class InvalidWeights(MatchIQError, ValueError):
    """Dimension weights cannot be used for scoring."""


class InvalidTransition(MatchIQError):
    """A lifecycle action is not allowed from the match's current status."""

    def __init__(self, action: str, current_status: str, match_id: Optional[int] = None):
        self.action = action
        self.current_status = current_status
        self.match_id = match_id
        target = f"Match #{match_id}" if match_id is not None else "Match"
        super().__init__(
            f"Cannot {action} {target}: it is already '{current_status}'"
        )


class UpstreamUnavailable(MatchIQError):
    """An upstream source (exchange rates, profiles) could not be reached."""


class RescanInProgress(MatchIQError):
    """Another rescan is already running."""


class RescanAborted(MatchIQError):
    """A rescan stopped before finishing.

    Pairs persisted before the failure stay persisted; ``completed`` says
    how many.
    """

    def __init__(self, message: str, completed: int = 0):
        self.completed = completed
        super().__init__(f"{message} ({completed} pairs completed before failure)")


class MatchNotFound(MatchIQError, LookupError):
    """No match record exists for the given id or pair."""


class ProfileNotFound(MatchIQError, LookupError):
    """No investor or target exists for the given id."""
