"""Error taxonomy for the standings engine.

Every error carries a stable ``code``, a developer-facing message, a
``user_message`` suitable for the initiating participant or operator, and the
identifiers it concerns. :meth:`StandingsError.to_notice` turns an error into
the structured failure notification returned to whatever triggered it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StandingsError(Exception):
    """Base exception for standings-engine failures."""

    code = "standings_error"

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.context: Dict[str, Any] = {
            key: value for key, value in context.items() if value is not None
        }

    def to_notice(self) -> Dict[str, Any]:
        """Return a JSON-friendly failure notification."""
        notice: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
        }
        notice.update(self.context)
        return notice


class InvalidConfig(StandingsError):
    """Raised when a series' scoring configuration cannot be applied.

    Fatal to the recompute pass; retrying will not help until the series
    configuration is corrected.
    """

    code = "invalid_config"

    def __init__(self, reason: str, *, series_id: Optional[str] = None, bet_id: Optional[str] = None):
        super().__init__(
            f"Invalid scoring configuration: {reason}",
            "This series is misconfigured. Ask the organizer to fix its scoring settings.",
            series_id=series_id,
            bet_id=bet_id,
        )
        self.reason = reason


class InvalidPick(StandingsError):
    """Raised when a pick's confidence value breaks the confidence rules."""

    code = "invalid_pick"

    def __init__(
        self,
        reason: str,
        *,
        series_id: Optional[str] = None,
        participant_id: Optional[str] = None,
        bet_id: Optional[str] = None,
        confidence: Optional[int] = None,
    ):
        super().__init__(
            f"Invalid pick: {reason}",
            reason,
            series_id=series_id,
            participant_id=participant_id,
            bet_id=bet_id,
            confidence=confidence,
        )
        self.reason = reason


class PickLocked(StandingsError):
    """Raised when a pick is submitted or edited after its bet resolved."""

    code = "pick_locked"

    def __init__(self, bet_id: str, status: str, *, series_id: Optional[str] = None, participant_id: Optional[str] = None):
        super().__init__(
            f"Bet '{bet_id}' is {status}; picks are locked",
            "Picks for this bet are locked.",
            series_id=series_id,
            participant_id=participant_id,
            bet_id=bet_id,
            status=status,
        )


class InvalidSelection(StandingsError):
    """Raised when a selection is not one of the bet's sides."""

    code = "invalid_selection"

    def __init__(self, bet_id: str, selection: str, *, series_id: Optional[str] = None):
        super().__init__(
            f"'{selection}' is not a side of bet '{bet_id}'",
            f"'{selection}' is not an option for this bet.",
            series_id=series_id,
            bet_id=bet_id,
            selection=selection,
        )


class InvalidResolution(StandingsError):
    """Raised when a resolution event does not fit the bet's current state."""

    code = "invalid_resolution"

    def __init__(self, bet_id: str, reason: str, *, series_id: Optional[str] = None):
        super().__init__(
            f"Cannot resolve bet '{bet_id}': {reason}",
            "This bet cannot be resolved that way.",
            series_id=series_id,
            bet_id=bet_id,
        )


class SeriesClosed(StandingsError):
    """Raised when a trigger targets a completed or cancelled series."""

    code = "series_closed"

    def __init__(self, series_id: str, status: Optional[str] = None):
        super().__init__(
            f"Series '{series_id}' is closed" + (f" ({status})" if status else ""),
            "This series is closed; standings are final.",
            series_id=series_id,
            status=status,
        )


class EnrollmentClosed(StandingsError):
    """Raised when a participant cannot join a series."""

    code = "enrollment_closed"

    def __init__(self, series_id: str, reason: str):
        super().__init__(
            f"Cannot join series '{series_id}': {reason}",
            f"You cannot join this series: {reason}.",
            series_id=series_id,
        )


class RecomputeTimeout(StandingsError):
    """Raised when a recompute pass (or the wait for one) overruns its deadline."""

    code = "recompute_timeout"

    def __init__(self, series_id: str, seconds: float, *, attempts: Optional[int] = None):
        super().__init__(
            f"Recompute for series '{series_id}' exceeded {seconds:.2f}s",
            "Standings are taking longer than usual to update. Please try again shortly.",
            series_id=series_id,
            seconds=round(seconds, 3),
            attempts=attempts,
        )
        self.seconds = seconds


class UnknownEntity(StandingsError, KeyError):
    """Raised when a series, bet or participant id is not known to the engine."""

    code = "unknown_entity"

    def __init__(self, kind: str, entity_id: str, *, series_id: Optional[str] = None):
        super().__init__(
            f"Unknown {kind} '{entity_id}'",
            f"That {kind} could not be found.",
            series_id=series_id,
            kind=kind,
            entity_id=entity_id,
        )

    def __str__(self) -> str:
        return self.message


__all__ = [
    "StandingsError",
    "InvalidConfig",
    "InvalidPick",
    "PickLocked",
    "InvalidSelection",
    "InvalidResolution",
    "SeriesClosed",
    "EnrollmentClosed",
    "RecomputeTimeout",
    "UnknownEntity",
]
