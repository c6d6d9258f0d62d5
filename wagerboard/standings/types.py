"""Immutable value objects exchanged between the standings components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterator, Mapping, Optional

from ..db.utils import dt_iso
from ..errors import InvalidConfig, UnknownEntity

SCORING_METHODS = (
    "points_per_correct",
    "weighted_scoring",
    "confidence_points",
    "elimination_style",
    "percentage_based",
)
BET_STATUSES = ("pending", "active", "resolved", "cancelled")
DIFFICULTIES = ("easy", "medium", "hard")
SERIES_STATUSES = ("draft", "registration_open", "active", "completed", "cancelled")
CLOSED_SERIES_STATUSES = ("completed", "cancelled")
PARTICIPANT_STATUSES = ("registered", "active", "eliminated", "completed")


def normalize_points(value: float) -> float:
    """Collapse integral floats to ``int`` so equal scores serialize identically."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class Bet:
    """A single resolvable proposition inside a series.

    ``order`` is the canonical judging sequence used for streaks and
    elimination; it must be unique within the series.
    """

    id: str
    sides: tuple[str, ...]
    order: int
    status: str = "pending"
    winning_side: Optional[str] = None
    weight: Optional[float] = None
    difficulty: Optional[str] = None
    title: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sides", tuple(self.sides))
        if self.status not in BET_STATUSES:
            raise ValueError(f"Unknown bet status '{self.status}'")
        if self.difficulty is not None and self.difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown bet difficulty '{self.difficulty}'")

    @property
    def is_resolved(self) -> bool:
        return self.status == "resolved"

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def is_locked(self) -> bool:
        """Picks can no longer be submitted or edited."""
        return self.status in ("resolved", "cancelled")

    def judge(self, selection: str) -> Optional[bool]:
        """Return whether ``selection`` won, or ``None`` while unresolved."""
        if not self.is_resolved or self.winning_side is None:
            return None
        return selection == self.winning_side


@dataclass(frozen=True)
class BonusRules:
    """Optional bonus rules layered on top of the per-bet points."""

    perfect_week: float = 0
    streak_bonus: float = 0
    difficulty_multiplier: bool = False


@dataclass(frozen=True)
class ConfidenceRange:
    min: int
    max: int

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.min <= value <= self.max

    @property
    def size(self) -> int:
        return self.max - self.min + 1


@dataclass(frozen=True)
class ScoringConfig:
    """Scoring configuration of a series.

    Attributes
    ----------
    method : str
        One of :data:`SCORING_METHODS`.
    base_points : float
        Points awarded per correct pick before method-specific scaling.
    bonus : BonusRules
        Perfect-week bonus, per-bet streak bonus and difficulty multiplier.
    weights : Mapping[str, float]
        Per-bet weight overrides keyed by bet id (``weighted_scoring``).
    confidence_range : Optional[ConfidenceRange]
        Allowed confidence values (``confidence_points``).
    """

    method: str = "points_per_correct"
    base_points: float = 1
    bonus: BonusRules = field(default_factory=BonusRules)
    weights: Mapping[str, float] = field(default_factory=dict)
    confidence_range: Optional[ConfidenceRange] = None

    def weight_for(self, bet: Bet) -> float:
        """Return the effective weight of ``bet``; unset weights count as 1."""
        if bet.id in self.weights:
            return self.weights[bet.id]
        if bet.weight is not None:
            return bet.weight
        return 1


@dataclass(frozen=True)
class Pick:
    """A participant's selection (and optional confidence) for one bet."""

    bet_id: str
    selection: str
    confidence: Optional[int] = None
    submitted_at: Optional[datetime] = None


@dataclass(frozen=True)
class Participant:
    id: str
    joined_at: datetime
    display_name: str = ""
    picks: Mapping[str, Pick] = field(default_factory=dict)

    def with_pick(self, pick: Pick) -> "Participant":
        """Return a copy of the participant with ``pick`` recorded."""
        picks = dict(self.picks)
        picks[pick.bet_id] = pick
        return replace(self, picks=picks)

    def confidences(self, *, exclude_bet: Optional[str] = None) -> list[int]:
        return [
            pick.confidence
            for bet_id, pick in self.picks.items()
            if pick.confidence is not None and bet_id != exclude_bet
        ]


@dataclass(frozen=True)
class Series:
    """A set of bets scored and ranked together."""

    id: str
    bets: tuple[Bet, ...]
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    participants: tuple[Participant, ...] = ()
    status: str = "active"
    series_type: str = "custom_series"
    max_participants: Optional[int] = None
    allow_late_entry: bool = True
    achievements_enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "bets", tuple(self.bets))
        object.__setattr__(self, "participants", tuple(self.participants))
        if self.status not in SERIES_STATUSES:
            raise ValueError(f"Unknown series status '{self.status}'")

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_SERIES_STATUSES

    def ordered_bets(self) -> list[Bet]:
        return sorted(self.bets, key=lambda bet: bet.order)

    def resolved_bets(self) -> list[Bet]:
        return [bet for bet in self.ordered_bets() if bet.is_resolved]

    def bet(self, bet_id: str) -> Bet:
        for bet in self.bets:
            if bet.id == bet_id:
                return bet
        raise UnknownEntity("bet", bet_id, series_id=self.id)

    def participant(self, participant_id: str) -> Participant:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        raise UnknownEntity("participant", participant_id, series_id=self.id)

    def iter_picks(self, bet_id: str) -> Iterator[tuple[Participant, Pick]]:
        for participant in self.participants:
            pick = participant.picks.get(bet_id)
            if pick is not None:
                yield participant, pick

    def with_bet(self, bet: Bet) -> "Series":
        bets = tuple(bet if existing.id == bet.id else existing for existing in self.bets)
        return replace(self, bets=bets)

    def with_participant(self, participant: Participant) -> "Series":
        """Return a copy with ``participant`` replaced, or appended when new."""
        participants = list(self.participants)
        for index, existing in enumerate(participants):
            if existing.id == participant.id:
                participants[index] = participant
                break
        else:
            participants.append(participant)
        return replace(self, participants=tuple(participants))

    def validate(self) -> None:
        """Check structural invariants that every recompute relies on.

        Raises
        ------
        InvalidConfig
            If bet ids or orders repeat, a bet offers no sides, a resolved bet
            has no winning side among its sides, or participant ids repeat.
        """
        seen_ids: set[str] = set()
        seen_orders: set[int] = set()
        for bet in self.bets:
            if bet.id in seen_ids:
                raise InvalidConfig(f"duplicate bet id '{bet.id}'", series_id=self.id, bet_id=bet.id)
            if bet.order in seen_orders:
                raise InvalidConfig(f"duplicate bet order {bet.order}", series_id=self.id, bet_id=bet.id)
            if not bet.sides or len(set(bet.sides)) != len(bet.sides):
                raise InvalidConfig("bet sides must be non-empty and distinct", series_id=self.id, bet_id=bet.id)
            if bet.is_resolved and bet.winning_side not in bet.sides:
                raise InvalidConfig("resolved bet has no valid winning side", series_id=self.id, bet_id=bet.id)
            seen_ids.add(bet.id)
            seen_orders.add(bet.order)
        participant_ids = [participant.id for participant in self.participants]
        if len(set(participant_ids)) != len(participant_ids):
            raise InvalidConfig("duplicate participant id", series_id=self.id)

    def fingerprint_payload(self) -> Dict[str, Any]:
        """Canonical description of every input a recompute pass reads."""
        scoring = self.scoring
        return {
            "id": self.id,
            "achievements_enabled": self.achievements_enabled,
            "scoring": {
                "method": scoring.method,
                "base_points": scoring.base_points,
                "perfect_week": scoring.bonus.perfect_week,
                "streak_bonus": scoring.bonus.streak_bonus,
                "difficulty_multiplier": scoring.bonus.difficulty_multiplier,
                "weights": dict(sorted(scoring.weights.items())),
                "confidence_range": (
                    [scoring.confidence_range.min, scoring.confidence_range.max]
                    if scoring.confidence_range is not None
                    else None
                ),
            },
            "bets": [
                [bet.id, bet.order, bet.status, bet.winning_side, bet.weight, bet.difficulty, list(bet.sides)]
                for bet in self.ordered_bets()
            ],
            "participants": [
                [
                    participant.id,
                    dt_iso(participant.joined_at),
                    sorted(
                        [pick.bet_id, pick.selection, pick.confidence]
                        for pick in participant.picks.values()
                    ),
                ]
                for participant in sorted(self.participants, key=lambda p: p.id)
            ],
        }


@dataclass(frozen=True)
class PickResult:
    """Judged outcome of one pick within a recompute pass."""

    bet_id: str
    order: int
    selection: str
    correct: Optional[bool]
    points: float = 0
    bonus: float = 0
    confidence: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "bet_id": self.bet_id,
            "order": self.order,
            "selection": self.selection,
            "correct": self.correct,
            "points": normalize_points(self.points),
            "bonus": normalize_points(self.bonus),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ParticipantSnapshot:
    """Fully recomputed standing of one participant in one generation."""

    participant_id: str
    joined_at: datetime
    total_score: float = 0
    correct_picks: int = 0
    total_picks: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    status: str = "registered"
    rank: Optional[int] = None
    previous_rank: Optional[int] = None
    achievements: frozenset[str] = frozenset()
    pick_results: tuple[PickResult, ...] = ()
    display_name: str = ""

    @property
    def eliminated(self) -> bool:
        return self.status == "eliminated"

    def to_json(self) -> Dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "joined_at": dt_iso(self.joined_at),
            "total_score": normalize_points(self.total_score),
            "correct_picks": self.correct_picks,
            "total_picks": self.total_picks,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "status": self.status,
            "rank": self.rank,
            "previous_rank": self.previous_rank,
            "achievements": sorted(self.achievements),
            "picks": [result.to_json() for result in self.pick_results],
        }


@dataclass(frozen=True)
class StandingsGeneration:
    """The complete, ranked snapshot set of a series for one recompute pass.

    Generations are published by swapping the reference held by the
    coordinator; a generation is never modified after construction.
    """

    series_id: str
    number: int
    snapshots: tuple[ParticipantSnapshot, ...]
    fingerprint: str

    def __iter__(self) -> Iterator[ParticipantSnapshot]:
        return iter(self.snapshots)

    def __len__(self) -> int:
        return len(self.snapshots)

    def snapshot_for(self, participant_id: str) -> ParticipantSnapshot:
        for snapshot in self.snapshots:
            if snapshot.participant_id == participant_id:
                return snapshot
        raise UnknownEntity("participant", participant_id, series_id=self.series_id)

    def ranks(self) -> Dict[str, int]:
        return {
            snapshot.participant_id: snapshot.rank
            for snapshot in self.snapshots
            if snapshot.rank is not None
        }

    def previous_ranks(self) -> Dict[str, int]:
        return {
            snapshot.participant_id: snapshot.previous_rank
            for snapshot in self.snapshots
            if snapshot.previous_rank is not None
        }

    def to_json(self) -> Dict[str, Any]:
        return {
            "series_id": self.series_id,
            "generation": self.number,
            "fingerprint": self.fingerprint,
            "standings": [snapshot.to_json() for snapshot in self.snapshots],
        }


__all__ = [
    "BET_STATUSES",
    "CLOSED_SERIES_STATUSES",
    "DIFFICULTIES",
    "PARTICIPANT_STATUSES",
    "SCORING_METHODS",
    "SERIES_STATUSES",
    "Bet",
    "BonusRules",
    "ConfidenceRange",
    "Participant",
    "ParticipantSnapshot",
    "Pick",
    "PickResult",
    "ScoringConfig",
    "Series",
    "StandingsGeneration",
    "normalize_points",
]
