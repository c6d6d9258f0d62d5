"""Read-side helpers for rendering a published generation.

Everything here derives from a :class:`StandingsGeneration`, so the
presentation layer never has to rescore anything.
"""

from __future__ import annotations

from typing import Optional

from .types import ParticipantSnapshot, StandingsGeneration, normalize_points

# Target gap shown to the leader, who has no next rank to chase.
LEADER_TARGET_MARGIN = 10


def win_percentage(snapshot: ParticipantSnapshot) -> float:
    """Percentage of judged picks that were correct (0 when none judged)."""
    if snapshot.total_picks == 0:
        return 0.0
    return snapshot.correct_picks / snapshot.total_picks * 100


def rank_change(snapshot: ParticipantSnapshot) -> int:
    """Positions gained (positive) or lost (negative) since the previous generation."""
    if snapshot.previous_rank is None or snapshot.rank is None:
        return 0
    return snapshot.previous_rank - snapshot.rank


def streak_label(snapshot: ParticipantSnapshot) -> Optional[str]:
    if snapshot.current_streak == 0:
        return None
    kind = "W" if snapshot.current_streak > 0 else "L"
    return f"{kind}{abs(snapshot.current_streak)}"


def next_rank_threshold(snapshot: ParticipantSnapshot, generation: StandingsGeneration) -> float:
    """Score needed to pass the participant ranked directly above."""
    if snapshot.rank is None or snapshot.rank == 1:
        return normalize_points(snapshot.total_score + LEADER_TARGET_MARGIN)
    for other in generation:
        if other.rank == snapshot.rank - 1:
            return normalize_points(other.total_score + 1)
    return normalize_points(snapshot.total_score + LEADER_TARGET_MARGIN)


def progress_to_next_rank(snapshot: ParticipantSnapshot, generation: StandingsGeneration) -> float:
    """Fraction (0..1) of the next-rank threshold already reached."""
    threshold = next_rank_threshold(snapshot, generation)
    if threshold <= 0:
        return 1.0
    return max(0.0, min(1.0, snapshot.total_score / threshold))


__all__ = [
    "next_rank_threshold",
    "progress_to_next_rank",
    "rank_change",
    "streak_label",
    "win_percentage",
]
