"""Leaderboard ranking with deterministic tie-breaks."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Mapping, Optional

from .types import ParticipantSnapshot


def _join_key(joined_at: datetime) -> datetime:
    # Naive timestamps are treated as UTC so mixed inputs stay comparable.
    if joined_at.tzinfo is None:
        return joined_at.replace(tzinfo=timezone.utc)
    return joined_at


def ranking_key(snapshot: ParticipantSnapshot) -> tuple:
    """Sort key: score desc, correct picks desc, join time asc, id asc.

    The participant id only matters when two participants joined at the same
    instant; it keeps the order total.
    """
    return (
        -snapshot.total_score,
        -snapshot.correct_picks,
        _join_key(snapshot.joined_at),
        snapshot.participant_id,
    )


def assign_ranks(
    snapshots: Iterable[ParticipantSnapshot],
    previous_ranks: Optional[Mapping[str, int]] = None,
) -> tuple[ParticipantSnapshot, ...]:
    """Rank ``snapshots`` 1..n with no shared ranks.

    Parameters
    ----------
    snapshots : Iterable[ParticipantSnapshot]
        Unranked snapshots of one generation.
    previous_ranks : Optional[Mapping[str, int]], default: None
        Ranks of the prior generation keyed by participant id. Participants
        missing from it get ``previous_rank=None``.

    Returns
    -------
    tuple[ParticipantSnapshot, ...]
        New snapshots in rank order with ``rank`` and ``previous_rank`` set.
    """
    previous_ranks = previous_ranks or {}
    ordered = sorted(snapshots, key=ranking_key)
    return tuple(
        replace(
            snapshot,
            rank=position,
            previous_rank=previous_ranks.get(snapshot.participant_id),
        )
        for position, snapshot in enumerate(ordered, start=1)
    )


__all__ = ["assign_ranks", "ranking_key"]
