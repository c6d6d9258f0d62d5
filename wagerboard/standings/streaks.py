"""Correct-pick streak tracking."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Protocol


class JudgedPick(Protocol):
    order: int
    correct: Optional[bool]


@dataclass(frozen=True)
class StreakState:
    """Signed trailing run and the longest correct run.

    ``current`` is positive for consecutive correct picks and negative for
    consecutive misses. ``longest`` only counts correct runs.
    """

    current: int = 0
    longest: int = 0

    def advance(self, correct: Optional[bool]) -> "StreakState":
        """Fold one judged pick into the state; ``None`` is skipped."""
        if correct is None:
            return self
        if correct:
            current = self.current + 1 if self.current > 0 else 1
        else:
            current = self.current - 1 if self.current < 0 else -1
        return StreakState(current=current, longest=max(self.longest, current))


def compute_streaks(picks: Iterable[JudgedPick]) -> StreakState:
    """Derive the streak state from judged picks.

    Picks are walked in ascending ``order``; a pick whose ``correct`` is
    ``None`` (cancelled or unresolved bet) neither extends nor resets a run.
    """
    state = StreakState()
    for pick in sorted(picks, key=lambda item: item.order):
        state = state.advance(pick.correct)
    return state


__all__ = ["JudgedPick", "StreakState", "compute_streaks"]
