"""Achievement catalog and evaluator.

Achievements form a closed set: every :class:`AchievementId` is bound to one
pure predicate in :data:`ACHIEVEMENTS`. New achievements are added by
extending the enum and the catalog.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

from .types import ParticipantSnapshot, Series

logger = logging.getLogger(__name__)

STREAK_MASTER_RUN = 5
TOP_RANKS = 3


class AchievementId(str, enum.Enum):
    PERFECT_WEEK = "perfect_week"
    COMEBACK_KID = "comeback_kid"
    STREAK_MASTER = "streak_master"
    UNDERDOG_HUNTER = "underdog_hunter"


Predicate = Callable[[ParticipantSnapshot, Series, int], bool]


@dataclass(frozen=True)
class Achievement:
    """A badge and the predicate that unlocks it.

    Attributes
    ----------
    id : AchievementId
        Stable identifier stored on snapshots.
    name : str
        Display name.
    description : str
        What the participant did to earn it.
    icon : str
        Icon name used by the presentation layer.
    color : str
        Hex color used by the presentation layer.
    predicate : Predicate
        ``(snapshot, series, field_size) -> bool``; must not depend on other
        achievements.
    """

    id: AchievementId
    name: str
    description: str
    icon: str
    color: str
    predicate: Predicate

    def is_unlocked(self, snapshot: ParticipantSnapshot, series: Series, field_size: int) -> bool:
        """Evaluate the predicate; a failing predicate counts as locked."""
        try:
            return bool(self.predicate(snapshot, series, field_size))
        except Exception:
            logger.exception(
                "Achievement predicate %s failed for participant %s in series %s",
                self.id.value,
                snapshot.participant_id,
                series.id,
            )
            return False


def _perfect_week(snapshot: ParticipantSnapshot, series: Series, field_size: int) -> bool:
    resolved = {bet.id for bet in series.resolved_bets()}
    if not resolved:
        return False
    correct = {result.bet_id for result in snapshot.pick_results if result.correct is True}
    return resolved <= correct


def _comeback_kid(snapshot: ParticipantSnapshot, series: Series, field_size: int) -> bool:
    previous = snapshot.previous_rank
    if previous is None or snapshot.rank is None:
        return False
    # "last place" means the bottom three of the field, below the top three
    in_bottom = previous >= field_size - 2 and previous > TOP_RANKS
    return in_bottom and snapshot.rank <= TOP_RANKS


def _streak_master(snapshot: ParticipantSnapshot, series: Series, field_size: int) -> bool:
    return snapshot.longest_streak >= STREAK_MASTER_RUN


def _underdog_hunter(snapshot: ParticipantSnapshot, series: Series, field_size: int) -> bool:
    # Underdog odds are not part of the bet model.
    return False


ACHIEVEMENTS: Mapping[AchievementId, Achievement] = MappingProxyType(
    {
        AchievementId.PERFECT_WEEK: Achievement(
            id=AchievementId.PERFECT_WEEK,
            name="Perfect Week",
            description="Got every pick correct in a week",
            icon="star",
            color="#F59E0B",
            predicate=_perfect_week,
        ),
        AchievementId.COMEBACK_KID: Achievement(
            id=AchievementId.COMEBACK_KID,
            name="Comeback Kid",
            description="Moved from last place to top 3",
            icon="trending-up",
            color="#10B981",
            predicate=_comeback_kid,
        ),
        AchievementId.STREAK_MASTER: Achievement(
            id=AchievementId.STREAK_MASTER,
            name="Streak Master",
            description="Achieved a 5+ game winning streak",
            icon="fire",
            color="#EF4444",
            predicate=_streak_master,
        ),
        AchievementId.UNDERDOG_HUNTER: Achievement(
            id=AchievementId.UNDERDOG_HUNTER,
            name="Underdog Hunter",
            description="Correctly picked 3+ underdogs in a week",
            icon="target",
            color="#8B5CF6",
            predicate=_underdog_hunter,
        ),
    }
)


def evaluate(
    snapshot: ParticipantSnapshot,
    series: Series,
    field_size: int,
    *,
    carried: Iterable[str] = (),
    catalog: Mapping[AchievementId, Achievement] = ACHIEVEMENTS,
) -> frozenset[str]:
    """Return the achievement ids unlocked by ``snapshot``.

    Parameters
    ----------
    snapshot : ParticipantSnapshot
        Ranked snapshot; ``rank`` and ``previous_rank`` must be final.
    series : Series
        Series the snapshot belongs to.
    field_size : int
        Number of ranked participants in the generation.
    carried : Iterable[str], optional
        Ids unlocked in the previous generation; kept as-is (sticky mode).
    catalog : Mapping[AchievementId, Achievement], optional
        Achievement catalog; defaults to :data:`ACHIEVEMENTS`.
    """
    unlocked = {
        achievement_id.value
        for achievement_id, achievement in catalog.items()
        if achievement.is_unlocked(snapshot, series, field_size)
    }
    unlocked.update(carried)
    return frozenset(unlocked)


def describe(achievement_id: str) -> Achievement:
    """Return the catalog entry for ``achievement_id``."""
    return ACHIEVEMENTS[AchievementId(achievement_id)]


__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "AchievementId",
    "describe",
    "evaluate",
]
