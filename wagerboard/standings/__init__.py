"""Scoring and leaderboard engine for bet series."""

from .achievements import ACHIEVEMENTS, Achievement, AchievementId
from .coordinator import SeriesRecomputeCoordinator, SlotState, compute_generation
from .presets import SERIES_PRESETS, SeriesPreset, default_scoring
from .ranking import assign_ranks
from .scoring import (
    DEFAULT_SCORING_REGISTRY,
    ELIMINATED,
    MethodRegistry,
    PickScore,
    ScoringContext,
    ScoringMethod,
    points_for,
)
from .streaks import StreakState, compute_streaks
from .types import (
    Bet,
    BonusRules,
    ConfidenceRange,
    Participant,
    ParticipantSnapshot,
    Pick,
    PickResult,
    ScoringConfig,
    Series,
    StandingsGeneration,
)

__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "AchievementId",
    "Bet",
    "BonusRules",
    "ConfidenceRange",
    "DEFAULT_SCORING_REGISTRY",
    "ELIMINATED",
    "MethodRegistry",
    "Participant",
    "ParticipantSnapshot",
    "Pick",
    "PickResult",
    "PickScore",
    "SERIES_PRESETS",
    "ScoringConfig",
    "ScoringContext",
    "ScoringMethod",
    "Series",
    "SeriesPreset",
    "SeriesRecomputeCoordinator",
    "SlotState",
    "StandingsGeneration",
    "StreakState",
    "assign_ranks",
    "compute_generation",
    "compute_streaks",
    "default_scoring",
    "points_for",
]
