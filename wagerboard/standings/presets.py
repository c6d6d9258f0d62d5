"""Series-type presets with default scoring."""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Mapping, Optional

from .types import BonusRules, ConfidenceRange, ScoringConfig


@dataclass(frozen=True)
class SeriesPreset:
    """Defaults applied when a series of a given type is created.

    Attributes
    ----------
    key : str
        Series type identifier.
    name : str
        Display name.
    description : str
        One-line summary.
    default_scoring : ScoringConfig
        Scoring configuration new series of this type start with.
    min_bets : int
        Fewest bets a series of this type should carry.
    max_bets : Optional[int]
        Most bets allowed, ``None`` for no limit.
    default_duration_days : int
        Suggested series length.
    is_premium : bool
        Reserved for premium tiers; not enforced here.
    achievements_enabled : bool
        Whether achievements are shown for this type.
    """

    key: str
    name: str
    description: str
    default_scoring: ScoringConfig
    min_bets: int
    max_bets: Optional[int]
    default_duration_days: int
    is_premium: bool = False
    achievements_enabled: bool = True

    def accepts_bet_count(self, count: int) -> bool:
        if count < self.min_bets:
            return False
        return self.max_bets is None or count <= self.max_bets


SERIES_PRESETS: Mapping[str, SeriesPreset] = MappingProxyType(
    {
        "office_pool": SeriesPreset(
            key="office_pool",
            name="Office Pool",
            description="Weekly office pool with game picks and overall leaderboard",
            default_scoring=ScoringConfig(
                method="points_per_correct",
                base_points=1,
                bonus=BonusRules(perfect_week=5, streak_bonus=2),
            ),
            min_bets=3,
            max_bets=16,
            default_duration_days=7,
        ),
        "game_day_props": SeriesPreset(
            key="game_day_props",
            name="Game Day Props",
            description="Collection of prop bets and over/unders for a single game",
            default_scoring=ScoringConfig(method="points_per_correct", base_points=1),
            min_bets=5,
            max_bets=20,
            default_duration_days=1,
        ),
        "tournament_series": SeriesPreset(
            key="tournament_series",
            name="Tournament Series",
            description="Multi-round tournament with elimination or points accumulation",
            default_scoring=ScoringConfig(
                method="weighted_scoring",
                bonus=BonusRules(perfect_week=10, streak_bonus=3, difficulty_multiplier=True),
            ),
            min_bets=4,
            max_bets=64,
            default_duration_days=21,
            is_premium=True,
        ),
        "weekly_picks": SeriesPreset(
            key="weekly_picks",
            name="Weekly Picks",
            description="Recurring weekly competition with season-long leaderboard",
            default_scoring=ScoringConfig(
                method="confidence_points",
                confidence_range=ConfidenceRange(min=1, max=16),
                bonus=BonusRules(perfect_week=15, streak_bonus=5),
            ),
            min_bets=8,
            max_bets=16,
            default_duration_days=7,
            is_premium=True,
        ),
        "season_long": SeriesPreset(
            key="season_long",
            name="Season Long",
            description="Extended competition spanning multiple weeks or months",
            default_scoring=ScoringConfig(
                method="points_per_correct",
                base_points=1,
                bonus=BonusRules(perfect_week=10, streak_bonus=3, difficulty_multiplier=True),
            ),
            min_bets=10,
            max_bets=100,
            default_duration_days=120,
            is_premium=True,
        ),
        "custom_series": SeriesPreset(
            key="custom_series",
            name="Custom Series",
            description="Build your own series with custom rules and scoring",
            default_scoring=ScoringConfig(method="points_per_correct", base_points=1),
            min_bets=2,
            max_bets=None,
            default_duration_days=7,
            achievements_enabled=False,
        ),
    }
)


def get_preset(series_type: str) -> SeriesPreset:
    try:
        return SERIES_PRESETS[series_type]
    except KeyError as exc:
        raise ValueError(f"Unknown series type '{series_type}'") from exc


def default_scoring(series_type: str, bet_count: Optional[int] = None) -> ScoringConfig:
    """Return the preset scoring for ``series_type``.

    Confidence-based presets size their range to the number of bets (1..n)
    when ``bet_count`` is given, so every bet gets a distinct confidence.
    """
    scoring = get_preset(series_type).default_scoring
    if scoring.method == "confidence_points" and bet_count:
        scoring = replace(scoring, confidence_range=ConfidenceRange(min=1, max=bet_count))
    return scoring


__all__ = ["SERIES_PRESETS", "SeriesPreset", "default_scoring", "get_preset"]
