"""Per-bet scoring policy for series standings."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..errors import InvalidConfig, InvalidPick
from .types import Bet, Pick, ScoringConfig

DIFFICULTY_MULTIPLIERS: Dict[str, float] = {
    "easy": 1.0,
    "medium": 1.25,
    "hard": 1.5,
}

# A correct pick must extend a correct run to at least this length to earn
# the configured streak bonus.
STREAK_BONUS_MIN_RUN = 2


@dataclass(frozen=True)
class PickScore:
    """Points produced for one pick.

    Attributes
    ----------
    points : float
        Points awarded for the pick, before bonuses.
    eliminated : bool
        ``True`` when the pick knocked the participant out of an
        ``elimination_style`` series.
    """

    points: float
    eliminated: bool = False


NO_POINTS = PickScore(points=0)
ELIMINATED = PickScore(points=0, eliminated=True)
"""Sentinel returned in place of points for an eliminating pick."""


@dataclass(frozen=True)
class ScoringContext:
    """Inputs a scorer needs beyond the bet and the configuration.

    Attributes
    ----------
    correct : Optional[bool]
        Whether the pick matched the winning side; ``None`` while the bet is
        unresolved.
    confidence : Optional[int]
        Confidence the participant attached to the pick.
    other_confidences : tuple[int, ...]
        Confidence values the same participant used on their other picks in
        the series.
    field_correct_ratio : Optional[float]
        Fraction of the participants who picked this bet and got it right.
        Supplied by the coordinator; only ``percentage_based`` reads it.
    eliminated : bool
        The participant was already eliminated by an earlier bet.
    """

    correct: Optional[bool]
    confidence: Optional[int] = None
    other_confidences: tuple[int, ...] = ()
    field_correct_ratio: Optional[float] = None
    eliminated: bool = False


Scorer = Callable[[ScoringConfig, Bet, ScoringContext], PickScore]


@dataclass(frozen=True)
class ScoringMethod:
    """Definition of a scoring method.

    Attributes
    ----------
    key : str
        Registry key; matches :attr:`ScoringConfig.method`.
    scorer : Scorer
        Callable producing the raw :class:`PickScore` for a judged pick.
    description : Optional[str]
        Human-readable summary of the method's behaviour.
    """

    key: str
    scorer: Scorer
    description: Optional[str] = None

    def evaluate(self, config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
        """Score one pick.

        Unresolved and cancelled bets always score zero. When the series
        enables the difficulty multiplier, positive results are scaled by
        :data:`DIFFICULTY_MULTIPLIERS`.

        Parameters
        ----------
        config : ScoringConfig
            Scoring configuration of the series.
        bet : Bet
            Bet the pick belongs to.
        context : ScoringContext
            Correctness and the other per-pick inputs.

        Returns
        -------
        PickScore
            Points for the pick, or :data:`ELIMINATED`.
        """
        if not bet.is_resolved or context.correct is None:
            return NO_POINTS
        score = self.scorer(config, bet, context)
        if score.eliminated or score.points <= 0:
            return score
        return PickScore(points=apply_difficulty(config, bet, score.points))


class MethodRegistry:
    """Mutable registry mapping scoring method keys to definitions."""

    def __init__(self) -> None:
        self._methods: Dict[str, ScoringMethod] = {}

    def register(self, method: ScoringMethod, *, replace: bool = False) -> None:
        """Register a scoring method under its key.

        Parameters
        ----------
        method : ScoringMethod
            Method to add to the registry.
        replace : bool, default: False
            When ``True`` an existing registration with the same key is
            overwritten. Otherwise a duplicate raises :class:`ValueError`.
        """
        if not replace and method.key in self._methods:
            raise ValueError(f"Scoring method '{method.key}' is already registered")
        self._methods[method.key] = method

    def get(self, key: str) -> ScoringMethod:
        """Return the method registered under ``key``."""
        try:
            return self._methods[key]
        except KeyError as exc:
            raise InvalidConfig(f"unknown scoring method '{key}'") from exc

    def points_for(self, config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
        """Score a pick with the method named by ``config.method``."""
        return self.get(config.method).evaluate(config, bet, context)

    def available_methods(self) -> Dict[str, ScoringMethod]:
        """Return a copy of the registered methods keyed by identifier."""
        return dict(self._methods)


def apply_difficulty(config: ScoringConfig, bet: Bet, points: float) -> float:
    """Scale ``points`` by the bet's difficulty when the series enables it."""
    if not config.bonus.difficulty_multiplier or points <= 0:
        return points
    return points * DIFFICULTY_MULTIPLIERS[bet.difficulty or "easy"]


def check_confidence(
    config: ScoringConfig,
    confidence: Optional[int],
    other_confidences: Iterable[int] = (),
    *,
    bet_id: Optional[str] = None,
) -> None:
    """Validate a confidence value against the series' confidence rules.

    Raises
    ------
    InvalidConfig
        If the series has no confidence range.
    InvalidPick
        If ``confidence`` is missing, not an integer, outside the range, or
        already used on another of the participant's picks.
    """
    bounds = config.confidence_range
    if bounds is None:
        raise InvalidConfig("confidence_points requires a confidence range", bet_id=bet_id)
    if confidence is None:
        raise InvalidPick("a confidence value is required", bet_id=bet_id)
    if isinstance(confidence, bool) or not isinstance(confidence, int):
        raise InvalidPick("confidence must be a whole number", bet_id=bet_id, confidence=confidence)
    if confidence not in bounds:
        raise InvalidPick(
            f"confidence must be between {bounds.min} and {bounds.max}",
            bet_id=bet_id,
            confidence=confidence,
        )
    if confidence in set(other_confidences):
        raise InvalidPick(
            f"confidence {confidence} is already used on another bet",
            bet_id=bet_id,
            confidence=confidence,
        )


def validate_config(config: ScoringConfig, registry: Optional[MethodRegistry] = None) -> None:
    """Reject configurations no pick could be scored under.

    Raises
    ------
    InvalidConfig
        For an unknown method, non-positive base points or weights, or a
        missing/inverted confidence range under ``confidence_points``.
    """
    (registry or DEFAULT_SCORING_REGISTRY).get(config.method)
    if config.base_points <= 0:
        raise InvalidConfig("base points must be positive")
    for bet_id, weight in config.weights.items():
        if weight <= 0:
            raise InvalidConfig(f"weight must be positive, got {weight}", bet_id=bet_id)
    bounds = config.confidence_range
    if config.method == "confidence_points" and bounds is None:
        raise InvalidConfig("confidence_points requires a confidence range")
    if bounds is not None and bounds.min > bounds.max:
        raise InvalidConfig("confidence range minimum exceeds its maximum")
    if config.bonus.perfect_week < 0 or config.bonus.streak_bonus < 0:
        raise InvalidConfig("bonus points must not be negative")


def check_pick_confidence(config: ScoringConfig, pick: Pick, other_confidences: Iterable[int]) -> None:
    """Apply :func:`check_confidence` when the series scores by confidence."""
    if config.method != "confidence_points":
        return
    check_confidence(config, pick.confidence, other_confidences, bet_id=pick.bet_id)


def streak_bonus_for(config: ScoringConfig, run: int, points: float) -> float:
    """Bonus earned by a correct pick that brought the correct run to ``run``."""
    bonus = config.bonus.streak_bonus
    if not bonus or points <= 0 or run < STREAK_BONUS_MIN_RUN:
        return 0
    return bonus


def perfect_week_bonus(config: ScoringConfig, resolved_bets: int, correct_on_resolved: int, eliminated: bool) -> float:
    """Bonus for picking every resolved bet correctly."""
    bonus = config.bonus.perfect_week
    if not bonus or eliminated or resolved_bets == 0:
        return 0
    return bonus if correct_on_resolved == resolved_bets else 0


def _points_per_correct(config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
    return PickScore(points=config.base_points) if context.correct else NO_POINTS


def _weighted(config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
    weight = config.weight_for(bet)
    if weight <= 0:
        raise InvalidConfig(f"weight must be positive, got {weight}", bet_id=bet.id)
    return PickScore(points=config.base_points * weight) if context.correct else NO_POINTS


def _confidence(config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
    check_confidence(config, context.confidence, context.other_confidences, bet_id=bet.id)
    return PickScore(points=context.confidence) if context.correct else NO_POINTS


def _elimination(config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
    if context.eliminated:
        return NO_POINTS
    if not context.correct:
        return ELIMINATED
    return PickScore(points=config.base_points)


def _percentage(config: ScoringConfig, bet: Bet, context: ScoringContext) -> PickScore:
    ratio = context.field_correct_ratio
    if ratio is None:
        raise InvalidConfig("percentage_based scoring needs the field correctness ratio", bet_id=bet.id)
    if not context.correct:
        return NO_POINTS
    return PickScore(points=config.base_points * (1 - ratio))


DEFAULT_SCORING_REGISTRY = MethodRegistry()
DEFAULT_SCORING_REGISTRY.register(
    ScoringMethod(
        key="points_per_correct",
        scorer=_points_per_correct,
        description="Flat base points for every correct pick.",
    )
)
DEFAULT_SCORING_REGISTRY.register(
    ScoringMethod(
        key="weighted_scoring",
        scorer=_weighted,
        description="Base points multiplied by the bet's weight (default 1).",
    )
)
DEFAULT_SCORING_REGISTRY.register(
    ScoringMethod(
        key="confidence_points",
        scorer=_confidence,
        description=(
            "A correct pick earns its confidence value; each participant uses "
            "every confidence value at most once."
        ),
    )
)
DEFAULT_SCORING_REGISTRY.register(
    ScoringMethod(
        key="elimination_style",
        scorer=_elimination,
        description=(
            "Base points per correct pick until the first miss, which "
            "eliminates the participant for the rest of the series."
        ),
    )
)
DEFAULT_SCORING_REGISTRY.register(
    ScoringMethod(
        key="percentage_based",
        scorer=_percentage,
        description="Base points scaled by the share of the field that missed the bet.",
    )
)


def points_for(
    config: ScoringConfig,
    bet: Bet,
    context: ScoringContext,
    registry: Optional[MethodRegistry] = None,
) -> PickScore:
    """Score one pick with the default (or supplied) registry."""
    return (registry or DEFAULT_SCORING_REGISTRY).points_for(config, bet, context)


__all__ = [
    "DEFAULT_SCORING_REGISTRY",
    "DIFFICULTY_MULTIPLIERS",
    "ELIMINATED",
    "MethodRegistry",
    "NO_POINTS",
    "PickScore",
    "ScoringContext",
    "ScoringMethod",
    "check_confidence",
    "check_pick_confidence",
    "perfect_week_bonus",
    "points_for",
    "streak_bonus_for",
    "validate_config",
]
