"""Series recompute coordinator.

The coordinator owns the authoritative :class:`StandingsGeneration` of every
registered series. Triggers (pick submissions, bet resolutions, explicit
recomputes) mutate the series value and then wait for a recompute pass that
covers them. At most one pass runs per series; triggers that arrive while a
pass is running are folded into a single follow-up pass. Different series
never share a lock.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from ..config import Settings, load_settings
from ..errors import (
    EnrollmentClosed,
    InvalidPick,
    InvalidResolution,
    InvalidSelection,
    PickLocked,
    RecomputeTimeout,
    SeriesClosed,
    StandingsError,
    UnknownEntity,
)
from . import achievements
from .ranking import assign_ranks
from .scoring import (
    DEFAULT_SCORING_REGISTRY,
    NO_POINTS,
    MethodRegistry,
    ScoringContext,
    check_pick_confidence,
    perfect_week_bonus,
    streak_bonus_for,
    validate_config,
)
from .streaks import StreakState, compute_streaks
from .types import (
    CLOSED_SERIES_STATUSES,
    Participant,
    ParticipantSnapshot,
    Pick,
    PickResult,
    Series,
    StandingsGeneration,
    normalize_points,
)

logger = logging.getLogger(__name__)

Checkpoint = Callable[[], None]


class SlotState(str, enum.Enum):
    IDLE = "idle"
    RECOMPUTING = "recomputing"
    CLOSED = "closed"


def series_fingerprint(series: Series) -> str:
    """Return a SHA-256 digest of every input a recompute pass reads."""
    payload = json.dumps(series.fingerprint_payload(), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def field_correct_ratios(series: Series) -> Dict[str, float]:
    """Share of correct pickers per resolved bet that at least one participant picked."""
    ratios: Dict[str, float] = {}
    for bet in series.resolved_bets():
        outcomes = [bet.judge(pick.selection) for _, pick in series.iter_picks(bet.id)]
        if outcomes:
            ratios[bet.id] = sum(1 for outcome in outcomes if outcome) / len(outcomes)
    return ratios


def _participant_status(series: Series, participant: Participant, eliminated: bool) -> str:
    if eliminated:
        return "eliminated"
    if not participant.picks:
        return "registered"
    bets = series.bets
    settled = bets and all(bet.is_locked for bet in bets)
    if settled and all(bet.id in participant.picks for bet in series.resolved_bets()):
        return "completed"
    return "active"


def score_participant(
    series: Series,
    participant: Participant,
    ratios: Mapping[str, float],
    registry: Optional[MethodRegistry] = None,
) -> ParticipantSnapshot:
    """Build the unranked snapshot of one participant.

    Picks are judged in bet order so that elimination and streak bonuses
    see the same sequence the streak tracker does.

    A stored pick that breaks the confidence rules scores zero and is
    logged; it does not abort the pass for the rest of the field.

    Raises
    ------
    InvalidConfig
        Propagated from the scoring policy with series and participant ids
        attached.
    """
    registry = registry or DEFAULT_SCORING_REGISTRY
    config = series.scoring
    streak = StreakState()
    eliminated = False
    total: float = 0
    correct_picks = 0
    judged_picks = 0
    results: list[PickResult] = []

    for bet in series.ordered_bets():
        pick = participant.picks.get(bet.id)
        if pick is None:
            continue
        correct = bet.judge(pick.selection)
        context = ScoringContext(
            correct=correct,
            confidence=pick.confidence,
            other_confidences=tuple(participant.confidences(exclude_bet=bet.id)),
            field_correct_ratio=ratios.get(bet.id),
            eliminated=eliminated,
        )
        try:
            score = registry.points_for(config, bet, context)
        except InvalidPick as exc:
            logger.warning(
                "Scoring pick on bet %s by %s in series %s as 0: %s",
                bet.id,
                participant.id,
                series.id,
                exc.reason,
            )
            score = NO_POINTS
        except StandingsError as exc:
            exc.context.setdefault("series_id", series.id)
            exc.context.setdefault("participant_id", participant.id)
            raise

        streak = streak.advance(correct)
        bonus: float = 0
        if score.eliminated:
            eliminated = True
            logger.debug(
                "Participant %s eliminated by bet %s in series %s",
                participant.id,
                bet.id,
                series.id,
            )
        elif correct:
            bonus = streak_bonus_for(config, streak.current, score.points)

        if correct is not None:
            judged_picks += 1
            if correct:
                correct_picks += 1
        total += score.points + bonus
        results.append(
            PickResult(
                bet_id=bet.id,
                order=bet.order,
                selection=pick.selection,
                correct=correct,
                points=normalize_points(score.points),
                bonus=normalize_points(bonus),
                confidence=pick.confidence,
            )
        )

    total += perfect_week_bonus(config, len(series.resolved_bets()), correct_picks, eliminated)
    streaks = compute_streaks(results)
    return ParticipantSnapshot(
        participant_id=participant.id,
        display_name=participant.display_name,
        joined_at=participant.joined_at,
        total_score=normalize_points(total),
        correct_picks=correct_picks,
        total_picks=judged_picks,
        current_streak=streaks.current,
        longest_streak=streaks.longest,
        status=_participant_status(series, participant, eliminated),
        pick_results=tuple(results),
    )


def compute_generation(
    series: Series,
    baseline: Optional[StandingsGeneration] = None,
    *,
    registry: Optional[MethodRegistry] = None,
    sticky_achievements: bool = False,
    checkpoint: Optional[Checkpoint] = None,
) -> StandingsGeneration:
    """Recompute every participant's standing for ``series``.

    Parameters
    ----------
    series : Series
        Immutable series value to score.
    baseline : Optional[StandingsGeneration], default: None
        The currently published generation. Its ranks become the new
        ``previous_rank`` values. When the series inputs are unchanged since
        the baseline was built, the baseline's own previous ranks are kept so
        that repeated passes produce identical snapshots.
    registry : Optional[MethodRegistry], default: None
        Scoring registry; defaults to :data:`DEFAULT_SCORING_REGISTRY`.
    sticky_achievements : bool, default: False
        Keep achievements unlocked in the baseline.
    checkpoint : Optional[Callable[[], None]], default: None
        Called between units of work; raising from it abandons the pass.

    Returns
    -------
    StandingsGeneration
        The complete, ranked generation. Nothing is published here.
    """
    registry = registry or DEFAULT_SCORING_REGISTRY
    check = checkpoint or (lambda: None)

    validate_series(series, registry)
    fingerprint = series_fingerprint(series)

    if baseline is None:
        previous_ranks: Dict[str, int] = {}
    elif baseline.fingerprint == fingerprint:
        previous_ranks = baseline.previous_ranks()
    else:
        previous_ranks = baseline.ranks()
    carried: Dict[str, frozenset[str]] = {}
    if sticky_achievements and baseline is not None:
        carried = {snapshot.participant_id: snapshot.achievements for snapshot in baseline}

    ratios = field_correct_ratios(series)
    unranked = []
    for participant in series.participants:
        check()
        unranked.append(score_participant(series, participant, ratios, registry))

    check()
    ranked = assign_ranks(unranked, previous_ranks)
    field_size = len(ranked)
    snapshots = tuple(
        replace(
            snapshot,
            achievements=(
                achievements.evaluate(
                    snapshot,
                    series,
                    field_size,
                    carried=carried.get(snapshot.participant_id, ()),
                )
                if series.achievements_enabled
                else frozenset()
            ),
        )
        for snapshot in ranked
    )
    return StandingsGeneration(
        series_id=series.id,
        number=(baseline.number + 1) if baseline is not None else 1,
        snapshots=snapshots,
        fingerprint=fingerprint,
    )


def validate_series(series: Series, registry: Optional[MethodRegistry] = None) -> None:
    """Run structural and scoring-configuration checks, tagging errors with the series id."""
    try:
        series.validate()
        validate_config(series.scoring, registry)
    except StandingsError as exc:
        exc.context.setdefault("series_id", series.id)
        raise


def validate_picks(series: Series) -> None:
    """Reject stored picks that break the series' confidence rules.

    Raises
    ------
    InvalidPick
        For the first offending pick, tagged with series and participant ids.
    """
    for participant in series.participants:
        for bet_id, pick in participant.picks.items():
            try:
                check_pick_confidence(series.scoring, pick, participant.confidences(exclude_bet=bet_id))
            except InvalidPick as exc:
                exc.context.setdefault("series_id", series.id)
                exc.context.setdefault("participant_id", participant.id)
                raise


def check_enrollment(series: Series, participant_id: Optional[str] = None) -> None:
    """Raise :class:`EnrollmentClosed` unless ``participant_id`` may join ``series``.

    With ``participant_id=None`` only the series-level rules (status, capacity,
    late entry) are checked.
    """
    if series.is_closed:
        raise SeriesClosed(series.id, series.status)
    if series.status == "draft":
        raise EnrollmentClosed(series.id, "registration has not opened")
    if participant_id is not None and any(
        participant.id == participant_id for participant in series.participants
    ):
        raise EnrollmentClosed(series.id, "already enrolled")
    if series.max_participants is not None and len(series.participants) >= series.max_participants:
        raise EnrollmentClosed(series.id, "the series is full")
    started = series.status == "active" and any(bet.status != "pending" for bet in series.bets)
    if started and not series.allow_late_entry:
        raise EnrollmentClosed(series.id, "late entry is not allowed")


class _SeriesSlot:
    """Mutable per-series state; every field is guarded by ``condition``."""

    def __init__(self, series: Series) -> None:
        self.series = series
        self.generation: Optional[StandingsGeneration] = None
        self.condition = threading.Condition()
        self.closed = series.is_closed
        self.running = False
        self.requested = 0
        self.covered = 0
        self.in_flight = 0
        self.last_generation: Optional[StandingsGeneration] = None
        self.last_error: Optional[BaseException] = None
        self.passes = 0


class SeriesRecomputeCoordinator:
    """Serializes and coalesces recompute passes per series.

    Parameters
    ----------
    settings : Optional[Settings], default: None
        Deadlines, retry policy and sticky-achievement flag. Loaded from the
        environment when omitted.
    registry : Optional[MethodRegistry], default: None
        Scoring registry shared by every series.
    clock : Callable[[], float], default: time.monotonic
        Monotonic clock used for deadlines.
    sleep : Callable[[float], None], default: time.sleep
        Used for retry backoff.
    on_pass_start : Optional[Callable[[str], None]], default: None
        Monitoring hook called with the series id when a pass starts.
    on_pass_complete : Optional[Callable[[str, float, bool], None]], default: None
        Monitoring hook called with the series id, duration and success flag.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        registry: Optional[MethodRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_pass_start: Optional[Callable[[str], None]] = None,
        on_pass_complete: Optional[Callable[[str, float, bool], None]] = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._registry = registry or DEFAULT_SCORING_REGISTRY
        self._clock = clock
        self._sleep = sleep
        self.on_pass_start = on_pass_start
        self.on_pass_complete = on_pass_complete
        self._slots: Dict[str, _SeriesSlot] = {}
        self._slots_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration and reads
    # ------------------------------------------------------------------
    def register_series(self, series: Series, *, replace: bool = False) -> Optional[StandingsGeneration]:
        """Install ``series`` and compute its first generation.

        With ``replace=True`` an already registered series value is swapped
        for ``series`` (its published generation is kept as the baseline).
        A series registered with a completed/cancelled status is closed
        immediately and no pass runs.

        Raises
        ------
        ValueError
            If the series is already registered and ``replace`` is false.
        InvalidConfig
            If the series or its scoring configuration is malformed.
        InvalidPick
            If a stored pick breaks the confidence rules. Nothing is
            registered or replaced.
        SeriesClosed
            If the registered series was already closed.
        """
        validate_series(series, self._registry)
        validate_picks(series)
        with self._slots_lock:
            slot = self._slots.get(series.id)
            if slot is None:
                slot = _SeriesSlot(series)
                self._slots[series.id] = slot
            elif not replace:
                raise ValueError(f"Series '{series.id}' is already registered")
            else:
                with slot.condition:
                    if slot.closed:
                        raise SeriesClosed(series.id, slot.series.status)
                    slot.series = series
                    slot.closed = series.is_closed
                    slot.condition.notify_all()
        if slot.closed:
            logger.info("Series %s registered in closed state (%s)", series.id, series.status)
            return self.current(series.id)
        return self._trigger(slot)

    def is_registered(self, series_id: str) -> bool:
        with self._slots_lock:
            return series_id in self._slots

    def current(self, series_id: str) -> Optional[StandingsGeneration]:
        """Return the authoritative generation, or ``None`` before the first pass."""
        slot = self._slot(series_id)
        with slot.condition:
            return slot.generation

    def series(self, series_id: str) -> Series:
        """Return the latest series value (including not yet recomputed triggers)."""
        slot = self._slot(series_id)
        with slot.condition:
            return slot.series

    def state(self, series_id: str) -> SlotState:
        slot = self._slot(series_id)
        with slot.condition:
            if slot.closed:
                return SlotState.CLOSED
            return SlotState.RECOMPUTING if slot.running else SlotState.IDLE

    def pass_count(self, series_id: str) -> int:
        """Number of passes started for ``series_id``."""
        slot = self._slot(series_id)
        with slot.condition:
            return slot.passes

    def pending_triggers(self, series_id: str) -> int:
        """Triggers waiting for a pass that has not started yet."""
        slot = self._slot(series_id)
        with slot.condition:
            served = max(slot.covered, slot.in_flight if slot.running else 0)
            return slot.requested - served

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def add_participant(self, series_id: str, participant: Participant) -> StandingsGeneration:
        """Enrol ``participant`` and recompute.

        Raises
        ------
        SeriesClosed, EnrollmentClosed
        """
        slot = self._slot(series_id)
        with slot.condition:
            self._ensure_open(slot)
            check_enrollment(slot.series, participant.id)
            slot.series = slot.series.with_participant(participant)
        logger.info("Participant %s joined series %s", participant.id, series_id)
        return self._trigger(slot)

    def submit_pick(
        self,
        series_id: str,
        participant_id: str,
        bet_id: str,
        selection: str,
        confidence: Optional[int] = None,
        *,
        submitted_at: Optional[datetime] = None,
    ) -> StandingsGeneration:
        """Record (or edit) a participant's pick and recompute.

        Raises
        ------
        SeriesClosed
            The series no longer accepts triggers.
        UnknownEntity
            The participant or bet is not part of the series.
        PickLocked
            The bet is already resolved or cancelled.
        InvalidSelection
            ``selection`` is not one of the bet's sides.
        InvalidPick
            The confidence value is missing, out of range or duplicated.
        """
        slot = self._slot(series_id)
        with slot.condition:
            self._ensure_open(slot)
            series = slot.series
            bet = series.bet(bet_id)
            participant = series.participant(participant_id)
            if bet.is_locked:
                raise PickLocked(bet_id, bet.status, series_id=series_id, participant_id=participant_id)
            if selection not in bet.sides:
                raise InvalidSelection(bet_id, selection, series_id=series_id)
            pick = Pick(
                bet_id=bet_id,
                selection=selection,
                confidence=confidence,
                submitted_at=submitted_at or datetime.now(timezone.utc),
            )
            try:
                check_pick_confidence(series.scoring, pick, participant.confidences(exclude_bet=bet_id))
            except InvalidPick as exc:
                exc.context.setdefault("series_id", series_id)
                exc.context.setdefault("participant_id", participant_id)
                raise
            slot.series = series.with_participant(participant.with_pick(pick))
        logger.debug("Pick on bet %s by %s recorded in series %s", bet_id, participant_id, series_id)
        return self._trigger(slot)

    def resolve_bet(self, series_id: str, bet_id: str, winning_side: str) -> StandingsGeneration:
        """Apply a resolution outcome and recompute.

        Re-resolving a resolved bet with a different side is treated as a
        correction.

        Raises
        ------
        SeriesClosed, UnknownEntity, InvalidSelection
        InvalidResolution
            The bet was cancelled.
        """
        slot = self._slot(series_id)
        with slot.condition:
            self._ensure_open(slot)
            bet = slot.series.bet(bet_id)
            if bet.is_cancelled:
                raise InvalidResolution(bet_id, "the bet was cancelled", series_id=series_id)
            if winning_side not in bet.sides:
                raise InvalidSelection(bet_id, winning_side, series_id=series_id)
            if bet.is_resolved and bet.winning_side != winning_side:
                logger.warning(
                    "Bet %s in series %s re-resolved from %r to %r",
                    bet_id,
                    series_id,
                    bet.winning_side,
                    winning_side,
                )
            slot.series = slot.series.with_bet(replace(bet, status="resolved", winning_side=winning_side))
        logger.info("Bet %s resolved to %r in series %s", bet_id, winning_side, series_id)
        return self._trigger(slot)

    def cancel_bet(self, series_id: str, bet_id: str) -> StandingsGeneration:
        """Void a bet; it stops contributing points and streaks."""
        slot = self._slot(series_id)
        with slot.condition:
            self._ensure_open(slot)
            bet = slot.series.bet(bet_id)
            slot.series = slot.series.with_bet(replace(bet, status="cancelled", winning_side=None))
        logger.info("Bet %s cancelled in series %s", bet_id, series_id)
        return self._trigger(slot)

    def recompute(self, series_id: str) -> StandingsGeneration:
        """Run (or join) a recompute pass without changing any input."""
        return self._trigger(self._slot(series_id))

    def close_series(self, series_id: str, status: str = "completed") -> Optional[StandingsGeneration]:
        """Close the series; an in-flight pass is abandoned.

        Returns the final published generation.
        """
        if status not in CLOSED_SERIES_STATUSES:
            raise ValueError(f"Cannot close a series with status '{status}'")
        slot = self._slot(series_id)
        with slot.condition:
            if slot.closed:
                raise SeriesClosed(series_id, slot.series.status)
            slot.series = replace(slot.series, status=status)
            slot.closed = True
            slot.condition.notify_all()
            generation = slot.generation
        logger.info("Series %s closed (%s)", series_id, status)
        return generation

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _slot(self, series_id: str) -> _SeriesSlot:
        with self._slots_lock:
            try:
                return self._slots[series_id]
            except KeyError as exc:
                raise UnknownEntity("series", series_id) from exc

    @staticmethod
    def _ensure_open(slot: _SeriesSlot) -> None:
        if slot.closed:
            raise SeriesClosed(slot.series.id, slot.series.status)

    def _trigger(self, slot: _SeriesSlot) -> StandingsGeneration:
        """Wait for a pass covering this trigger, retrying after timeouts."""
        attempts = self._settings.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._await_pass(slot)
            except RecomputeTimeout as exc:
                if attempt == attempts:
                    exc.context["attempts"] = attempts
                    logger.error(
                        "Recompute for series %s timed out %d times in a row; "
                        "serving the last good generation",
                        slot.series.id,
                        attempts,
                    )
                    raise
                delay = self._settings.retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Retry attempt %d for series %s recompute after timeout: %s",
                    attempt,
                    slot.series.id,
                    exc,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    def _await_pass(self, slot: _SeriesSlot) -> StandingsGeneration:
        wait_deadline = self._clock() + self._settings.wait_timeout
        with slot.condition:
            self._ensure_open(slot)
            slot.requested += 1
            ticket = slot.requested
            while True:
                if slot.covered >= ticket:
                    return self._outcome(slot)
                if slot.closed:
                    raise SeriesClosed(slot.series.id, slot.series.status)
                if not slot.running:
                    break
                remaining = wait_deadline - self._clock()
                if remaining <= 0:
                    raise RecomputeTimeout(slot.series.id, self._settings.wait_timeout)
                slot.condition.wait(remaining)
            slot.running = True
            slot.in_flight = slot.requested
            slot.passes += 1
            target = slot.in_flight
            series = slot.series
            baseline = slot.generation

        generation: Optional[StandingsGeneration] = None
        error: Optional[BaseException] = None
        try:
            generation = self._run_pass(slot, series, baseline)
        except BaseException as exc:
            error = exc
        finally:
            with slot.condition:
                if error is None and slot.closed:
                    error = SeriesClosed(series.id, slot.series.status)
                if error is None:
                    slot.generation = generation
                    logger.info(
                        "Published generation %d for series %s (%d participants)",
                        generation.number,
                        series.id,
                        len(generation),
                    )
                else:
                    logger.debug("Pass for series %s discarded: %s", series.id, error)
                slot.running = False
                slot.covered = target
                slot.last_generation = generation
                slot.last_error = error
                slot.condition.notify_all()
        if error is not None:
            raise error
        return generation

    @staticmethod
    def _outcome(slot: _SeriesSlot) -> StandingsGeneration:
        if slot.last_error is not None:
            raise slot.last_error
        return slot.last_generation

    def _run_pass(
        self,
        slot: _SeriesSlot,
        series: Series,
        baseline: Optional[StandingsGeneration],
    ) -> StandingsGeneration:
        started = self._clock()
        deadline = started + self._settings.soft_deadline

        def checkpoint() -> None:
            if slot.closed:
                raise SeriesClosed(series.id, slot.series.status)
            now = self._clock()
            if now > deadline:
                raise RecomputeTimeout(series.id, now - started)

        self._notify_start(series.id)
        success = False
        try:
            generation = compute_generation(
                series,
                baseline,
                registry=self._registry,
                sticky_achievements=self._settings.sticky_achievements,
                checkpoint=checkpoint,
            )
            success = True
            return generation
        finally:
            self._notify_complete(series.id, self._clock() - started, success)

    def _notify_start(self, series_id: str) -> None:
        if self.on_pass_start is None:
            return
        try:
            self.on_pass_start(series_id)
        except Exception as e:
            logger.warning(f"Monitoring callback on_pass_start failed: {e}")

    def _notify_complete(self, series_id: str, duration: float, success: bool) -> None:
        if self.on_pass_complete is None:
            return
        try:
            self.on_pass_complete(series_id, duration, success)
        except Exception as e:
            logger.warning(f"Monitoring callback on_pass_complete failed: {e}")


__all__ = [
    "SeriesRecomputeCoordinator",
    "SlotState",
    "check_enrollment",
    "compute_generation",
    "field_correct_ratios",
    "score_participant",
    "series_fingerprint",
    "validate_picks",
    "validate_series",
]
