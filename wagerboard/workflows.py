"""Database-backed workflows around the standings engine.

The ORM rows are the durable record of series inputs (bets, participants,
picks); the :class:`~wagerboard.standings.coordinator.SeriesRecomputeCoordinator`
owns the authoritative standings generation. Every mutating workflow asks the
coordinator to validate and apply the change first, writes the ORM rows only
once the change was accepted, and then copies the published generation into
:class:`~wagerboard.models.standing.ParticipantStanding` rows.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import EnrollmentClosed, RecomputeTimeout, StandingsError
from .models import BetSeries, ParticipantStanding, SeriesBet, SeriesParticipant, SeriesPick
from .standings import leaderboard
from .standings.coordinator import SeriesRecomputeCoordinator, check_enrollment, validate_series
from .standings.presets import default_scoring, get_preset
from .standings.types import CLOSED_SERIES_STATUSES, ScoringConfig, StandingsGeneration

logger = logging.getLogger(__name__)


def create_series(
    session: Session,
    *,
    title: str,
    bets: Sequence[Mapping[str, Any]],
    series_type: str = "custom_series",
    scoring: Optional[ScoringConfig] = None,
    status: str = "registration_open",
    description: Optional[str] = None,
    created_by: Optional[str] = None,
    max_participants: Optional[int] = None,
    allow_late_entry: bool = True,
) -> BetSeries:
    """Create a series and its bets.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    title : str
        Display title of the series.
    bets : Sequence[Mapping[str, Any]]
        One mapping per bet with ``title`` and ``sides`` keys and optional
        ``weight`` and ``difficulty``. Bets are ordered as given.
    series_type : str, default: "custom_series"
        Preset key; its default scoring is used when ``scoring`` is omitted.
    scoring : Optional[ScoringConfig], default: None
        Explicit scoring configuration. Its weight map must be empty because
        the bets have no ids yet; pass per-bet ``weight`` values instead.
    status : str, default: "registration_open"
        Initial series status.

    Returns
    -------
    BetSeries
        The flushed series with populated ids.

    Raises
    ------
    ValueError
        If ``series_type`` is not a known preset.
    InvalidConfig
        If the bets or the scoring configuration are malformed. Nothing is
        flushed in that case.
    """
    preset = get_preset(series_type)
    if not preset.accepts_bet_count(len(bets)):
        logger.warning(
            "Series '%s' has %d bets; preset %s expects %d..%s",
            title,
            len(bets),
            series_type,
            preset.min_bets,
            preset.max_bets if preset.max_bets is not None else "any",
        )

    series = BetSeries(
        title=title,
        series_type=series_type,
        status=status,
        description=description,
        created_by=created_by,
        scoring=scoring or default_scoring(series_type, len(bets)),
        max_participants=max_participants,
        allow_late_entry=allow_late_entry,
    )
    for order, entry in enumerate(bets, start=1):
        series.bets.append(
            SeriesBet(
                title=entry["title"],
                sides=list(entry["sides"]),
                bet_order=order,
                weight=entry.get("weight"),
                difficulty=entry.get("difficulty"),
            )
        )

    validate_series(series.draft_view())

    session.add(series)
    session.flush()
    logger.info("Created series %s (%s) with %d bets", series.id, series_type, len(series.bets))
    return series


def ensure_registered(
    coordinator: SeriesRecomputeCoordinator, series: BetSeries
) -> Optional[StandingsGeneration]:
    """Load ``series`` into ``coordinator`` unless it is already there."""
    series_id = str(series.id)
    if coordinator.is_registered(series_id):
        return coordinator.current(series_id)
    return coordinator.register_series(series.to_view())


def store_generation(
    session: Session, series: BetSeries, generation: Optional[StandingsGeneration]
) -> list[ParticipantStanding]:
    """Upsert one ``ParticipantStanding`` row per snapshot in ``generation``.

    Participant status columns are refreshed from the snapshots as well.
    Storing the same generation twice leaves the rows unchanged apart from
    ``computed_at``.
    """
    if generation is None:
        return []
    now = datetime.now(timezone.utc)
    existing = {
        row.participant_id: row
        for row in session.scalars(
            select(ParticipantStanding).where(ParticipantStanding.series_id == series.id)
        )
    }
    participants = {participant.id: participant for participant in series.participants}

    rows: list[ParticipantStanding] = []
    for snapshot in generation:
        participant_id = int(snapshot.participant_id)
        participant = participants.get(participant_id)
        row = existing.get(participant_id)
        if row is None:
            row = ParticipantStanding(
                participant_id=participant_id,
                series_id=series.id,
                generation=generation.number,
                computed_at=now,
            )
            if participant is not None:
                participant.standing = row
            else:
                session.add(row)
        row.apply_snapshot(snapshot, generation.number, now)
        if participant is not None:
            participant.status = snapshot.status
        rows.append(row)

    session.flush()
    logger.debug(
        "Stored generation %d for series %s (%d rows)", generation.number, series.id, len(rows)
    )
    return rows


def join_series(
    session: Session,
    series: BetSeries,
    user_id: str,
    *,
    display_name: str = "",
    joined_at: Optional[datetime] = None,
    coordinator: Optional[SeriesRecomputeCoordinator] = None,
) -> SeriesParticipant:
    """Enrol ``user_id`` in ``series``.

    Raises
    ------
    SeriesClosed
        If the series is completed or cancelled.
    EnrollmentClosed
        If the user is already enrolled, the series is still a draft, is full,
        or has started and does not allow late entry.
    """
    if SeriesParticipant.get_by_user(session, series.id, user_id) is not None:
        raise EnrollmentClosed(str(series.id), "already enrolled")
    check_enrollment(series.to_view())
    if coordinator is not None:
        ensure_registered(coordinator, series)

    participant = SeriesParticipant(
        user_id=user_id,
        display_name=display_name,
        joined_at=joined_at,
    )
    series.participants.append(participant)
    session.flush()

    if coordinator is not None:
        try:
            generation = _apply(
                session,
                series,
                lambda: coordinator.add_participant(str(series.id), participant.to_view()),
            )
        except StandingsError as exc:
            if not isinstance(exc, RecomputeTimeout):
                series.participants.remove(participant)
                session.flush()
            raise
        store_generation(session, series, generation)
    logger.info("User %s joined series %s as participant %s", user_id, series.id, participant.id)
    return participant


def submit_series_pick(
    session: Session,
    coordinator: SeriesRecomputeCoordinator,
    participant: SeriesParticipant,
    bet: SeriesBet,
    selection: str,
    confidence: Optional[int] = None,
) -> SeriesPick:
    """Record (or edit) ``participant``'s pick on ``bet`` and refresh standings.

    The coordinator rejects locked bets, unknown sides and confidence
    violations before any row is written.
    """
    series = participant.series
    ensure_registered(coordinator, series)
    submitted_at = datetime.now(timezone.utc)

    def write() -> SeriesPick:
        pick = participant.pick_for(bet.id)
        if pick is None:
            pick = SeriesPick(
                bet_id=bet.id,
                selection=selection,
                confidence=confidence,
                submitted_at=submitted_at,
            )
            participant.picks.append(pick)
        else:
            pick.selection = selection
            pick.confidence = confidence
            pick.submitted_at = submitted_at
        return pick

    generation = _apply(
        session,
        series,
        lambda: coordinator.submit_pick(
            str(series.id),
            str(participant.id),
            str(bet.id),
            selection,
            confidence,
            submitted_at=submitted_at,
        ),
        write,
    )
    store_generation(session, series, generation)
    return participant.pick_for(bet.id)


def resolve_series_bet(
    session: Session,
    coordinator: SeriesRecomputeCoordinator,
    bet: SeriesBet,
    winning_side: str,
) -> StandingsGeneration:
    """Resolve ``bet`` with ``winning_side`` and persist the new standings."""
    series = bet.series
    ensure_registered(coordinator, series)

    def write() -> None:
        bet.status = "resolved"
        bet.winning_side = winning_side
        bet.resolved_at = datetime.now(timezone.utc)

    generation = _apply(
        session,
        series,
        lambda: coordinator.resolve_bet(str(series.id), str(bet.id), winning_side),
        write,
    )
    store_generation(session, series, generation)
    return generation


def cancel_series_bet(
    session: Session, coordinator: SeriesRecomputeCoordinator, bet: SeriesBet
) -> StandingsGeneration:
    series = bet.series
    ensure_registered(coordinator, series)

    def write() -> None:
        bet.status = "cancelled"
        bet.winning_side = None
        bet.resolved_at = None

    generation = _apply(
        session,
        series,
        lambda: coordinator.cancel_bet(str(series.id), str(bet.id)),
        write,
    )
    store_generation(session, series, generation)
    return generation


def recompute_series_standings(
    session: Session, coordinator: SeriesRecomputeCoordinator, series: BetSeries
) -> Optional[StandingsGeneration]:
    """Reload ``series`` from the database into the coordinator and recompute.

    Use this after editing series rows outside of these workflows.
    """
    series_id = str(series.id)
    if coordinator.is_registered(series_id):
        generation = coordinator.register_series(series.to_view(), replace=True)
    else:
        generation = coordinator.register_series(series.to_view())
    store_generation(session, series, generation)
    return generation


def update_series_status(
    session: Session,
    coordinator: SeriesRecomputeCoordinator,
    series: BetSeries,
    status: str,
) -> Optional[StandingsGeneration]:
    """Move ``series`` to ``status``.

    Closing statuses (``completed``/``cancelled``) close the series in the
    coordinator, abandoning any in-flight pass, and freeze the last
    published generation.
    """
    if status in CLOSED_SERIES_STATUSES:
        generation = None
        if coordinator.is_registered(str(series.id)):
            generation = coordinator.close_series(str(series.id), status)
        series.status = status
        store_generation(session, series, generation)
        logger.info("Series %s closed as %s", series.id, status)
        return generation

    series.status = status
    session.flush()
    return recompute_series_standings(session, coordinator, series)


def series_leaderboard(
    coordinator: SeriesRecomputeCoordinator, series: BetSeries
) -> list[dict[str, Any]]:
    """Return leaderboard rows for display, best rank first.

    Each row is the snapshot's JSON plus derived presentation fields.
    """
    generation = ensure_registered(coordinator, series)
    if generation is None:
        return []
    rows = []
    for snapshot in generation:
        row = snapshot.to_json()
        row.update(
            {
                "win_percentage": round(leaderboard.win_percentage(snapshot), 1),
                "rank_change": leaderboard.rank_change(snapshot),
                "streak": leaderboard.streak_label(snapshot),
                "next_rank_threshold": leaderboard.next_rank_threshold(snapshot, generation),
                "progress": round(leaderboard.progress_to_next_rank(snapshot, generation), 3),
            }
        )
        rows.append(row)
    return rows


def _apply(session: Session, series: BetSeries, trigger, write=None) -> StandingsGeneration:
    """Run ``trigger`` against the coordinator, then ``write`` the ORM change.

    A :class:`RecomputeTimeout` means the coordinator accepted the change but
    could not publish a generation in time; the change is still written so
    the database matches the coordinator, and the timeout is re-raised.
    """
    try:
        generation = trigger()
    except RecomputeTimeout:
        if write is not None:
            write()
            session.flush()
        logger.warning("Series %s change saved but standings are stale", series.id)
        raise
    if write is not None:
        write()
        session.flush()
    return generation

