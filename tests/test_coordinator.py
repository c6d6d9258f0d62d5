from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from wagerboard.config import Settings
from wagerboard.errors import (
    EnrollmentClosed,
    InvalidConfig,
    InvalidPick,
    InvalidResolution,
    InvalidSelection,
    PickLocked,
    RecomputeTimeout,
    SeriesClosed,
    UnknownEntity,
)
from wagerboard.standings.coordinator import (
    SeriesRecomputeCoordinator,
    SlotState,
    compute_generation,
)
from wagerboard.standings.types import (
    Bet,
    BonusRules,
    ConfidenceRange,
    Participant,
    Pick,
    ScoringConfig,
    Series,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _bets(count: int, **kwargs) -> list[Bet]:
    return [Bet(id=f"b{i}", sides=("home", "away"), order=i, **kwargs) for i in range(1, count + 1)]


def _participant(pid: str, minutes: int = 0, picks: dict[str, str] | None = None) -> Participant:
    return Participant(
        id=pid,
        joined_at=T0 + timedelta(minutes=minutes),
        picks={bet_id: Pick(bet_id=bet_id, selection=side) for bet_id, side in (picks or {}).items()},
    )


def _resolved(bets: list[Bet], *winners: str) -> list[Bet]:
    return [
        Bet(id=bet.id, sides=bet.sides, order=bet.order, status="resolved", winning_side=winner, weight=bet.weight)
        for bet, winner in zip(bets, winners)
    ] + bets[len(winners):]


def _settings(**overrides) -> Settings:
    values = dict(soft_deadline=5.0, max_retries=0, retry_backoff=0.0, wait_timeout=10.0)
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.step = 0.0

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class ScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self.coordinator = SeriesRecomputeCoordinator(_settings())

    def test_perfect_week_scores_base_plus_bonus(self):
        series = Series(
            id="office",
            bets=_bets(3),
            scoring=ScoringConfig(
                method="points_per_correct", base_points=1, bonus=BonusRules(perfect_week=5)
            ),
            participants=[_participant("alice")],
        )
        self.coordinator.register_series(series)
        for bet_id in ("b1", "b2", "b3"):
            self.coordinator.submit_pick("office", "alice", bet_id, "home")
        for bet_id in ("b1", "b2", "b3"):
            generation = self.coordinator.resolve_bet("office", bet_id, "home")

        snapshot = generation.snapshot_for("alice")
        self.assertEqual(snapshot.total_score, 8)
        self.assertEqual(snapshot.correct_picks, 3)
        self.assertIn("perfect_week", snapshot.achievements)
        self.assertEqual(snapshot.status, "completed")

    def test_weighted_scoring_sums_weights_of_correct_bets(self):
        bets = [
            Bet(id=f"b{i}", sides=("home", "away"), order=i, status="resolved", winning_side="home", weight=i)
            for i in (1, 2, 3)
        ]
        series = Series(
            id="weighted",
            bets=bets,
            scoring=ScoringConfig(method="weighted_scoring"),
            participants=[_participant("p1", picks={"b1": "away", "b2": "home", "b3": "home"})],
        )
        generation = compute_generation(series)
        self.assertEqual(generation.snapshot_for("p1").total_score, 5)

    def test_elimination_freezes_score(self):
        bets = _resolved(_bets(4), "home", "home", "home", "home")
        series = Series(
            id="elim",
            bets=bets,
            scoring=ScoringConfig(method="elimination_style"),
            participants=[
                _participant("out", picks={"b1": "away", "b2": "home", "b3": "home", "b4": "home"}),
                _participant("late-miss", 1, picks={"b1": "home", "b2": "home", "b3": "away", "b4": "home"}),
            ],
        )
        generation = compute_generation(series)
        out = generation.snapshot_for("out")
        self.assertEqual(out.total_score, 0)
        self.assertEqual(out.status, "eliminated")
        late = generation.snapshot_for("late-miss")
        self.assertEqual(late.total_score, 2)
        self.assertEqual(late.status, "eliminated")

    def test_full_tie_goes_to_earlier_joiner(self):
        bets = _resolved(_bets(2), "home", "away")
        series = Series(
            id="tie",
            bets=bets,
            participants=[
                _participant("later", 30, picks={"b1": "home", "b2": "home"}),
                _participant("earlier", 0, picks={"b1": "away", "b2": "away"}),
            ],
        )
        generation = compute_generation(series)
        self.assertEqual(generation.snapshot_for("earlier").rank, 1)
        self.assertEqual(generation.snapshot_for("later").rank, 2)


class ComputeGenerationTests(unittest.TestCase):
    def test_streak_bonus_for_runs_of_two_or_more(self):
        bets = _resolved(_bets(3), "home", "home", "home")
        series = Series(
            id="streaky",
            bets=bets,
            scoring=ScoringConfig(bonus=BonusRules(streak_bonus=2)),
            participants=[_participant("p1", picks={"b1": "home", "b2": "home", "b3": "home"})],
        )
        snapshot = compute_generation(series).snapshot_for("p1")
        self.assertEqual(snapshot.total_score, 7)
        self.assertEqual(snapshot.current_streak, 3)
        self.assertEqual([r.bonus for r in snapshot.pick_results], [0, 2, 2])

    def test_confidence_points(self):
        bets = _resolved(_bets(3), "home", "home", "home")
        participant = Participant(
            id="p1",
            joined_at=T0,
            picks={
                "b1": Pick(bet_id="b1", selection="home", confidence=3),
                "b2": Pick(bet_id="b2", selection="home", confidence=2),
                "b3": Pick(bet_id="b3", selection="away", confidence=1),
            },
        )
        series = Series(
            id="conf",
            bets=bets,
            scoring=ScoringConfig(method="confidence_points", confidence_range=ConfidenceRange(1, 3)),
            participants=[participant],
        )
        self.assertEqual(compute_generation(series).snapshot_for("p1").total_score, 5)

    def test_percentage_based_uses_field_ratio(self):
        bets = _resolved(_bets(1), "home")
        series = Series(
            id="pct",
            bets=bets,
            scoring=ScoringConfig(method="percentage_based", base_points=10),
            participants=[
                _participant("right", picks={"b1": "home"}),
                _participant("wrong", 1, picks={"b1": "away"}),
            ],
        )
        generation = compute_generation(series)
        self.assertEqual(generation.snapshot_for("right").total_score, 5)
        self.assertEqual(generation.snapshot_for("wrong").total_score, 0)

    def test_total_picks_counts_judged_picks_only(self):
        bets = _resolved(_bets(3), "home")
        series = Series(
            id="judged",
            bets=bets,
            participants=[_participant("p1", picks={"b1": "home", "b2": "home"})],
        )
        snapshot = compute_generation(series).snapshot_for("p1")
        self.assertEqual(snapshot.total_picks, 1)
        self.assertEqual(snapshot.status, "active")

    def test_participant_without_picks_is_registered(self):
        series = Series(id="idle", bets=_bets(2), participants=[_participant("p1")])
        snapshot = compute_generation(series).snapshot_for("p1")
        self.assertEqual(snapshot.status, "registered")
        self.assertEqual(snapshot.total_score, 0)
        self.assertEqual(snapshot.rank, 1)

    def test_duplicate_bet_order_is_invalid_config(self):
        bets = [Bet(id="b1", sides=("a", "b"), order=1), Bet(id="b2", sides=("a", "b"), order=1)]
        with self.assertRaises(InvalidConfig) as ctx:
            compute_generation(Series(id="broken", bets=bets))
        self.assertEqual(ctx.exception.context["series_id"], "broken")

    def test_sticky_achievements_survive_later_misses(self):
        bets = _bets(2)
        participant = _participant("p1", picks={"b1": "home", "b2": "home"})
        first = Series(id="s", bets=_resolved(bets, "home"), participants=[participant])
        second = Series(id="s", bets=_resolved(bets, "home", "away"), participants=[participant])

        baseline = compute_generation(first)
        self.assertIn("perfect_week", baseline.snapshot_for("p1").achievements)
        dropped = compute_generation(second, baseline)
        kept = compute_generation(second, baseline, sticky_achievements=True)
        self.assertNotIn("perfect_week", dropped.snapshot_for("p1").achievements)
        self.assertIn("perfect_week", kept.snapshot_for("p1").achievements)


class CoordinatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.coordinator = SeriesRecomputeCoordinator(_settings())
        self.series = Series(
            id="s1",
            bets=_bets(3),
            participants=[_participant("alice"), _participant("bob", 5)],
        )
        self.coordinator.register_series(self.series)

    def test_register_publishes_first_generation(self):
        generation = self.coordinator.current("s1")
        self.assertEqual(generation.number, 1)
        self.assertEqual(len(generation), 2)
        self.assertEqual(self.coordinator.state("s1"), SlotState.IDLE)

    def test_register_twice_requires_replace(self):
        with self.assertRaises(ValueError):
            self.coordinator.register_series(self.series)

    def test_recompute_is_idempotent(self):
        self.coordinator.submit_pick("s1", "alice", "b1", "home")
        self.coordinator.resolve_bet("s1", "b1", "home")
        first = self.coordinator.recompute("s1")
        second = self.coordinator.recompute("s1")
        self.assertEqual(first.snapshots, second.snapshots)
        self.assertEqual(first.fingerprint, second.fingerprint)
        self.assertEqual(second.number, first.number + 1)

    def test_previous_rank_comes_from_prior_generation(self):
        self.coordinator.submit_pick("s1", "bob", "b1", "home")
        generation = self.coordinator.resolve_bet("s1", "b1", "home")
        bob = generation.snapshot_for("bob")
        alice = generation.snapshot_for("alice")
        self.assertEqual((bob.rank, bob.previous_rank), (1, 2))
        self.assertEqual((alice.rank, alice.previous_rank), (2, 1))

    def test_pick_on_resolved_bet_is_locked(self):
        self.coordinator.resolve_bet("s1", "b1", "home")
        with self.assertRaises(PickLocked) as ctx:
            self.coordinator.submit_pick("s1", "alice", "b1", "away")
        self.assertEqual(ctx.exception.to_notice()["code"], "pick_locked")

    def test_pick_edit_before_resolution_replaces_selection(self):
        self.coordinator.submit_pick("s1", "alice", "b1", "away")
        self.coordinator.submit_pick("s1", "alice", "b1", "home")
        generation = self.coordinator.resolve_bet("s1", "b1", "home")
        self.assertEqual(generation.snapshot_for("alice").correct_picks, 1)

    def test_unknown_side_is_invalid_selection(self):
        with self.assertRaises(InvalidSelection):
            self.coordinator.submit_pick("s1", "alice", "b1", "draw")
        with self.assertRaises(InvalidSelection):
            self.coordinator.resolve_bet("s1", "b1", "draw")

    def test_unknown_entities(self):
        with self.assertRaises(UnknownEntity):
            self.coordinator.current("missing")
        with self.assertRaises(UnknownEntity):
            self.coordinator.submit_pick("s1", "alice", "b9", "home")
        with self.assertRaises(KeyError):
            self.coordinator.submit_pick("s1", "carol", "b1", "home")

    def test_cancelled_bet_cannot_be_resolved(self):
        self.coordinator.submit_pick("s1", "alice", "b1", "home")
        generation = self.coordinator.cancel_bet("s1", "b1")
        self.assertEqual(generation.snapshot_for("alice").total_picks, 0)
        with self.assertRaises(InvalidResolution):
            self.coordinator.resolve_bet("s1", "b1", "home")

    def test_re_resolution_is_a_logged_correction(self):
        self.coordinator.submit_pick("s1", "alice", "b1", "home")
        self.coordinator.resolve_bet("s1", "b1", "home")
        with self.assertLogs("wagerboard.standings.coordinator", level="WARNING"):
            generation = self.coordinator.resolve_bet("s1", "b1", "away")
        self.assertEqual(generation.snapshot_for("alice").total_score, 0)

    def test_closed_series_rejects_triggers_and_keeps_generation(self):
        before = self.coordinator.current("s1")
        final = self.coordinator.close_series("s1")
        self.assertIs(final, before)
        self.assertEqual(self.coordinator.state("s1"), SlotState.CLOSED)
        with self.assertRaises(SeriesClosed):
            self.coordinator.submit_pick("s1", "alice", "b1", "home")
        with self.assertRaises(SeriesClosed):
            self.coordinator.recompute("s1")
        with self.assertRaises(SeriesClosed):
            self.coordinator.close_series("s1")
        self.assertIs(self.coordinator.current("s1"), before)

    def test_close_rejects_open_status(self):
        with self.assertRaises(ValueError):
            self.coordinator.close_series("s1", "active")

    def test_add_participant(self):
        generation = self.coordinator.add_participant("s1", _participant("carol", 10))
        self.assertEqual(len(generation), 3)
        with self.assertRaises(EnrollmentClosed):
            self.coordinator.add_participant("s1", _participant("carol", 11))


class ConfidencePickTests(unittest.TestCase):
    def setUp(self) -> None:
        self.coordinator = SeriesRecomputeCoordinator(_settings())
        self.coordinator.register_series(
            Series(
                id="conf",
                bets=_bets(3),
                scoring=ScoringConfig(method="confidence_points", confidence_range=ConfidenceRange(1, 3)),
                participants=[_participant("p1")],
            )
        )

    def test_confidence_is_required_and_unique(self):
        with self.assertRaises(InvalidPick):
            self.coordinator.submit_pick("conf", "p1", "b1", "home")
        self.coordinator.submit_pick("conf", "p1", "b1", "home", 3)
        with self.assertRaises(InvalidPick) as ctx:
            self.coordinator.submit_pick("conf", "p1", "b2", "home", 3)
        notice = ctx.exception.to_notice()
        self.assertEqual(notice["participant_id"], "p1")
        self.assertEqual(notice["series_id"], "conf")

    def test_editing_a_pick_may_keep_its_confidence(self):
        self.coordinator.submit_pick("conf", "p1", "b1", "home", 3)
        self.coordinator.submit_pick("conf", "p1", "b1", "away", 3)
        self.assertEqual(self.coordinator.series("conf").participant("p1").picks["b1"].selection, "away")

    def test_out_of_range_confidence(self):
        with self.assertRaises(InvalidPick):
            self.coordinator.submit_pick("conf", "p1", "b1", "home", 4)


class EnrollmentTests(unittest.TestCase):
    def test_full_series_rejects_new_participants(self):
        coordinator = SeriesRecomputeCoordinator(_settings())
        coordinator.register_series(
            Series(id="full", bets=_bets(2), participants=[_participant("p1")], max_participants=1)
        )
        with self.assertRaises(EnrollmentClosed):
            coordinator.add_participant("full", _participant("p2"))

    def test_late_entry_can_be_disallowed(self):
        coordinator = SeriesRecomputeCoordinator(_settings())
        coordinator.register_series(Series(id="strict", bets=_bets(2), allow_late_entry=False))
        coordinator.add_participant("strict", _participant("early"))
        coordinator.resolve_bet("strict", "b1", "home")
        with self.assertRaises(EnrollmentClosed):
            coordinator.add_participant("strict", _participant("late"))

    def test_draft_series_is_not_open(self):
        coordinator = SeriesRecomputeCoordinator(_settings())
        coordinator.register_series(Series(id="draft", bets=_bets(2), status="draft"))
        with self.assertRaises(EnrollmentClosed):
            coordinator.add_participant("draft", _participant("p1"))


class StoredPickTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scoring = ScoringConfig(method="confidence_points", confidence_range=ConfidenceRange(1, 2))
        self.good = Participant(
            id="good",
            joined_at=T0,
            picks={
                "b1": Pick(bet_id="b1", selection="home", confidence=1),
                "b2": Pick(bet_id="b2", selection="home", confidence=2),
            },
        )
        self.bad = Participant(
            id="bad",
            joined_at=T0 + timedelta(minutes=1),
            picks={
                "b1": Pick(bet_id="b1", selection="home", confidence=1),
                "b2": Pick(bet_id="b2", selection="away", confidence=1),
            },
        )

    def test_reload_with_duplicate_confidence_is_rejected(self):
        coordinator = SeriesRecomputeCoordinator(_settings())
        series = Series(id="s", bets=_bets(2), scoring=self.scoring, participants=[self.good])
        before = coordinator.register_series(series)

        with self.assertRaises(InvalidPick) as ctx:
            coordinator.register_series(series.with_participant(self.bad), replace=True)
        self.assertEqual(ctx.exception.context["participant_id"], "bad")
        self.assertIs(coordinator.current("s"), before)
        self.assertEqual([p.id for p in coordinator.series("s").participants], ["good"])

        generation = coordinator.resolve_bet("s", "b1", "home")
        self.assertEqual(generation.snapshot_for("good").total_score, 1)

    def test_bad_stored_pick_scores_zero_without_blocking_the_field(self):
        series = Series(
            id="s",
            bets=_resolved(_bets(2), "home"),
            scoring=self.scoring,
            participants=[self.good, self.bad],
        )
        with self.assertLogs("wagerboard.standings.coordinator", level="WARNING"):
            generation = compute_generation(series)
        self.assertEqual(generation.snapshot_for("good").total_score, 1)
        self.assertEqual(generation.snapshot_for("good").rank, 1)
        bad = generation.snapshot_for("bad")
        self.assertEqual(bad.total_score, 0)
        self.assertEqual(bad.correct_picks, 1)


class AchievementToggleTests(unittest.TestCase):
    def test_disabled_achievements_are_never_awarded(self):
        participant = _participant("p1", picks={"b1": "home"})
        enabled = Series(id="s", bets=_resolved(_bets(1), "home"), participants=[participant])
        disabled = Series(
            id="s",
            bets=_resolved(_bets(1), "home"),
            participants=[participant],
            achievements_enabled=False,
        )
        self.assertIn("perfect_week", compute_generation(enabled).snapshot_for("p1").achievements)
        self.assertEqual(compute_generation(disabled).snapshot_for("p1").achievements, frozenset())


class TimeoutTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.sleeps: list[float] = []
        self.completed: list[bool] = []
        self.coordinator = SeriesRecomputeCoordinator(
            _settings(soft_deadline=0.5, max_retries=2, retry_backoff=0.1),
            clock=self.clock,
            sleep=self.sleeps.append,
            on_pass_complete=lambda series_id, duration, ok: self.completed.append(ok),
        )
        self.coordinator.register_series(
            Series(id="slow", bets=_bets(2), participants=[_participant("p1")])
        )

    def test_timeout_retries_then_keeps_previous_generation(self):
        before = self.coordinator.current("slow")
        self.clock.step = 1.0
        with self.assertLogs("wagerboard.standings.coordinator", level="ERROR"):
            with self.assertRaises(RecomputeTimeout) as ctx:
                self.coordinator.submit_pick("slow", "p1", "b1", "home")
        self.assertEqual(ctx.exception.context["attempts"], 3)
        self.assertEqual(self.sleeps, [0.1, 0.2])
        self.assertIs(self.coordinator.current("slow"), before)
        self.assertEqual(self.completed, [True, False, False, False])

        # The pick itself was accepted and shows up once a pass succeeds.
        self.clock.step = 0.0
        generation = self.coordinator.recompute("slow")
        self.assertEqual(generation.number, 2)
        self.assertEqual(len(generation.snapshot_for("p1").pick_results), 1)

    def test_failing_hook_does_not_break_the_pass(self):
        def explode(series_id):
            raise RuntimeError("monitoring down")

        self.coordinator.on_pass_start = explode
        with self.assertLogs("wagerboard.standings.coordinator", level="WARNING"):
            generation = self.coordinator.recompute("slow")
        self.assertEqual(generation.number, 2)


if __name__ == "__main__":
    unittest.main()
