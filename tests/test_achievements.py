import unittest
from datetime import datetime, timezone
from types import MappingProxyType

from wagerboard.standings import achievements
from wagerboard.standings.achievements import ACHIEVEMENTS, Achievement, AchievementId
from wagerboard.standings.types import Bet, ParticipantSnapshot, PickResult, Series

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _series(*winners) -> Series:
    bets = [
        Bet(
            id=f"b{order}",
            sides=("home", "away"),
            order=order,
            status="resolved" if winner else "pending",
            winning_side=winner,
        )
        for order, winner in enumerate(winners, start=1)
    ]
    return Series(id="s1", bets=bets)


def _snapshot(outcomes=(), **kwargs) -> ParticipantSnapshot:
    results = tuple(
        PickResult(bet_id=f"b{order}", order=order, selection="home", correct=outcome)
        for order, outcome in enumerate(outcomes, start=1)
    )
    return ParticipantSnapshot(participant_id="p1", joined_at=T0, pick_results=results, **kwargs)


class CatalogTests(unittest.TestCase):
    def test_catalog_is_closed_and_complete(self):
        self.assertEqual(set(ACHIEVEMENTS), set(AchievementId))
        with self.assertRaises(TypeError):
            ACHIEVEMENTS[AchievementId.PERFECT_WEEK] = None  # type: ignore[index]

    def test_describe_returns_metadata(self):
        entry = achievements.describe("streak_master")
        self.assertEqual(entry.name, "Streak Master")


class PredicateTests(unittest.TestCase):
    def test_perfect_week_needs_every_resolved_bet_correct(self):
        series = _series("home", "home", None)
        self.assertIn("perfect_week", achievements.evaluate(_snapshot((True, True, None)), series, 1))
        self.assertNotIn("perfect_week", achievements.evaluate(_snapshot((True, False, None)), series, 1))

    def test_perfect_week_needs_a_resolved_bet(self):
        self.assertNotIn("perfect_week", achievements.evaluate(_snapshot(), _series(None), 1))

    def test_streak_master_at_five(self):
        series = _series()
        self.assertIn("streak_master", achievements.evaluate(_snapshot(longest_streak=5), series, 1))
        self.assertNotIn("streak_master", achievements.evaluate(_snapshot(longest_streak=4), series, 1))

    def test_comeback_kid_from_bottom_to_top_three(self):
        series = _series()
        climber = _snapshot(rank=2, previous_rank=10)
        self.assertIn("comeback_kid", achievements.evaluate(climber, series, 10))
        mid_table = _snapshot(rank=2, previous_rank=5)
        self.assertNotIn("comeback_kid", achievements.evaluate(mid_table, series, 10))

    def test_comeback_kid_needs_a_real_bottom(self):
        # In a field of three everyone is already top three.
        snapshot = _snapshot(rank=1, previous_rank=3)
        self.assertNotIn("comeback_kid", achievements.evaluate(snapshot, _series(), 3))

    def test_underdog_hunter_never_unlocks(self):
        snapshot = _snapshot((True,) * 6, longest_streak=6)
        self.assertNotIn("underdog_hunter", achievements.evaluate(snapshot, _series(*["home"] * 6), 1))

    def test_carried_achievements_are_kept(self):
        unlocked = achievements.evaluate(_snapshot(), _series(), 1, carried=["perfect_week"])
        self.assertEqual(unlocked, frozenset({"perfect_week"}))

    def test_failing_predicate_counts_as_locked(self):
        def boom(snapshot, series, field_size):
            raise RuntimeError("bad predicate")

        catalog = MappingProxyType(
            {
                AchievementId.PERFECT_WEEK: Achievement(
                    id=AchievementId.PERFECT_WEEK,
                    name="Broken",
                    description="",
                    icon="",
                    color="",
                    predicate=boom,
                )
            }
        )
        with self.assertLogs("wagerboard.standings.achievements", level="ERROR"):
            unlocked = achievements.evaluate(_snapshot(), _series(), 1, catalog=catalog)
        self.assertEqual(unlocked, frozenset())


if __name__ == "__main__":
    unittest.main()
