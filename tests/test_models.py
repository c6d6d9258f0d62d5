from __future__ import annotations

import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from wagerboard.errors import InvalidConfig
from wagerboard.models import (
    Base,
    BetSeries,
    ParticipantStanding,
    SeriesBet,
    SeriesParticipant,
    SeriesPick,
)
from wagerboard.standings.types import (
    BonusRules,
    ConfidenceRange,
    ParticipantSnapshot,
    ScoringConfig,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ModelTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _series(self, session, **kwargs) -> BetSeries:
        series = BetSeries(title="Week 1", status="active", **kwargs)
        series.bets.append(SeriesBet(title="A vs B", sides=["A", "B"], bet_order=1, weight=2))
        series.bets.append(SeriesBet(title="C vs D", sides=["C", "D"], bet_order=2, difficulty="hard"))
        session.add(series)
        session.flush()
        return series

    def test_scoring_columns_round_trip(self):
        scoring = ScoringConfig(
            method="confidence_points",
            base_points=2,
            bonus=BonusRules(perfect_week=5, streak_bonus=1, difficulty_multiplier=True),
            confidence_range=ConfidenceRange(1, 2),
        )
        with self.Session.begin() as session:
            series = self._series(session, scoring=scoring)
            self.assertEqual(series.scoring, scoring)

    def test_to_view_uses_string_ids_and_bet_order(self):
        with self.Session.begin() as session:
            series = self._series(session)
            participant = SeriesParticipant(user_id="u1", display_name="Alice", joined_at=T0)
            series.participants.append(participant)
            session.flush()
            first_bet = series.bets[0]
            participant.picks.append(SeriesPick(bet_id=first_bet.id, selection="A"))
            session.flush()

            view = series.to_view()
            self.assertEqual(view.id, str(series.id))
            self.assertEqual([bet.order for bet in view.ordered_bets()], [1, 2])
            self.assertEqual(view.bet(str(first_bet.id)).weight, 2)
            self.assertEqual(view.bets[1].difficulty, "hard")
            member = view.participant(str(participant.id))
            self.assertEqual(member.display_name, "Alice")
            self.assertEqual(member.picks[str(first_bet.id)].selection, "A")

    def test_draft_view_works_before_flush(self):
        series = BetSeries(title="Draft")
        series.bets.append(SeriesBet(title="A vs B", sides=["A", "B"], bet_order=1))
        view = series.draft_view()
        self.assertEqual(view.id, "draft")
        self.assertEqual(view.bets[0].id, "draft-1")

    def test_bet_order_is_unique_per_series(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                series = self._series(session)
                series.bets.append(SeriesBet(title="dup", sides=["x", "y"], bet_order=1))
                session.flush()

    def test_user_joins_a_series_once(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                series = self._series(session)
                series.participants.append(SeriesParticipant(user_id="u1"))
                series.participants.append(SeriesParticipant(user_id="u1"))
                session.flush()

    def test_invalid_status_is_rejected(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                session.add(BetSeries(title="bad", status="paused"))
                session.flush()

    def test_get_by_user(self):
        with self.Session.begin() as session:
            series = self._series(session)
            series.participants.append(SeriesParticipant(user_id="u1"))
            session.flush()
            found = SeriesParticipant.get_by_user(session, series.id, "u1")
            self.assertIsNotNone(found)
            self.assertIsNone(SeriesParticipant.get_by_user(session, series.id, "u2"))
            self.assertIs(BetSeries.get_by_id(session, series.id), series)

    def test_standing_rows_follow_snapshots(self):
        with self.Session.begin() as session:
            series = self._series(session)
            first = SeriesParticipant(user_id="u1", joined_at=T0)
            second = SeriesParticipant(user_id="u2", joined_at=T0)
            series.participants.extend([first, second])
            session.flush()

            for participant, rank, score in ((first, 2, 1), (second, 1, 3.5)):
                row = ParticipantStanding(participant_id=participant.id, series_id=series.id, generation=1)
                row.apply_snapshot(
                    ParticipantSnapshot(
                        participant_id=str(participant.id),
                        joined_at=T0,
                        total_score=score,
                        rank=rank,
                        achievements=frozenset({"streak_master", "perfect_week"}),
                        status="active",
                    ),
                    generation=1,
                    computed_at=T0,
                )
                session.add(row)
            session.flush()

            rows = ParticipantStanding.for_series(session, series.id)
            self.assertEqual([row.participant_id for row in rows], [second.id, first.id])
            payload = rows[1].to_json()
            self.assertEqual(payload["total_score"], 1)
            self.assertEqual(payload["achievements"], ["perfect_week", "streak_master"])
            self.assertEqual(payload["computed_at"], "2026-03-01T12:00:00+00:00")

    def test_weight_map_is_folded_into_bet_weights(self):
        with self.Session.begin() as session:
            series = self._series(session, scoring=ScoringConfig(method="weighted_scoring"))
            second = series.bets[1]
            series.apply_scoring(ScoringConfig(method="weighted_scoring", weights={str(second.id): 3}))
            self.assertEqual(second.weight, 3)
            self.assertEqual(series.to_view().scoring.weight_for(second.to_view()), 3)

            with self.assertRaises(InvalidConfig):
                series.apply_scoring(ScoringConfig(method="confidence_points", weights={"999": 2}))
            with self.assertRaises(InvalidConfig):
                series.apply_scoring(ScoringConfig(weights={str(second.id): -1}))
            self.assertEqual(series.scoring_method, "weighted_scoring")
            self.assertEqual(second.weight, 3)

    def test_to_view_follows_preset_achievement_setting(self):
        with self.Session.begin() as session:
            custom = self._series(session)
            pool = self._series(session, series_type="office_pool")
            self.assertFalse(custom.to_view().achievements_enabled)
            self.assertTrue(pool.to_view().achievements_enabled)

    def test_series_to_json(self):
        with self.Session.begin() as session:
            series = self._series(session, scoring=ScoringConfig(method="weighted_scoring"))
            payload = series.to_json()
            self.assertEqual(payload["scoring"]["method"], "weighted_scoring")
            self.assertIsNone(payload["scoring"]["confidence_range"])
            self.assertEqual([bet["order"] for bet in payload["bets"]], [1, 2])
            self.assertEqual(payload["bets"][0]["sides"], ["A", "B"])


if __name__ == "__main__":
    unittest.main()
