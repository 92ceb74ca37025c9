"""SQL repositories on an in-memory SQLite database."""
from __future__ import annotations

import itertools
import unittest
from datetime import date
from unittest import mock

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from sleep_competition.db.repositories import DBCompetitionRepository, DBScoreRepository
from sleep_competition.db.tables import CompetitionRow, ReportedDateRow, ScoreRow
from sleep_competition.entities.competition import Competition, Score, SleepEventType
from sleep_competition.entities.results import (
    CompetitionEnded, CompetitionStarted, OperationError, ParticipantRemoved, StatRecorded,
)
from sleep_competition.services.competition_manager import CompetitionManager


def _make_engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(
        engine, tables=[CompetitionRow.__table__, ScoreRow.__table__, ReportedDateRow.__table__],
    )
    return engine


class DBTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = _make_engine()
        self.session = Session(self.engine)
        self.competitions = DBCompetitionRepository(self.session)
        self.scores = DBScoreRepository(self.session)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def _create(self, competition_id="c1", participants=("alice", "bob"),
                start=date(2025, 1, 1), end=date(2025, 1, 3)):
        competition = Competition(
            id=competition_id, name="Week", participants=list(participants),
            start_date=start, end_date=end,
        )
        self.competitions.create(competition)
        self.scores.create_all(
            Score(id=f"{competition_id}-{user_id}", user_id=user_id, competition_id=competition_id)
            for user_id in participants
        )
        return competition


class TestDBCompetitionRepository(DBTestCase):
    def test_round_trip(self):
        self._create()
        fetched = self.competitions.get("c1")
        self.assertEqual(fetched.participants, ["alice", "bob"])
        self.assertEqual(fetched.start_date, date(2025, 1, 1))
        self.assertEqual(fetched.end_date, date(2025, 1, 3))
        self.assertTrue(fetched.active)
        self.assertIsNone(fetched.winners)

    def test_get_returns_none_for_unknown_id(self):
        self.assertIsNone(self.competitions.get("missing"))

    def test_find_filters_by_user_day_and_active(self):
        self._create("c1", ("alice", "bob"), date(2025, 1, 1), date(2025, 1, 3))
        self._create("c2", ("alice", "carol"), date(2025, 1, 3), date(2025, 1, 9))
        self._create("c3", ("bob", "carol"), date(2025, 1, 1), date(2025, 1, 9))

        on_third = self.competitions.find(user_id="alice", active=True, on_day=date(2025, 1, 3))
        self.assertEqual([c.id for c in on_third], ["c1", "c2"])

        on_fifth = self.competitions.find(user_id="alice", active=True, on_day=date(2025, 1, 5))
        self.assertEqual([c.id for c in on_fifth], ["c2"])

        self.competitions.deactivate("c2", winners=None)
        self.assertEqual(self.competitions.find(user_id="alice", active=True, on_day=date(2025, 1, 5)), [])
        self.assertEqual([c.id for c in self.competitions.find(active=False)], ["c2"])

    def test_deactivate_only_once(self):
        self._create()
        self.assertTrue(self.competitions.deactivate("c1", winners=["alice"]))
        self.assertFalse(self.competitions.deactivate("c1", winners=None))

        fetched = self.competitions.get("c1")
        self.assertFalse(fetched.active)
        self.assertEqual(fetched.winners, ["alice"])

    def test_null_winners_stored_as_sql_null(self):
        self._create()
        self.competitions.deactivate("c1", winners=None)
        row = self.session.exec(select(CompetitionRow).where(CompetitionRow.id == "c1")).one()
        self.assertIsNone(row.winners_jsonb)

    def test_set_participants_with_deactivation(self):
        self._create(participants=("alice", "bob", "carol"))
        self.assertTrue(self.competitions.set_participants("c1", ["alice", "bob"]))
        self.assertTrue(self.competitions.get("c1").active)

        self.assertTrue(self.competitions.set_participants("c1", ["alice"], deactivate=True))
        fetched = self.competitions.get("c1")
        self.assertFalse(fetched.active)
        self.assertEqual(fetched.participants, ["alice"])

        self.assertFalse(self.competitions.set_participants("c1", []))


class TestDBScoreRepository(DBTestCase):
    def test_increment_is_per_event_type(self):
        self._create()
        self.scores.increment("c1-alice", SleepEventType.BEDTIME, 1)
        self.scores.increment("c1-alice", SleepEventType.BEDTIME, 1)
        self.scores.increment("c1-alice", SleepEventType.WAKETIME, -1)

        score = self.scores.get("alice", "c1")
        self.assertEqual((score.bed_time_score, score.wake_up_score), (2, -1))

    def test_reported_date_is_added_once(self):
        self._create()
        self.assertTrue(self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-01"))
        self.assertFalse(self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-01"))
        self.assertTrue(self.scores.add_reported_date("c1-alice", SleepEventType.WAKETIME, "2025-01-01"))

        score = self.scores.get("alice", "c1")
        self.assertEqual(score.reported_bedtime_dates, {"2025-01-01"})
        self.assertEqual(score.reported_wake_up_dates, {"2025-01-01"})
        rows = self.session.exec(select(ReportedDateRow)).all()
        self.assertEqual(len(rows), 2)

    def test_duplicate_insert_missed_by_the_check_is_rejected(self):
        self._create()
        self.assertTrue(self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-01"))

        # another writer got in between the existence check and the insert
        nothing_found = mock.Mock()
        nothing_found.first.return_value = None
        with mock.patch.object(self.session, "exec", return_value=nothing_found):
            added = self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-01")

        self.assertFalse(added)
        rows = self.session.exec(select(ReportedDateRow)).all()
        self.assertEqual(len(rows), 1)
        self.assertTrue(self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-02"))
        self.assertEqual(
            self.scores.get("alice", "c1").reported_bedtime_dates, {"2025-01-01", "2025-01-02"},
        )

    def test_apply_penalties(self):
        self._create()
        self.scores.apply_penalties({"c1-alice": (2, 0), "c1-bob": (1, 3)})
        self.assertEqual(self.scores.get("alice", "c1").bed_time_score, -2)
        bob = self.scores.get("bob", "c1")
        self.assertEqual((bob.bed_time_score, bob.wake_up_score), (-1, -3))

    def test_delete_removes_score_and_dates(self):
        self._create()
        self.scores.add_reported_date("c1-alice", SleepEventType.BEDTIME, "2025-01-02")

        self.assertTrue(self.scores.delete("alice", "c1"))
        self.assertFalse(self.scores.delete("alice", "c1"))
        self.assertIsNone(self.scores.get("alice", "c1"))
        self.assertEqual([s.user_id for s in self.scores.find(competition_id="c1")], ["bob"])
        self.assertEqual(self.session.exec(select(ReportedDateRow)).all(), [])

    def test_delete_for_competition(self):
        self._create("c1")
        self._create("c2", participants=("alice", "carol"))
        self.scores.add_reported_date("c1-bob", SleepEventType.WAKETIME, "2025-01-01")

        self.scores.delete_for_competition("c1")

        self.assertEqual(self.scores.find(competition_id="c1"), [])
        self.assertEqual(len(self.scores.find(competition_id="c2")), 2)


class TestManagerOnDatabase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.engine = _make_engine()
        self.session = Session(self.engine)
        self.competitions = DBCompetitionRepository(self.session)
        self.scores = DBScoreRepository(self.session)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def _manager(self, competitions=None, scores=None):
        counter = itertools.count(1)
        return CompetitionManager(
            competitions or self.competitions,
            scores or self.scores,
            clock=lambda: date(2025, 1, 1),
            id_factory=lambda: f"id{next(counter)}",
        )

    async def test_failed_competition_does_not_poison_the_others(self):
        class ConflictingScoreRepository(DBScoreRepository):
            failing_score_id = None

            def add_reported_date(self, score_id, event_type, day):
                added = super().add_reported_date(score_id, event_type, day)
                if score_id == self.failing_score_id:
                    # duplicate row, the flush leaves the session needing a rollback
                    self._session.add(ReportedDateRow(score_id=score_id, event_type=event_type.value, day=day))
                    self._session.flush()
                return added

        scores = ConflictingScoreRepository(self.session)
        manager = self._manager(scores=scores)
        first = (await manager.start_competition("A", ["alice", "bob"], "2025-01-01", "2025-01-05")).competition_id
        second = (await manager.start_competition("B", ["alice", "carol"], "2025-01-02", "2025-01-05")).competition_id
        scores.failing_score_id = scores.get("alice", first).id

        with self.assertLogs("sleep_competition.services.competition_manager", level="ERROR"):
            result = await manager.record_stat("alice", "2025-01-03", "BEDTIME", True)

        self.assertEqual(result, OperationError("Failed to record stat for 1 competition(s)."))
        self.assertEqual(scores.get("alice", first).bed_time_score, 0)
        self.assertEqual(scores.get("alice", second).bed_time_score, 1)
        self.assertEqual(scores.get("alice", second).reported_bedtime_dates, {"2025-01-03"})

    async def test_start_publishes_competition_and_scores_together(self):
        class FailingScoreRepository(DBScoreRepository):
            def create_all(self, scores):
                for score in scores:
                    self._session.add(ScoreRow(id=score.id, competition_id=score.competition_id, user_id=score.user_id))
                raise RuntimeError("store down")

        manager = self._manager(scores=FailingScoreRepository(self.session))
        with self.assertRaises(RuntimeError):
            await manager.start_competition("A", ["alice", "bob"], "2025-01-01", "2025-01-02")

        self.assertIsNone(self.competitions.get("id1"))
        self.assertEqual(self.session.exec(select(CompetitionRow)).all(), [])
        self.assertEqual(self.session.exec(select(ScoreRow)).all(), [])

    async def test_removal_keeps_score_when_participant_update_fails(self):
        class FailingCompetitionRepository(DBCompetitionRepository):
            def set_participants(self, competition_id, participants, *, deactivate=False):
                raise RuntimeError("store down")

        manager = self._manager()
        competition_id = (await manager.start_competition(
            "A", ["alice", "bob", "carol"], "2025-01-01", "2025-01-02",
        )).competition_id

        broken = self._manager(competitions=FailingCompetitionRepository(self.session))
        with self.assertRaises(RuntimeError):
            await broken.remove_participant(competition_id, "carol")

        self.assertEqual(self.competitions.get(competition_id).participants, ["alice", "bob", "carol"])
        self.assertIsNotNone(self.scores.get("carol", competition_id))

        self.assertEqual(await manager.remove_participant(competition_id, "carol"), ParticipantRemoved(False))
        self.assertIsNone(self.scores.get("carol", competition_id))
        self.assertEqual(self.competitions.get(competition_id).participants, ["alice", "bob"])

    async def test_full_lifecycle(self):
        today = {"value": date(2025, 1, 1)}
        manager = CompetitionManager(
            self.competitions, self.scores, clock=lambda: today["value"],
        )

        started = await manager.start_competition("Weekend", ["alice", "bob", "carol"], "2025-01-01", "2025-01-02")
        self.assertIsInstance(started, CompetitionStarted)
        competition_id = started.competition_id

        self.assertEqual(await manager.record_stat("alice", "2025-01-01", "BEDTIME", True), StatRecorded(1))
        await manager.record_stat("alice", "2025-01-01", "BEDTIME", True)
        await manager.record_stat("alice", "2025-01-02", "BEDTIME", False)
        await manager.record_stat("alice", "2025-01-01", "WAKETIME", True)
        await manager.record_stat("alice", "2025-01-02", "WAKETIME", True)
        await manager.record_stat("bob", "2025-01-01", "WAKETIME", True)

        self.assertEqual(
            await manager.get_reported_dates(competition_id, "alice", "BEDTIME"),
            ["2025-01-01", "2025-01-02"],
        )

        board = await manager.get_leaderboard(competition_id)
        self.assertEqual(
            [(e.position, e.user_id, e.total_score) for e in board],
            [(1, "alice", 4), (2, "bob", 1), (3, "carol", 0)],
        )

        today["value"] = date(2025, 1, 2)
        self.assertEqual(await manager.end_competition(competition_id), CompetitionEnded(["alice"]))

        # alice reported everything, bob missed 2 bedtimes and 1 wake-up, carol missed all 4
        board = await manager.get_leaderboard(competition_id)
        self.assertEqual(
            [(e.user_id, e.total_score) for e in board],
            [("alice", 4), ("bob", -2), ("carol", -4)],
        )
        competition = await manager.get_competition(competition_id)
        self.assertFalse(competition.active)
        self.assertEqual(competition.winners, ["alice"])


if __name__ == "__main__":
    unittest.main()
