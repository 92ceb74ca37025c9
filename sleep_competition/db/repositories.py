from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy import update
from sqlmodel import Session, delete, select

from sleep_competition.db.tables import CompetitionRow, ReportedDateRow, ScoreRow
from sleep_competition.entities.competition import Competition, Score, SleepEventType
from sleep_competition.services.interfaces.competition_repository import CompetitionRepository
from sleep_competition.services.interfaces.score_repository import ScoreRepository


class DBCompetitionRepository(CompetitionRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def create(self, competition: Competition, *, commit: bool = True) -> None:
        self._session.add(self._domain_to_row(competition))
        if commit:
            self._session.commit()

    def get(self, competition_id: str) -> Competition | None:
        row = self._session.get(CompetitionRow, competition_id)
        if row is None:
            return None
        return self._row_to_domain(row)

    def find(
        self,
        *,
        user_id: str | None = None,
        active: bool | None = None,
        on_day: date | None = None,
    ) -> list[Competition]:
        stmt = select(CompetitionRow).order_by(CompetitionRow.start_date.asc(), CompetitionRow.id.asc())
        if active is not None:
            stmt = stmt.where(CompetitionRow.active == active)
        if on_day is not None:
            stmt = stmt.where(CompetitionRow.start_date <= on_day, CompetitionRow.end_date >= on_day)
        rows = self._session.exec(stmt).all()
        competitions = [self._row_to_domain(row) for row in rows]
        # JSON containment differs per dialect, membership is checked here
        if user_id is not None:
            competitions = [c for c in competitions if user_id in c.participants]
        return competitions

    def deactivate(self, competition_id: str, *, winners: list[str] | None) -> bool:
        stmt = (
            update(CompetitionRow)
            .where(CompetitionRow.id == competition_id, CompetitionRow.active == True)  # noqa: E712
            .values(active=False, winners_jsonb=winners, updated_at=datetime.now(timezone.utc))
        )
        result = self._session.exec(stmt)
        self._session.commit()
        return result.rowcount == 1

    def set_participants(
        self, competition_id: str, participants: list[str], *, deactivate: bool = False,
    ) -> bool:
        values = {"participants_jsonb": list(participants), "updated_at": datetime.now(timezone.utc)}
        if deactivate:
            values.update(active=False, winners_jsonb=None)
        stmt = (
            update(CompetitionRow)
            .where(CompetitionRow.id == competition_id, CompetitionRow.active == True)  # noqa: E712
            .values(**values)
        )
        result = self._session.exec(stmt)
        if result.rowcount != 1:
            self._session.rollback()
            return False
        self._session.commit()
        return True

    def set_winners(self, competition_id: str, winners: list[str] | None) -> None:
        self._session.exec(
            update(CompetitionRow)
            .where(CompetitionRow.id == competition_id)
            .values(winners_jsonb=winners, updated_at=datetime.now(timezone.utc))
        )
        self._session.commit()

    def delete(self, competition_id: str) -> None:
        self._session.exec(delete(CompetitionRow).where(CompetitionRow.id == competition_id))
        self._session.commit()

    @staticmethod
    def _row_to_domain(row: CompetitionRow) -> Competition:
        return Competition(
            id=row.id,
            name=row.name,
            participants=list(row.participants_jsonb or []),
            start_date=row.start_date,
            end_date=row.end_date,
            active=row.active,
            winners=list(row.winners_jsonb) if row.winners_jsonb is not None else None,
        )

    @staticmethod
    def _domain_to_row(competition: Competition) -> CompetitionRow:
        return CompetitionRow(
            id=competition.id,
            name=competition.name,
            participants_jsonb=list(competition.participants),
            start_date=competition.start_date,
            end_date=competition.end_date,
            active=competition.active,
            winners_jsonb=competition.winners,
        )


class DBScoreRepository(ScoreRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def create_all(self, scores: Iterable[Score]) -> None:
        scores = list(scores)
        for score in scores:
            self._session.add(ScoreRow(
                id=score.id,
                competition_id=score.competition_id,
                user_id=score.user_id,
                bed_time_score=score.bed_time_score,
                wake_up_score=score.wake_up_score,
            ))
        # scores must exist before their reported dates
        self._session.flush()
        for score in scores:
            for event_type in SleepEventType:
                for day in sorted(score.reported_dates(event_type)):
                    self._session.add(ReportedDateRow(score_id=score.id, event_type=event_type.value, day=day))
        self._session.commit()

    def get(self, user_id: str, competition_id: str) -> Score | None:
        stmt = select(ScoreRow).where(
            ScoreRow.user_id == user_id, ScoreRow.competition_id == competition_id,
        )
        row = self._session.exec(stmt).first()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def find(self, *, competition_id: str) -> list[Score]:
        stmt = (
            select(ScoreRow)
            .where(ScoreRow.competition_id == competition_id)
            .order_by(ScoreRow.user_id.asc())
        )
        return self._hydrate(list(self._session.exec(stmt).all()))

    def increment(self, score_id: str, event_type: SleepEventType, delta: int) -> None:
        self._session.exec(self._increment_stmt(score_id, event_type, delta))
        self._session.commit()

    def add_reported_date(self, score_id: str, event_type: SleepEventType, day: str) -> bool:
        existing = self._session.exec(
            select(ReportedDateRow.id).where(
                ReportedDateRow.score_id == score_id,
                ReportedDateRow.event_type == event_type.value,
                ReportedDateRow.day == day,
            )
        ).first()
        if existing is not None:
            return False

        self._session.add(ReportedDateRow(score_id=score_id, event_type=event_type.value, day=day))
        try:
            self._session.commit()
        except IntegrityError:
            # a concurrent report inserted the same day first
            self._session.rollback()
            return False
        return True

    def apply_penalties(self, penalties: dict[str, tuple[int, int]]) -> None:
        for score_id, (bedtime, wake_up) in penalties.items():
            if bedtime:
                self._session.exec(self._increment_stmt(score_id, SleepEventType.BEDTIME, -bedtime))
            if wake_up:
                self._session.exec(self._increment_stmt(score_id, SleepEventType.WAKETIME, -wake_up))
        self._session.commit()

    def delete(self, user_id: str, competition_id: str, *, commit: bool = True) -> bool:
        stmt = select(ScoreRow).where(
            ScoreRow.user_id == user_id, ScoreRow.competition_id == competition_id,
        )
        row = self._session.exec(stmt).first()
        if row is None:
            return False
        self._session.exec(delete(ReportedDateRow).where(ReportedDateRow.score_id == row.id))
        self._session.delete(row)
        if commit:
            self._session.commit()
        return True

    def delete_for_competition(self, competition_id: str) -> None:
        score_ids = select(ScoreRow.id).where(ScoreRow.competition_id == competition_id)
        self._session.exec(delete(ReportedDateRow).where(ReportedDateRow.score_id.in_(score_ids)))
        self._session.exec(delete(ScoreRow).where(ScoreRow.competition_id == competition_id))
        self._session.commit()

    @staticmethod
    def _increment_stmt(score_id: str, event_type: SleepEventType, delta: int):
        column = ScoreRow.bed_time_score if event_type == SleepEventType.BEDTIME else ScoreRow.wake_up_score
        return (
            update(ScoreRow)
            .where(ScoreRow.id == score_id)
            .values({column: column + delta})
        )

    def _hydrate(self, rows: list[ScoreRow]) -> list[Score]:
        if not rows:
            return []
        date_rows = self._session.exec(
            select(ReportedDateRow).where(ReportedDateRow.score_id.in_([r.id for r in rows]))
        ).all()

        scores = {
            row.id: Score(
                id=row.id,
                user_id=row.user_id,
                competition_id=row.competition_id,
                bed_time_score=row.bed_time_score,
                wake_up_score=row.wake_up_score,
            )
            for row in rows
        }
        for date_row in date_rows:
            score = scores[date_row.score_id]
            score.reported_dates(SleepEventType(date_row.event_type)).add(date_row.day)
        return [scores[row.id] for row in rows]
