"""Competition, score and reported-date tables."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CompetitionRow(SQLModel, table=True):
    __tablename__ = "competitions"

    id: str = Field(primary_key=True)
    name: str

    # ordered list of user ids
    participants_jsonb: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False),
    )

    start_date: date = Field(index=True)
    end_date: date = Field(index=True)
    active: bool = Field(default=True, index=True)

    winners_jsonb: Optional[list[str]] = Field(
        default=None, sa_column=Column(JSON(none_as_null=True), nullable=True),
    )

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class ScoreRow(SQLModel, table=True):
    __tablename__ = "scores"

    id: str = Field(primary_key=True)
    competition_id: str = Field(index=True, foreign_key="competitions.id")
    user_id: str = Field(index=True)

    bed_time_score: int = Field(default=0)
    wake_up_score: int = Field(default=0)

    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", name="uq_scores_competition_user"),
    )


class ReportedDateRow(SQLModel, table=True):
    __tablename__ = "reported_dates"

    id: Optional[int] = Field(default=None, primary_key=True)
    score_id: str = Field(index=True, foreign_key="scores.id")
    event_type: str
    day: str  # YYYY-MM-DD
    reported_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint("score_id", "event_type", "day", name="uq_reported_dates_score_event_day"),
    )
