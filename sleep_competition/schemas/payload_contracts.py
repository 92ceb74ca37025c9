from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Action payloads, named as the action-routing layer sends them
# ---------------------------------------------------------------------------


class StartCompetitionRequest(BaseModel):
    name: str
    participants: list[str]
    startDateStr: str
    endDateStr: str

    model_config = ConfigDict(extra="allow")


class RecordStatRequest(BaseModel):
    u: str
    dateStr: str
    eventType: str
    success: bool

    model_config = ConfigDict(extra="allow")


class DecrementScoreRequest(BaseModel):
    u: str
    dateStr: str
    eventType: str

    model_config = ConfigDict(extra="allow")


class CompetitionRequest(BaseModel):
    competitionId: str

    model_config = ConfigDict(extra="allow")


class RemoveParticipantRequest(BaseModel):
    competitionId: str
    userId: str

    model_config = ConfigDict(extra="allow")


class ReportedDatesRequest(BaseModel):
    competitionId: str
    userId: str
    eventType: str

    model_config = ConfigDict(extra="allow")


class UserCompetitionsRequest(BaseModel):
    user: str

    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


class LeaderboardEntryEnvelope(BaseModel):
    position: int = Field(ge=1)
    userId: str
    totalScore: int


class CompetitionEnvelope(BaseModel):
    """A competition as returned to clients; dates serialize as YYYY-MM-DD."""

    id: str = Field(serialization_alias="_id")
    name: str
    participants: list[str]
    startDate: date
    endDate: date
    active: bool
    winners: list[str] | None = None
