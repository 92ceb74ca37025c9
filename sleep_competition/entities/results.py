"""Tagged results returned by the competition engine.

Every mutating operation returns either its success variant or an
``OperationError``; nothing is raised across the engine boundary for domain
failures.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class OperationError:
    error: str


@dataclass(frozen=True)
class CompetitionStarted:
    competition_id: str


@dataclass(frozen=True)
class StatRecorded:
    competitions_updated: int


@dataclass(frozen=True)
class ScoreDecremented:
    competitions_updated: int


@dataclass(frozen=True)
class CompetitionEnded:
    winners: list[str] | None


@dataclass(frozen=True)
class ParticipantRemoved:
    deactivated: bool


StartCompetitionResult = Union[CompetitionStarted, OperationError]
RecordStatResult = Union[StatRecorded, OperationError]
DecrementScoreResult = Union[ScoreDecremented, OperationError]
EndCompetitionResult = Union[CompetitionEnded, OperationError]
RemoveParticipantResult = Union[ParticipantRemoved, OperationError]
