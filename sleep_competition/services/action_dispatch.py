"""Dict-in, dict-out adapter for the action-routing layer.

Actions answer with ``{...}`` on success or ``{"error": ...}``; queries answer
with lists (one frame per record) and never error.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from sleep_competition.entities.competition import Competition
from sleep_competition.entities.results import (
    CompetitionEnded, CompetitionStarted, OperationError,
)
from sleep_competition.schemas import (
    CompetitionEnvelope, CompetitionRequest, DecrementScoreRequest,
    LeaderboardEntryEnvelope, RecordStatRequest, RemoveParticipantRequest,
    ReportedDatesRequest, StartCompetitionRequest, UserCompetitionsRequest,
)
from sleep_competition.services.competition_manager import CompetitionManager

Handler = Callable[[BaseModel], Awaitable[Any]]


class ActionDispatcher:
    def __init__(self, manager: CompetitionManager):
        self.manager = manager
        self.logger = logging.getLogger(__name__)

        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {
            "startCompetition": (StartCompetitionRequest, self._start_competition),
            "recordStat": (RecordStatRequest, self._record_stat),
            "decrementScore": (DecrementScoreRequest, self._decrement_score),
            "endCompetition": (CompetitionRequest, self._end_competition),
            "removeParticipant": (RemoveParticipantRequest, self._remove_participant),
            "_getLeaderboard": (CompetitionRequest, self._get_leaderboard),
            "_getReportedDates": (ReportedDatesRequest, self._get_reported_dates),
            "_getCompetitionsForUser": (UserCompetitionsRequest, self._get_competitions_for_user),
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, action: str, payload: dict[str, Any]) -> Any:
        """Raises KeyError for an unknown action name."""
        request_type, handler = self._handlers[action]
        try:
            request = request_type.model_validate(payload)
        except ValidationError as exc:
            self.logger.info("rejected %s payload: %s", action, exc.errors())
            if action.startswith("_"):
                return []
            return {"error": f"Invalid payload for {action}: {_summarize(exc)}"}
        return await handler(request)

    # ── actions ──

    async def _start_competition(self, request: StartCompetitionRequest) -> dict[str, Any]:
        result = await self.manager.start_competition(
            request.name, request.participants, request.startDateStr, request.endDateStr,
        )
        if isinstance(result, CompetitionStarted):
            return {"competitionId": result.competition_id}
        return _error(result)

    async def _record_stat(self, request: RecordStatRequest) -> dict[str, Any]:
        result = await self.manager.record_stat(
            request.u, request.dateStr, request.eventType, request.success,
        )
        return _error(result) if isinstance(result, OperationError) else {}

    async def _decrement_score(self, request: DecrementScoreRequest) -> dict[str, Any]:
        result = await self.manager.decrement_score(request.u, request.dateStr, request.eventType)
        return _error(result) if isinstance(result, OperationError) else {}

    async def _end_competition(self, request: CompetitionRequest) -> dict[str, Any]:
        result = await self.manager.end_competition(request.competitionId)
        if isinstance(result, CompetitionEnded):
            return {"winners": result.winners}
        return _error(result)

    async def _remove_participant(self, request: RemoveParticipantRequest) -> dict[str, Any]:
        result = await self.manager.remove_participant(request.competitionId, request.userId)
        return _error(result) if isinstance(result, OperationError) else {}

    # ── queries ──

    async def _get_leaderboard(self, request: CompetitionRequest) -> list[dict[str, Any]]:
        entries = await self.manager.get_leaderboard(request.competitionId)
        return [
            {"entry": LeaderboardEntryEnvelope(
                position=e.position, userId=e.user_id, totalScore=e.total_score,
            ).model_dump()}
            for e in entries
        ]

    async def _get_reported_dates(self, request: ReportedDatesRequest) -> list[str]:
        return await self.manager.get_reported_dates(
            request.competitionId, request.userId, request.eventType,
        )

    async def _get_competitions_for_user(self, request: UserCompetitionsRequest) -> list[dict[str, Any]]:
        competitions = await self.manager.get_competitions_for_user(request.user)
        return [{"competition": _competition_payload(c)} for c in competitions]


def _error(result: OperationError) -> dict[str, str]:
    return {"error": result.error}


def _competition_payload(competition: Competition) -> dict[str, Any]:
    return CompetitionEnvelope(
        id=competition.id,
        name=competition.name,
        participants=competition.participants,
        startDate=competition.start_date,
        endDate=competition.end_date,
        active=competition.active,
        winners=competition.winners,
    ).model_dump(mode="json", by_alias=True)


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
        for err in exc.errors()
    )
