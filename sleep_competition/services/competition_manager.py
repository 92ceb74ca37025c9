"""Competition engine: start, score fan-out, finalization, leaderboard, removal."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date
from typing import Awaitable, Callable, Iterable

from sleep_competition.entities.competition import (
    Competition, LeaderboardEntry, Score, SleepEventType,
)
from sleep_competition.entities.results import (
    CompetitionEnded, CompetitionStarted, DecrementScoreResult, EndCompetitionResult,
    OperationError, ParticipantRemoved, RecordStatResult, RemoveParticipantResult,
    ScoreDecremented, StartCompetitionResult, StatRecorded,
)
from sleep_competition.services.interfaces import CompetitionRepository, ScoreRepository
from sleep_competition.services.leaderboard import build_leaderboard
from sleep_competition.utils.dates import format_day, parse_day, today_clock

MIN_PARTICIPANTS = 2

EMPTY_NAME = "Competition name must be a non-empty string."
TOO_FEW_PARTICIPANTS = "Competition must have at least two participants."
DUPLICATE_PARTICIPANTS = "Participants must be distinct."
INVALID_DATES = "Invalid date strings provided."
START_AFTER_END = "Start date cannot be after end date."
INVALID_EVENT_DATE = "Invalid date string provided for event."
INVALID_EVENT_TYPE = "Invalid sleep event type."
NO_ACTIVE_COMPETITION = (
    "User is not part of any active competition for the specified date, "
    "or the event date is outside the competition range."
)


def not_found(competition_id: str) -> str:
    return f"Competition with ID {competition_id} not found."


def not_active(competition_id: str) -> str:
    return f"Competition {competition_id} is not active."


def not_ended(competition_id: str) -> str:
    return f"Competition {competition_id} has not ended yet."


def not_participant(competition_id: str, user_id: str) -> str:
    return f"User {user_id} is not a participant in competition {competition_id}."


class CompetitionManager:
    def __init__(
        self,
        competition_repository: CompetitionRepository,
        score_repository: ScoreRepository,
        clock: Callable[[], date] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.competition_repository = competition_repository
        self.score_repository = score_repository
        self.clock = clock or today_clock()
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self.logger = logging.getLogger(__name__)

    # ── lifecycle ──

    async def start_competition(
        self, name: str, participants: list[str], start_date_str: str, end_date_str: str,
    ) -> StartCompetitionResult:
        if not name or not name.strip():
            return OperationError(EMPTY_NAME)
        if not participants or len(participants) < MIN_PARTICIPANTS:
            return OperationError(TOO_FEW_PARTICIPANTS)
        if len(set(participants)) != len(participants):
            return OperationError(DUPLICATE_PARTICIPANTS)

        start_date = parse_day(start_date_str)
        end_date = parse_day(end_date_str)
        if start_date is None or end_date is None:
            return OperationError(INVALID_DATES)
        if start_date > end_date:
            return OperationError(START_AFTER_END)

        competition = Competition(
            id=self.id_factory(),
            name=name.strip(),
            participants=list(participants),
            start_date=start_date,
            end_date=end_date,
        )
        # published together with its scores by create_all
        self.competition_repository.create(competition, commit=False)
        try:
            self.score_repository.create_all(
                Score(id=self.id_factory(), user_id=user_id, competition_id=competition.id)
                for user_id in competition.participants
            )
        except Exception:
            # a competition never exists without its scores
            self._rollback_repositories()
            self.score_repository.delete_for_competition(competition.id)
            self.competition_repository.delete(competition.id)
            raise

        self.logger.info(
            "competition %s (%r) started: %d participants, %s..%s",
            competition.id, competition.name, len(competition.participants),
            format_day(start_date), format_day(end_date),
        )
        return CompetitionStarted(competition.id)

    async def end_competition(self, competition_id: str) -> EndCompetitionResult:
        competition = self.competition_repository.get(competition_id)
        if competition is None:
            return OperationError(not_found(competition_id))
        if not competition.active:
            return OperationError(not_active(competition_id))
        if self.clock() < competition.end_date:
            return OperationError(not_ended(competition_id))

        _, _, winners = self._settle(
            competition, self.score_repository.find(competition_id=competition_id),
        )

        # claim the competition first so penalties are applied at most once
        if not self.competition_repository.deactivate(competition_id, winners=winners):
            return OperationError(not_active(competition_id))

        # reports that landed before the claim count towards the penalties too
        penalties, max_score, final_winners = self._settle(
            competition, self.score_repository.find(competition_id=competition_id),
        )
        if penalties is None:
            self.logger.warning("competition %s ended without any scores", competition_id)
            return CompetitionEnded(None)

        self.score_repository.apply_penalties(
            {score_id: penalty for score_id, penalty in penalties.items() if any(penalty)}
        )
        if final_winners != winners:
            self.logger.info(
                "competition %s winners changed during finalization: %s -> %s",
                competition_id, winners, final_winners,
            )
            self.competition_repository.set_winners(competition_id, final_winners)

        self.logger.info(
            "competition %s ended after %d days: max_score=%d winners=%s",
            competition_id, competition.total_days, max_score, final_winners,
        )
        return CompetitionEnded(final_winners)

    async def remove_participant(self, competition_id: str, user_id: str) -> RemoveParticipantResult:
        competition = self.competition_repository.get(competition_id)
        if competition is None:
            return OperationError(not_found(competition_id))
        if not competition.active:
            return OperationError(not_active(competition_id))
        if user_id not in competition.participants:
            return OperationError(not_participant(competition_id, user_id))

        remaining = [p for p in competition.participants if p != user_id]
        deactivate = len(remaining) < MIN_PARTICIPANTS
        # the score goes first, the participant update commits both
        try:
            self.score_repository.delete(user_id, competition_id, commit=False)
            updated = self.competition_repository.set_participants(
                competition_id, remaining, deactivate=deactivate,
            )
        except Exception:
            self._rollback_repositories()
            raise
        if not updated:
            return OperationError(not_active(competition_id))

        if deactivate:
            self.logger.info(
                "competition %s deactivated: %d participant(s) left after removing %s",
                competition_id, len(remaining), user_id,
            )
        else:
            self.logger.info("removed %s from competition %s", user_id, competition_id)
        return ParticipantRemoved(deactivated=deactivate)

    # ── score accumulation ──

    async def record_stat(
        self, user_id: str, date_str: str, event_type: str | SleepEventType, success: bool,
    ) -> RecordStatResult:
        resolved = self._resolve_event(user_id, date_str, event_type)
        if isinstance(resolved, OperationError):
            return resolved
        competitions, kind, day = resolved

        async def apply(competition: Competition) -> bool:
            score = self.score_repository.get(user_id, competition.id)
            if score is None:
                self.logger.warning("no score for %s in competition %s", user_id, competition.id)
                return False
            # reported regardless of outcome, only the day's first report is kept
            self.score_repository.add_reported_date(score.id, kind, day)
            if success:
                self.score_repository.increment(score.id, kind, 1)
            return True

        updated, failed = await self._fan_out(competitions, apply, "record stat")
        if failed:
            return OperationError(f"Failed to record stat for {failed} competition(s).")
        return StatRecorded(updated)

    async def decrement_score(
        self, user_id: str, date_str: str, event_type: str | SleepEventType,
    ) -> DecrementScoreResult:
        resolved = self._resolve_event(user_id, date_str, event_type)
        if isinstance(resolved, OperationError):
            return resolved
        competitions, kind, _ = resolved

        async def apply(competition: Competition) -> bool:
            score = self.score_repository.get(user_id, competition.id)
            if score is None:
                self.logger.warning("no score for %s in competition %s", user_id, competition.id)
                return False
            self.score_repository.increment(score.id, kind, -1)
            return True

        updated, failed = await self._fan_out(competitions, apply, "decrement score")
        if failed:
            return OperationError(f"Failed to decrement score for {failed} competition(s).")
        return ScoreDecremented(updated)

    # ── queries ──

    async def get_competition(self, competition_id: str) -> Competition | None:
        return self.competition_repository.get(competition_id)

    async def get_leaderboard(self, competition_id: str) -> list[LeaderboardEntry]:
        competition = self.competition_repository.get(competition_id)
        if competition is None:
            return []
        return build_leaderboard(competition, self.score_repository.find(competition_id=competition_id))

    async def get_reported_dates(
        self, competition_id: str, user_id: str, event_type: str | SleepEventType,
    ) -> list[str]:
        kind = SleepEventType.parse(event_type)
        if kind is None:
            return []
        competition = self.competition_repository.get(competition_id)
        if competition is None or user_id not in competition.participants:
            return []
        score = self.score_repository.get(user_id, competition_id)
        if score is None:
            return []
        return sorted(score.reported_dates(kind))

    async def get_competitions_for_user(self, user_id: str) -> list[Competition]:
        try:
            return self.competition_repository.find(user_id=user_id, active=True)
        except Exception as exc:
            self.logger.exception("failed to load competitions for %s: %s", user_id, exc)
            self._rollback_repositories()
            return []

    # ── helpers ──

    def find_memberships(self, user_id: str, day: date) -> list[Competition]:
        """Active competitions listing the user whose window contains the day."""
        return self.competition_repository.find(user_id=user_id, active=True, on_day=day)

    def _resolve_event(
        self, user_id: str, date_str: str, event_type: str | SleepEventType,
    ) -> tuple[list[Competition], SleepEventType, str] | OperationError:
        day = parse_day(date_str)
        if day is None:
            return OperationError(INVALID_EVENT_DATE)
        kind = SleepEventType.parse(event_type)
        if kind is None:
            return OperationError(INVALID_EVENT_TYPE)

        competitions = self.find_memberships(user_id, day)
        if not competitions:
            self.logger.debug("no active competition for %s on %s", user_id, day)
            return OperationError(NO_ACTIVE_COMPETITION)
        return competitions, kind, format_day(day)

    async def _fan_out(
        self,
        competitions: list[Competition],
        apply: Callable[[Competition], Awaitable[bool]],
        action: str,
    ) -> tuple[int, int]:
        """Runs ``apply`` per competition; a failure in one never blocks the others
        and applied updates are not rolled back. Returns (updated, failed)."""
        async def isolated(competition: Competition) -> bool:
            try:
                return await apply(competition)
            except Exception:
                # the next competition must not inherit a failed transaction
                self._rollback_repositories()
                raise

        results = await asyncio.gather(*(isolated(c) for c in competitions), return_exceptions=True)

        updated = failed = 0
        for competition, result in zip(competitions, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failed += 1
                self.logger.error(
                    "%s failed for competition %s", action, competition.id, exc_info=result,
                )
            elif result:
                updated += 1
        return updated, failed

    def _settle(
        self, competition: Competition, scores: Iterable[Score],
    ) -> tuple[dict[str, tuple[int, int]] | None, int | None, list[str] | None]:
        """Penalties per score id, the best penalized total and the winners.

        Everyone tied, or no scores at all, means no winner.
        """
        scores = self._in_participant_order(competition, scores)
        if not scores:
            return None, None, None

        # 1-2. penalties for days never reported
        penalties = {score.id: score.missing_reports(competition.total_days) for score in scores}

        # 3-5. penalized totals and the top scorers
        totals = {score.user_id: score.total - sum(penalties[score.id]) for score in scores}
        max_score = max(totals.values())
        winners = [user_id for user_id, total in totals.items() if total == max_score]

        # 6. everyone tied means no winner
        if set(winners) == set(competition.participants):
            return penalties, max_score, None
        return penalties, max_score, winners

    @staticmethod
    def _in_participant_order(competition: Competition, scores: Iterable[Score]) -> list[Score]:
        order = {user_id: index for index, user_id in enumerate(competition.participants)}
        return sorted(scores, key=lambda s: order.get(s.user_id, len(order)))

    def _rollback_repositories(self) -> None:
        for name, repo in [("competition", self.competition_repository),
                           ("score", self.score_repository)]:
            rollback = getattr(repo, "rollback", None)
            if callable(rollback):
                try:
                    rollback()
                except Exception as exc:
                    self.logger.warning("Rollback failed for %s: %s", name, exc)
