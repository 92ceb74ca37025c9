from __future__ import annotations

import copy
import threading
from datetime import date
from typing import Dict, Iterable

from sleep_competition.entities.competition import Competition, Score, SleepEventType
from sleep_competition.services.interfaces.competition_repository import CompetitionRepository
from sleep_competition.services.interfaces.score_repository import ScoreRepository


class InMemoryCompetitionRepository(CompetitionRepository):
    def __init__(self):
        # In-memory storage, callers always receive copies
        self._storage: Dict[str, Competition] = {}
        self._lock = threading.Lock()

    def create(self, competition: Competition, *, commit: bool = True) -> None:
        with self._lock:
            if competition.id in self._storage:
                raise ValueError(f"competition {competition.id} already exists")
            self._storage[competition.id] = copy.deepcopy(competition)

    def get(self, competition_id: str) -> Competition | None:
        with self._lock:
            competition = self._storage.get(competition_id)
            return copy.deepcopy(competition) if competition else None

    def find(
        self,
        *,
        user_id: str | None = None,
        active: bool | None = None,
        on_day: date | None = None,
    ) -> list[Competition]:
        with self._lock:
            results = list(self._storage.values())
            if user_id is not None:
                results = [c for c in results if user_id in c.participants]
            if active is not None:
                results = [c for c in results if c.active == active]
            if on_day is not None:
                results = [c for c in results if c.covers(on_day)]
            return [copy.deepcopy(c) for c in results]

    def deactivate(self, competition_id: str, *, winners: list[str] | None) -> bool:
        with self._lock:
            competition = self._storage.get(competition_id)
            if competition is None or not competition.active:
                return False
            competition.active = False
            competition.winners = list(winners) if winners is not None else None
            return True

    def set_participants(
        self, competition_id: str, participants: list[str], *, deactivate: bool = False,
    ) -> bool:
        with self._lock:
            competition = self._storage.get(competition_id)
            if competition is None or not competition.active:
                return False
            competition.participants = list(participants)
            if deactivate:
                competition.active = False
                competition.winners = None
            return True

    def set_winners(self, competition_id: str, winners: list[str] | None) -> None:
        with self._lock:
            competition = self._storage.get(competition_id)
            if competition is not None:
                competition.winners = list(winners) if winners is not None else None

    def delete(self, competition_id: str) -> None:
        with self._lock:
            self._storage.pop(competition_id, None)

    def clear(self):
        """Clear all competitions (only for testing)."""
        with self._lock:
            self._storage.clear()


class InMemoryScoreRepository(ScoreRepository):
    def __init__(self):
        self._storage: Dict[str, Score] = {}
        self._lock = threading.Lock()

    def create_all(self, scores: Iterable[Score]) -> None:
        with self._lock:
            for score in scores:
                if self._find_locked(score.user_id, score.competition_id) is not None:
                    raise ValueError(
                        f"score for {score.user_id} in {score.competition_id} already exists"
                    )
                self._storage[score.id] = copy.deepcopy(score)

    def get(self, user_id: str, competition_id: str) -> Score | None:
        with self._lock:
            score = self._find_locked(user_id, competition_id)
            return copy.deepcopy(score) if score else None

    def find(self, *, competition_id: str) -> list[Score]:
        with self._lock:
            return [
                copy.deepcopy(s) for s in self._storage.values()
                if s.competition_id == competition_id
            ]

    def increment(self, score_id: str, event_type: SleepEventType, delta: int) -> None:
        with self._lock:
            score = self._storage.get(score_id)
            if score is None:
                return
            if event_type == SleepEventType.BEDTIME:
                score.bed_time_score += delta
            else:
                score.wake_up_score += delta

    def add_reported_date(self, score_id: str, event_type: SleepEventType, day: str) -> bool:
        with self._lock:
            score = self._storage.get(score_id)
            if score is None:
                return False
            dates = score.reported_dates(event_type)
            if day in dates:
                return False
            dates.add(day)
            return True

    def apply_penalties(self, penalties: dict[str, tuple[int, int]]) -> None:
        with self._lock:
            for score_id, (bedtime, wake_up) in penalties.items():
                score = self._storage.get(score_id)
                if score is None:
                    continue
                score.bed_time_score -= bedtime
                score.wake_up_score -= wake_up

    def delete(self, user_id: str, competition_id: str, *, commit: bool = True) -> bool:
        with self._lock:
            score = self._find_locked(user_id, competition_id)
            if score is None:
                return False
            del self._storage[score.id]
            return True

    def delete_for_competition(self, competition_id: str) -> None:
        with self._lock:
            for score_id in [s.id for s in self._storage.values() if s.competition_id == competition_id]:
                del self._storage[score_id]

    def clear(self):
        """Clear all scores (only for testing)."""
        with self._lock:
            self._storage.clear()

    def _find_locked(self, user_id: str, competition_id: str) -> Score | None:
        for score in self._storage.values():
            if score.user_id == user_id and score.competition_id == competition_id:
                return score
        return None
