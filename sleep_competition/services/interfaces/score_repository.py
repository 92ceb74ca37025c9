from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from sleep_competition.entities.competition import Score, SleepEventType


class ScoreRepository(ABC):

    @abstractmethod
    def create_all(self, scores: Iterable[Score]) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, user_id: str, competition_id: str) -> Score | None:
        raise NotImplementedError

    @abstractmethod
    def find(self, *, competition_id: str) -> list[Score]:
        raise NotImplementedError

    @abstractmethod
    def increment(self, score_id: str, event_type: SleepEventType, delta: int) -> None:
        """Atomically adds ``delta`` to the counter of the given event type."""
        raise NotImplementedError

    @abstractmethod
    def add_reported_date(self, score_id: str, event_type: SleepEventType, day: str) -> bool:
        """Adds ``day`` to the reported-date set; True if it was not there yet."""
        raise NotImplementedError

    @abstractmethod
    def apply_penalties(self, penalties: dict[str, tuple[int, int]]) -> None:
        """Subtracts (bedtime, wake-up) penalties per score id in one write."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: str, competition_id: str, *, commit: bool = True) -> bool:
        """Removes the score and its reported dates. ``commit=False`` leaves the
        removal pending in the unit of work, see CompetitionRepository.create."""
        raise NotImplementedError

    @abstractmethod
    def delete_for_competition(self, competition_id: str) -> None:
        raise NotImplementedError
