from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from sleep_competition.entities.competition import Competition


class CompetitionRepository(ABC):

    @abstractmethod
    def create(self, competition: Competition, *, commit: bool = True) -> None:
        """With ``commit=False`` the row joins the open unit of work and is
        published by the next committing write on the same session."""
        raise NotImplementedError

    @abstractmethod
    def get(self, competition_id: str) -> Competition | None:
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        *,
        user_id: str | None = None,
        active: bool | None = None,
        on_day: date | None = None,
    ) -> list[Competition]:
        """Filters combine conjunctively. ``on_day`` keeps competitions whose
        inclusive window contains the day."""
        raise NotImplementedError

    @abstractmethod
    def deactivate(self, competition_id: str, *, winners: list[str] | None) -> bool:
        """Sets active=False and winners only if the competition is still active.

        Returns False when another caller already deactivated it.
        """
        raise NotImplementedError

    @abstractmethod
    def set_participants(
        self, competition_id: str, participants: list[str], *, deactivate: bool = False,
    ) -> bool:
        """Replaces participants of an active competition, optionally deactivating
        it with winners=None in the same write. False if it is no longer active,
        in which case pending writes of the unit of work are discarded."""
        raise NotImplementedError

    @abstractmethod
    def set_winners(self, competition_id: str, winners: list[str] | None) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, competition_id: str) -> None:
        raise NotImplementedError
