from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum


class SleepEventType(StrEnum):
    BEDTIME = "BEDTIME"
    WAKETIME = "WAKETIME"

    @classmethod
    def parse(cls, value: str | SleepEventType | None) -> SleepEventType | None:
        """Accepts the enum itself, its value, or the spellings used by trackers
        ("bedtime", "wake-up", "wakeup", "wake_up"). Returns None otherwise."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().upper().replace("-", "").replace("_", "")
        return _EVENT_ALIASES.get(normalized)


_EVENT_ALIASES = {
    "BEDTIME": SleepEventType.BEDTIME,
    "WAKETIME": SleepEventType.WAKETIME,
    "WAKEUP": SleepEventType.WAKETIME,
}


@dataclass
class Competition:
    id: str
    name: str
    participants: list[str]
    start_date: date
    end_date: date
    active: bool = True
    winners: list[str] | None = None

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass
class Score:
    """Per-user, per-competition counters plus the reported-day ledger."""
    id: str
    user_id: str
    competition_id: str
    bed_time_score: int = 0
    wake_up_score: int = 0
    reported_bedtime_dates: set[str] = field(default_factory=set)
    reported_wake_up_dates: set[str] = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.bed_time_score + self.wake_up_score

    def reported_dates(self, event_type: SleepEventType) -> set[str]:
        if event_type == SleepEventType.BEDTIME:
            return self.reported_bedtime_dates
        return self.reported_wake_up_dates

    def missing_reports(self, total_days: int) -> tuple[int, int]:
        """(missing bedtime days, missing wake-up days), never negative."""
        return (
            max(0, total_days - len(self.reported_bedtime_dates)),
            max(0, total_days - len(self.reported_wake_up_dates)),
        )


@dataclass(frozen=True)
class LeaderboardEntry:
    position: int
    user_id: str
    total_score: int
