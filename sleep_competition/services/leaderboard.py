"""Standard competition ranking ("1224"): tied totals share a position and the
next distinct total takes its 1-based index, so [10, 10, 8] ranks [1, 1, 3]."""
from __future__ import annotations

from typing import Iterable

from sleep_competition.entities.competition import Competition, LeaderboardEntry, Score


def rank_entries(totals: Iterable[tuple[str, int]]) -> list[LeaderboardEntry]:
    # sorted() is stable: equal totals keep their input (participant) order
    ordered = sorted(totals, key=lambda item: item[1], reverse=True)

    ranked: list[LeaderboardEntry] = []
    position = 1
    last_total: int | None = None
    for index, (user_id, total) in enumerate(ordered):
        if last_total is None or total < last_total:
            position = index + 1
        ranked.append(LeaderboardEntry(position=position, user_id=user_id, total_score=total))
        last_total = total
    return ranked


def build_leaderboard(competition: Competition, scores: Iterable[Score]) -> list[LeaderboardEntry]:
    by_user = {score.user_id: score.total for score in scores}
    return rank_entries((user_id, by_user.get(user_id, 0)) for user_id in competition.participants)
