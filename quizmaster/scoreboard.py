"""
Scoring and leaderboard aggregation over stored score records.

All functions are pure: they never mutate their input and give the same
answer for the same input order.
"""
import math
from typing import Dict, Iterable, List, Optional

from .models import LeaderboardEntry, QuizStats, ScoreRecord

DEFAULT_LEADERBOARD_LIMIT = 10


def _ranking_key(record: ScoreRecord):
    return (record.percentage, record.score)


def _round_half_up(value: float) -> float:
    """One decimal place, halves rounded up like the web client."""
    return math.floor(value * 10 + 0.5) / 10


def _apply_limit(items: list, limit: Optional[int]) -> list:
    if limit is None:
        return items
    if limit < 1:
        return []
    return items[:limit]


def best_per_user(records: Iterable[ScoreRecord]) -> Dict[str, ScoreRecord]:
    """
    Pick each player's best record.

    Higher percentage wins, then higher raw score. On a full tie the record
    seen first is kept. Players appear in first-seen order.
    """
    best: Dict[str, ScoreRecord] = {}
    for record in records:
        current = best.get(record.username)
        if current is None or _ranking_key(record) > _ranking_key(current):
            best[record.username] = record
    return best


def leaderboard(records: Iterable[ScoreRecord], limit: Optional[int] = DEFAULT_LEADERBOARD_LIMIT) -> List[LeaderboardEntry]:
    """
    Rank the best record per player.

    Sorted descending by (percentage, score). Ties keep encounter order and
    still receive consecutive ranks, so ranks always run 1..n.
    """
    ranked = sorted(best_per_user(records).values(), key=_ranking_key, reverse=True)
    return [
        LeaderboardEntry(rank=position, record=record)
        for position, record in enumerate(_apply_limit(ranked, limit), start=1)
    ]


def list_scores(records: Iterable[ScoreRecord], limit: Optional[int] = None) -> List[ScoreRecord]:
    """All records, highest score first, most recent first among equal scores."""
    ordered = sorted(records, key=lambda record: (record.score, record.date), reverse=True)
    return _apply_limit(ordered, limit)


def count_users(records: Iterable[ScoreRecord]) -> int:
    """Number of distinct players."""
    return len({record.username for record in records})


def stats(records: Iterable[ScoreRecord]) -> QuizStats:
    """Aggregate statistics on percentages; all zeros for no records."""
    records = list(records)
    if not records:
        return QuizStats()

    percentages = [record.percentage for record in records]
    return QuizStats(
        total_quizzes=len(records),
        unique_users=count_users(records),
        average_score=_round_half_up(sum(percentages) / len(percentages)),
        highest_score=max(percentages),
        lowest_score=min(percentages)
    )
