"""Deterministic leaderboard ordering.

Score descending, then accuracy descending, then total time ascending
(faster wins), then finish time ascending (first to finish wins). Players
who have not finished sort after every finished player on that last key.
A player's rank is one plus the number of entries strictly ahead of them,
so fully tied players share a rank.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from eventquiz.models import LeaderboardEntry

_NOT_FINISHED = datetime.max

StandingKey = Tuple[int, int, int, datetime]


def standing_key(score: int, accuracy: int, total_time_ms: int,
                 finished_at: Optional[datetime]) -> StandingKey:
    """Smaller is better."""
    return (-int(score), -int(accuracy), int(total_time_ms), finished_at or _NOT_FINISHED)


def entry_key(entry) -> StandingKey:
    return standing_key(entry.score, entry.accuracy, entry.total_time_ms, entry.finished_at)


def rank_against(key: StandingKey, others: Iterable) -> int:
    return 1 + sum(1 for other in others if entry_key(other) < key)


def rank(game_id: int, visitor_id: str, standing: Optional[dict] = None,
         branch_id: Optional[str] = None) -> Optional[int]:
    """Rank of a player against the live mirror at this moment.

    ``standing`` (score, accuracy, total_time_ms, finished_at) lets the caller
    rank a freshly committed result even if the mirror has not caught up with
    it yet; otherwise the player's own mirror entry is used. Returns None when
    neither is available.
    """
    query = LeaderboardEntry.query.filter_by(game_id=game_id)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    entries = query.all()
    others = [e for e in entries if e.visitor_id != visitor_id]
    if standing is not None:
        key = standing_key(standing['score'], standing['accuracy'],
                           standing['total_time_ms'], standing.get('finished_at'))
    else:
        own = next((e for e in entries if e.visitor_id == visitor_id), None)
        if own is None:
            return None
        key = entry_key(own)
    return rank_against(key, others)


def assign_ranks(entries: List) -> List[Tuple[object, int]]:
    """Sort entries best-first and pair each with its rank (ties share a rank)."""
    ordered = sorted(entries, key=lambda e: (entry_key(e), e.visitor_id))
    ranked = []
    prev_key = None
    prev_rank = 0
    for idx, entry in enumerate(ordered):
        key = entry_key(entry)
        current = prev_rank if key == prev_key else idx + 1
        ranked.append((entry, current))
        prev_key, prev_rank = key, current
    return ranked
