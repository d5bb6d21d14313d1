"""Live leaderboard mirror.

A denormalized projection of every player's standing, kept in the ``live``
bind for read-heavy display clients. It is a cache: the player records are
the source of truth and ``reconcile`` rebuilds the mirror from them.
"""

from datetime import datetime
from typing import List, Optional

from flask import current_app

from eventquiz import db
from eventquiz.models import (
    Game, Player, LeaderboardEntry, RecentCompletion, GameStats, OutboxEvent, ProcessedEvent, utcnow,
)
from . import ranking, stats
from .records import PLAYER_FINISHED, standing_payload
from .scoring import round_half_up


def parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def upsert_entry(game_id: int, standing: dict, event_id: int = 0) -> LeaderboardEntry:
    """Overwrite the player's entry (last write wins per player).

    An event older than the one that produced the current entry is ignored,
    so a delayed retry cannot roll a standing backwards.
    """
    entry = db.session.get(LeaderboardEntry, (game_id, standing['visitor_id']))
    if entry is None:
        entry = LeaderboardEntry(game_id=game_id, visitor_id=standing['visitor_id'])
        db.session.add(entry)
    elif event_id and entry.last_event_id > event_id:
        return entry
    entry.nickname = standing['nickname']
    entry.avatar_type = standing.get('avatar_type')
    entry.avatar_value = standing.get('avatar_value')
    entry.branch_id = standing.get('branch_id')
    entry.score = standing['score']
    entry.correct_answers = standing['correct_answers']
    entry.total_questions = standing['total_questions']
    entry.accuracy = standing['accuracy']
    entry.max_streak = standing['max_streak']
    entry.total_time_ms = standing['total_time_ms']
    entry.is_finished = bool(standing['is_finished'])
    entry.finished_at = parse_ts(standing.get('finished_at'))
    entry.last_event_id = max(entry.last_event_id or 0, event_id)
    entry.updated_at = utcnow()
    return entry


def set_rank(game_id: int, visitor_id: str, rank: int) -> None:
    entry = db.session.get(LeaderboardEntry, (game_id, visitor_id))
    if entry is not None:
        entry.rank = rank


def push_recent_completion(game_id: int, standing: dict, rank: int, limit: Optional[int] = None) -> None:
    """Add to the newest-first feed, evicting the oldest beyond capacity."""
    if limit is None:
        limit = int(current_app.config.get('RECENT_COMPLETIONS_LIMIT', 20))
    db.session.add(RecentCompletion(
        game_id=game_id,
        visitor_id=standing['visitor_id'],
        nickname=standing['nickname'],
        avatar_value=standing.get('avatar_value'),
        score=standing['score'],
        rank=rank,
        accuracy=standing['accuracy'],
        finished_at=parse_ts(standing.get('finished_at')) or utcnow(),
    ))
    db.session.flush()
    stale = (
        RecentCompletion.query.filter_by(game_id=game_id)
        .order_by(RecentCompletion.finished_at.desc(), RecentCompletion.id.desc())
        .offset(limit)
        .all()
    )
    for row in stale:
        db.session.delete(row)


def recent_completions(game_id: int, limit: Optional[int] = None) -> List[dict]:
    query = (
        RecentCompletion.query.filter_by(game_id=game_id)
        .order_by(RecentCompletion.finished_at.desc(), RecentCompletion.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return [row.to_dict() for row in query.all()]


def ranked_entries(game_id: int, branch_id: Optional[str] = None) -> List[dict]:
    """All entries best-first with ranks filled in; a branch filter re-ranks within the branch."""
    query = LeaderboardEntry.query.filter_by(game_id=game_id)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    return [entry.to_dict(rank=rank) for entry, rank in ranking.assign_ranks(query.all())]


def branch_summaries(game: Game) -> List[dict]:
    summaries = []
    for branch in game.branches:
        if not branch.is_active:
            continue
        entries = LeaderboardEntry.query.filter_by(game_id=game.id, branch_id=branch.id).all()
        scores = [e.score for e in entries]
        summaries.append({
            'branch_id': branch.id,
            'name': branch.name,
            'players': len(entries),
            'avg_score': round_half_up(sum(scores) / len(scores)) if scores else 0,
            'top_score': max(scores, default=0),
        })
    return summaries


def clear(game_id: int) -> None:
    LeaderboardEntry.query.filter_by(game_id=game_id).delete()
    RecentCompletion.query.filter_by(game_id=game_id).delete()
    GameStats.query.filter_by(game_id=game_id).delete()


def reconcile(game: Game) -> int:
    """Re-derive every leaderboard entry and the stats counters from the player records.

    Events still pending in the outbox are already reflected in the records,
    so they are marked applied in the same commit and never counted twice.
    A finish absorbed this way gets its rank and feed row here. Ranks that
    were already recorded are point-in-time values and are left alone.
    """
    pending = (
        OutboxEvent.query.filter(OutboxEvent.game_id == game.id, OutboxEvent.processed_at.is_(None))
        .order_by(OutboxEvent.id)
        .all()
    )
    total_questions = sum(1 for q in game.questions if q.is_active)
    players = Player.query.filter_by(game_id=game.id).all()
    LeaderboardEntry.query.filter_by(game_id=game.id).delete()
    db.session.flush()
    count = 0
    for player in players:
        if not player.answers:
            continue
        upsert_entry(game.id, standing_payload(player, total_questions))
        count += 1
    db.session.flush()
    ranks = {}
    for entry, rank in ranking.assign_ranks(LeaderboardEntry.query.filter_by(game_id=game.id).all()):
        entry.rank = rank
        ranks[entry.visitor_id] = rank
    stats.rebuild(game)

    now = utcnow()
    finished_ids = {e.player_id for e in pending if e.kind == PLAYER_FINISHED}
    for event in pending:
        if not already_applied(event.id):
            mark_applied(event.id)
        event.processed_at = now
    for player in players:
        if player.id in finished_ids and player.final_rank is None:
            player.final_rank = ranks.get(player.visitor_id)
            push_recent_completion(game.id, standing_payload(player, total_questions), player.final_rank)
    db.session.commit()
    current_app.logger.info(
        f"[reconcile] game={game.id} entries={count} players={len(players)} absorbed={len(pending)}"
    )
    return count


def already_applied(event_id: int) -> bool:
    return db.session.get(ProcessedEvent, event_id) is not None


def mark_applied(event_id: int) -> None:
    db.session.add(ProcessedEvent(event_id=event_id, processed_at=utcnow()))
