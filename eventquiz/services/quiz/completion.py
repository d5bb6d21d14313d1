from flask import current_app

from eventquiz import db
from eventquiz.models import Player
from . import leaderboard, ranking, stats


def record_completion(game_id: int, player_id: int, standing: dict) -> int:
    """Apply a player's finish to the live store and return the rank they finished at.

    The player record itself was already finalized by the answer commit.
    Here: stats counters, the point-in-time rank (persisted on the player,
    never recomputed), then the recent-completions feed. Runs inside the
    caller's transaction.
    """
    stats.record_finish(game_id, standing['score'], standing['accuracy'], standing['total_time_ms'])

    finished_standing = dict(standing, finished_at=leaderboard.parse_ts(standing.get('finished_at')))
    rank = ranking.rank(game_id, standing['visitor_id'], standing=finished_standing)
    leaderboard.set_rank(game_id, standing['visitor_id'], rank)

    player = db.session.get(Player, player_id)
    if player is not None and player.final_rank is None:
        player.final_rank = rank

    leaderboard.push_recent_completion(game_id, standing, rank)
    current_app.logger.info(
        f"[finish] game={game_id} player={standing['visitor_id']} score={standing['score']} rank={rank}"
    )
    return rank
