from sqlalchemy import update, func

from eventquiz import db
from eventquiz.models import Game, GameStats, Player, utcnow
from .scoring import accuracy_percent, round_half_up


def _ensure_row(game_id: int) -> None:
    if db.session.get(GameStats, game_id) is None:
        db.session.add(GameStats(game_id=game_id))
        db.session.flush()


def _accumulate(game_id: int, **increments) -> None:
    """Add to counters with a single SQL UPDATE; concurrent writers never lose increments."""
    _ensure_row(game_id)
    values = {name: getattr(GameStats, name) + amount for name, amount in increments.items()}
    values['last_updated'] = utcnow()
    db.session.execute(
        update(GameStats).where(GameStats.game_id == game_id).values(**values)
        .execution_options(synchronize_session=False)
    )


def record_registration(game_id: int) -> None:
    _accumulate(game_id, players_registered=1)


def record_answer(game_id: int, started: bool = False) -> None:
    if started:
        _accumulate(game_id, total_answers=1, players_started=1)
    else:
        _accumulate(game_id, total_answers=1)


def record_finish(game_id: int, final_score: int, accuracy: int, total_time_ms: int) -> None:
    _accumulate(game_id, players_finished=1, sum_score=final_score,
                sum_accuracy=accuracy, sum_time_ms=total_time_ms)
    db.session.execute(
        update(GameStats)
        .where(GameStats.game_id == game_id, GameStats.top_score < final_score)
        .values(top_score=final_score)
        .execution_options(synchronize_session=False)
    )


def snapshot(game_id: int) -> dict:
    """Counters plus averages derived at read time."""
    row = db.session.get(GameStats, game_id, populate_existing=True)
    if row is None:
        row = GameStats(game_id=game_id, players_registered=0, players_started=0, players_finished=0,
                        total_answers=0, sum_score=0, sum_accuracy=0, sum_time_ms=0, top_score=0)
    finished = row.players_finished or 0
    return {
        'total_players': row.players_registered,
        'players_playing': max(0, (row.players_started or 0) - finished),
        'players_finished': finished,
        'total_answers': row.total_answers,
        'top_score': row.top_score,
        'avg_score': round_half_up(row.sum_score / finished) if finished else 0,
        'avg_accuracy': round(row.sum_accuracy / finished, 1) if finished else 0,
        'avg_time_ms': round_half_up(row.sum_time_ms / finished) if finished else 0,
        'last_updated': row.last_updated.isoformat() if row.last_updated else None,
    }


def rebuild(game: Game) -> None:
    """Recompute every counter from the player records (reconciliation)."""
    players = Player.query.filter_by(game_id=game.id).all()
    total_questions = sum(1 for q in game.questions if q.is_active)
    finished = [p for p in players if p.status == 'finished']
    row = db.session.get(GameStats, game.id)
    if row is None:
        row = GameStats(game_id=game.id)
        db.session.add(row)
    row.players_registered = len(players)
    row.players_started = sum(1 for p in players if p.started_at is not None)
    row.players_finished = len(finished)
    row.total_answers = db.session.query(func.count()).select_from(Player).join(Player.answers) \
        .filter(Player.game_id == game.id).scalar() or 0
    row.sum_score = sum(p.current_score for p in finished)
    row.sum_accuracy = sum(accuracy_percent(p.correct_answers, total_questions) for p in finished)
    row.sum_time_ms = sum(p.total_time_ms for p in finished)
    row.top_score = max((p.current_score for p in finished), default=0)
    row.last_updated = utcnow()
