"""Best-effort delivery of committed answers to the live store.

The answer commit writes ``OutboxEvent`` rows next to the player update.
``dispatch_pending`` applies them to the leaderboard mirror and stats, one
transaction per event. A failing event is rolled back, logged and left
pending with its attempt count bumped; it never reaches the caller. The
live store keeps a ledger of applied event ids, so re-delivering an event
is a no-op.
"""

from typing import Optional, Set

from flask import current_app

from eventquiz import db, socketio
from eventquiz.models import Game, OutboxEvent, utcnow
from . import completion, leaderboard, stats
from .records import PLAYER_REGISTERED, PLAYER_SCORED, PLAYER_FINISHED


def _apply(event: OutboxEvent) -> Optional[dict]:
    """Apply one event to the live store; returns a notification for display clients, if any."""
    data = event.data()
    if event.kind == PLAYER_REGISTERED:
        stats.record_registration(event.game_id)
        return None
    if event.kind == PLAYER_SCORED:
        leaderboard.upsert_entry(event.game_id, data['standing'], event_id=event.id)
        stats.record_answer(event.game_id, started=bool(data.get('started')))
        return {'name': 'leaderboard_update'}
    if event.kind == PLAYER_FINISHED:
        rank = completion.record_completion(event.game_id, event.player_id, data['standing'])
        return {'name': 'player_finished', 'player_id': data['standing']['visitor_id'], 'rank': rank}
    raise ValueError(f"Unknown outbox event kind: {event.kind!r}")


def _record_failure(event_id: int, exc: Exception) -> None:
    try:
        event = db.session.get(OutboxEvent, event_id)
        if event is None:
            return
        event.attempts = (event.attempts or 0) + 1
        event.last_error = f"{type(exc).__name__}: {exc}"[:1000]
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[outbox-fail] event={event_id} could not record failure")


def dispatch_pending(game_id: Optional[int] = None, player_id: Optional[int] = None,
                     limit: Optional[int] = None) -> int:
    """Apply pending events in commit order; returns how many were applied.

    Once an event for a player fails, that player's later events wait for the
    next run so their standing is never applied out of order.
    """
    max_attempts = int(current_app.config.get('OUTBOX_MAX_ATTEMPTS', 5))
    query = OutboxEvent.query.filter(OutboxEvent.processed_at.is_(None), OutboxEvent.attempts < max_attempts)
    if game_id is not None:
        query = query.filter_by(game_id=game_id)
    if player_id is not None:
        query = query.filter_by(player_id=player_id)
    query = query.order_by(OutboxEvent.id)
    if limit:
        query = query.limit(limit)
    pending = [(e.id, e.game_id, e.player_id) for e in query.all()]

    applied = 0
    blocked: Set[int] = set()
    notices = {}
    for event_id, event_game_id, event_player_id in pending:
        if event_player_id is not None and event_player_id in blocked:
            continue
        try:
            event = db.session.get(OutboxEvent, event_id)
            notice = None
            if not leaderboard.already_applied(event_id):
                notice = _apply(event)
                leaderboard.mark_applied(event_id)
            event.processed_at = utcnow()
            event.attempts = (event.attempts or 0) + 1
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception(
                f"[outbox-fail] event={event_id} game={event_game_id} player={event_player_id}"
            )
            _record_failure(event_id, exc)
            if event_player_id is not None:
                blocked.add(event_player_id)
            continue
        applied += 1
        if notice:
            notices.setdefault(event_game_id, []).append(notice)

    for gid, items in notices.items():
        _notify(gid, items)
    return applied


def _notify(game_id: int, notices) -> None:
    game = db.session.get(Game, game_id)
    if game is None:
        return
    room = f"game:{game.game_code}"
    try:
        if any(n['name'] == 'leaderboard_update' for n in notices):
            socketio.emit('leaderboard_update', {'game_code': game.game_code}, to=room, namespace='/ws')
        for n in notices:
            if n['name'] == 'player_finished':
                socketio.emit('player_finished',
                              {'game_code': game.game_code, 'player_id': n['player_id'], 'rank': n['rank']},
                              to=room, namespace='/ws')
    except Exception:
        current_app.logger.exception(f"[notify-fail] game={game_id}")


def schedule_dispatch(app, game_id: int, player_id: Optional[int] = None) -> None:
    """Apply this player's pending events without letting a failure reach the request.

    Background mode (the default) hands the work to a Socket.IO background
    task so the answer response never waits on the live store; inline mode
    runs it right away.
    """
    def _worker(gid: int, pid: Optional[int]):
        with app.app_context():
            try:
                dispatch_pending(game_id=gid, player_id=pid)
            except Exception:
                db.session.rollback()
                app.logger.exception(f"[outbox-fail] dispatch aborted game={gid} player={pid}")

    if app.config.get('OUTBOX_DISPATCH', 'background') == 'background':
        socketio.start_background_task(_worker, game_id, player_id)
        return
    try:
        dispatch_pending(game_id=game_id, player_id=player_id)
    except Exception:
        db.session.rollback()
        app.logger.exception(f"[outbox-fail] dispatch aborted game={game_id} player={player_id}")
