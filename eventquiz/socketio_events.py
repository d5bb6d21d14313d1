from flask import current_app
from flask_socketio import join_room, leave_room, emit
from eventquiz import socketio
from eventquiz.models import Game
from eventquiz.services.quiz import leaderboard, stats


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_game(data):
    """Display clients join a game room; they get the current board right away, then pushes."""
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = f"game:{game_code.upper()}"
    join_room(room)
    emit('joined', {'room': room})

    game = Game.query.filter_by(game_code=game_code.upper()).first()
    if game is None:
        return
    limit = int(current_app.config.get('MAX_LEADERBOARD_ENTRIES', 100))
    branch_id = (data or {}).get('branch_id')
    emit('leaderboard_snapshot', {
        'game_code': game.game_code,
        'phase': game.phase,
        'leaderboard': leaderboard.ranked_entries(game.id, branch_id=branch_id)[:limit],
        'recent_completions': leaderboard.recent_completions(game.id),
        'stats': stats.snapshot(game.id),
    })


def handle_leave_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = f"game:{game_code.upper()}"
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_game', handle_join_game, namespace='/ws')
    socketio.on_event('leave_game', handle_leave_game, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_game', handle_join_game, namespace='/')
        socketio.on_event('leave_game', handle_leave_game, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
