from flask import Blueprint, jsonify, request, current_app
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from eventquiz import db, socketio
from eventquiz.models import Game, Player, OutboxEvent, ProcessedEvent
from eventquiz.schemas import AnswerSubmission, GameCreate, PhaseChange, PlayerRegistration, validation_message
from eventquiz.services.quiz import leaderboard, stats
from eventquiz.services.quiz.catalog import (
    QuestionCatalog, create_game, set_phase, is_valid_branch, REGISTRATION_PHASES,
)
from eventquiz.services.quiz.errors import ErrorCode, SubmissionError, CatalogMisconfigured
from eventquiz.services.quiz.outbox import schedule_dispatch
from eventquiz.services.quiz.records import register_player, get_player
from eventquiz.services.quiz.submission import submit_answer


quiz = Blueprint('quiz', __name__)


def _validation_error(exc):
    return jsonify({
        'success': False,
        'error': validation_message(exc),
        'errorCode': ErrorCode.VALIDATION_ERROR,
    }), 400


def _get_game_or_404(game_code):
    return Game.query.filter_by(game_code=game_code.upper()).first_or_404()


@quiz.errorhandler(SubmissionError)
def handle_submission_error(exc):
    return jsonify(exc.to_dict()), exc.status


@quiz.errorhandler(CatalogMisconfigured)
def handle_catalog_misconfigured(exc):
    db.session.rollback()
    current_app.logger.error(f"[catalog] {exc}")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


@quiz.errorhandler(Exception)
def handle_unexpected(exc):
    if isinstance(exc, HTTPException):
        return jsonify({'success': False, 'error': exc.description}), exc.code
    db.session.rollback()
    current_app.logger.exception(f"[error] {request.method} {request.path}")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


@quiz.route('/create', methods=['POST'])
def create():
    try:
        payload = GameCreate.model_validate(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return _validation_error(exc)
    game = create_game(payload)
    return jsonify({
        'message': 'New game created!',
        'game_code': game.game_code,
        'questions': [q.to_dict(include_correct=True) for q in game.questions],
    }), 201


@quiz.route('/<string:game_code>', methods=['GET'])
def get_game(game_code):
    game = _get_game_or_404(game_code)
    return jsonify(game.to_dict())


@quiz.route('/<string:game_code>/phase', methods=['POST'])
def change_phase(game_code):
    game = _get_game_or_404(game_code)
    try:
        payload = PhaseChange.model_validate(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return _validation_error(exc)
    set_phase(game, payload.phase)
    socketio.emit('state_update', {'game_code': game.game_code, 'phase': game.phase},
                  to=f"game:{game.game_code}", namespace='/ws')
    return jsonify(game.to_dict())


@quiz.route('/<string:game_code>/register', methods=['POST'])
def register(game_code):
    game = _get_game_or_404(game_code)
    try:
        payload = PlayerRegistration.model_validate(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return _validation_error(exc)

    if not 2 <= len(payload.nickname) <= 20:
        raise SubmissionError(ErrorCode.NICKNAME_INVALID, 'Nickname must be 2-20 characters')
    if game.phase not in REGISTRATION_PHASES:
        raise SubmissionError(ErrorCode.GAME_NOT_OPEN, 'Quiz is not open for registration')
    if game.branches_enabled and payload.branch_id and not is_valid_branch(game, payload.branch_id):
        raise SubmissionError(ErrorCode.INVALID_BRANCH, 'Invalid branch')

    player = register_player(game, payload)
    schedule_dispatch(current_app._get_current_object(), game.id, player.id)
    catalog = QuestionCatalog(game)
    return jsonify({
        'success': True,
        'player': player.to_dict(),
        'questions': catalog.questions_for_player(),
    })


@quiz.route('/answer', methods=['POST'])
def answer():
    try:
        payload = AnswerSubmission.model_validate(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return _validation_error(exc)
    outcome = submit_answer(payload)
    return jsonify(outcome.to_dict())


@quiz.route('/<string:game_code>/leaderboard', methods=['GET'])
def get_leaderboard(game_code):
    game = _get_game_or_404(game_code)
    branch_id = request.args.get('branchId') or None
    player_id = request.args.get('playerId') or None
    try:
        limit = int(request.args.get('limit') or current_app.config.get('MAX_LEADERBOARD_ENTRIES', 100))
    except ValueError:
        limit = 0
    if limit < 1:
        return jsonify({'success': False, 'error': 'limit must be a positive integer',
                        'errorCode': ErrorCode.VALIDATION_ERROR}), 400

    entries = leaderboard.ranked_entries(game.id, branch_id=branch_id)
    player_entry = None
    if player_id:
        player_entry = next((e for e in entries if e['player_id'] == player_id), None)
    snapshot = stats.snapshot(game.id)
    return jsonify({
        'success': True,
        'leaderboard': entries[:limit],
        'total_players': snapshot['total_players'] or len(entries),
        'player_rank': player_entry['rank'] if player_entry else None,
        'player_entry': player_entry if player_entry and player_entry['rank'] > limit else None,
        'last_updated': snapshot['last_updated'],
    })


@quiz.route('/<string:game_code>/recent', methods=['GET'])
def get_recent(game_code):
    game = _get_game_or_404(game_code)
    return jsonify({'success': True, 'recent_completions': leaderboard.recent_completions(game.id)})


@quiz.route('/<string:game_code>/stats', methods=['GET'])
def get_stats(game_code):
    game = _get_game_or_404(game_code)
    payload = stats.snapshot(game.id)
    payload['branches'] = leaderboard.branch_summaries(game) if game.branches_enabled else []
    return jsonify(payload)


@quiz.route('/<string:game_code>/players', methods=['GET'])
def list_players(game_code):
    game = _get_game_or_404(game_code)
    players = Player.query.filter_by(game_id=game.id).order_by(Player.id).all()
    return jsonify([p.to_dict() for p in players])


@quiz.route('/<string:game_code>/players/<string:player_id>', methods=['GET'])
def get_player_record(game_code, player_id):
    game = _get_game_or_404(game_code)
    player = get_player(game, player_id)
    if player is None:
        raise SubmissionError(ErrorCode.PLAYER_NOT_FOUND, 'Player not found', status=404)
    return jsonify(player.to_dict(include_answers=True))


@quiz.route('/<string:game_code>/sync-leaderboard', methods=['POST'])
def sync_leaderboard(game_code):
    game = _get_game_or_404(game_code)
    count = leaderboard.reconcile(game)
    socketio.emit('leaderboard_update', {'game_code': game.game_code},
                  to=f"game:{game.game_code}", namespace='/ws')
    return jsonify({'success': True, 'entries': count})


@quiz.route('/<string:game_code>/reset', methods=['POST'])
def reset(game_code):
    game = _get_game_or_404(game_code)
    event_ids = [e.id for e in OutboxEvent.query.filter_by(game_id=game.id).all()]
    if event_ids:
        ProcessedEvent.query.filter(ProcessedEvent.event_id.in_(event_ids)).delete(synchronize_session=False)
    OutboxEvent.query.filter_by(game_id=game.id).delete()
    for player in Player.query.filter_by(game_id=game.id).all():
        db.session.delete(player)
    leaderboard.clear(game.id)
    db.session.commit()
    set_phase(game, 'registration')
    current_app.logger.info(f"[reset] game={game.id}")
    socketio.emit('state_update', {'game_code': game.game_code, 'phase': game.phase},
                  to=f"game:{game.game_code}", namespace='/ws')
    return jsonify({'success': True})
