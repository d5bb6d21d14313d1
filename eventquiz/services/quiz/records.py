import json
import re
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from eventquiz import db
from eventquiz.models import Game, Player, AnswerRecord, OutboxEvent, utcnow
from .errors import ErrorCode, SubmissionError
from .scoring import accuracy_percent

# Status only moves forward
_TRANSITIONS = {
    'registered': ('playing', 'finished'),
    'playing': ('playing', 'finished'),
    'finished': (),
}

PLAYER_REGISTERED = 'player_registered'
PLAYER_SCORED = 'player_scored'
PLAYER_FINISHED = 'player_finished'


def get_player(game: Game, visitor_id: str) -> Optional[Player]:
    return Player.query.filter_by(game_id=game.id, visitor_id=visitor_id).first()


def load_player_for_update(game: Game, visitor_id: str) -> Optional[Player]:
    """Fetch the player row, locking it until commit where the database supports row locks."""
    return (
        Player.query.filter_by(game_id=game.id, visitor_id=visitor_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    digits = re.sub(r'\D', '', phone)
    return digits or None


def register_player(game: Game, registration) -> Player:
    """Create the initial player record, or return the existing one so a player can resume.

    A player (or phone number) that already completed this game is rejected.
    """
    existing = get_player(game, registration.player_id)
    if existing:
        if existing.has_completed:
            raise SubmissionError(ErrorCode.ALREADY_PLAYED, 'You have already played this quiz')
        return existing

    phone = normalize_phone(registration.phone)
    if phone and Player.query.filter_by(game_id=game.id, phone=phone, has_completed=True).first():
        raise SubmissionError(ErrorCode.ALREADY_PLAYED, 'This phone number has already been used')

    player = Player(
        game_id=game.id,
        visitor_id=registration.player_id,
        branch_id=registration.branch_id if game.branches_enabled else None,
        nickname=registration.nickname,
        avatar_type=registration.avatar_type,
        avatar_value=registration.avatar_value,
        phone=phone,
        consent=registration.consent,
        status='registered',
        registered_at=utcnow(),
    )
    db.session.add(player)
    try:
        db.session.flush()
        _emit(game.id, player.id, PLAYER_REGISTERED, {'visitor_id': player.visitor_id})
        db.session.commit()
    except IntegrityError:
        # Concurrent registration of the same visitor: the other request won
        db.session.rollback()
        existing = get_player(game, registration.player_id)
        if existing is None:
            raise
        return existing
    current_app.logger.info(f"[register] game={game.id} player={player.visitor_id} branch={player.branch_id}")
    return player


def _emit(game_id, player_id, kind, payload):
    db.session.add(OutboxEvent(game_id=game_id, player_id=player_id, kind=kind,
                               payload=json.dumps(payload)))


def standing_payload(player: Player, total_questions: int) -> dict:
    """Leaderboard-relevant snapshot of a player, carried in outbox events."""
    return {
        'visitor_id': player.visitor_id,
        'nickname': player.nickname,
        'avatar_type': player.avatar_type,
        'avatar_value': player.avatar_value,
        'branch_id': player.branch_id,
        'score': player.current_score,
        'correct_answers': player.correct_answers,
        'total_questions': total_questions,
        'accuracy': accuracy_percent(player.correct_answers, total_questions),
        'max_streak': player.max_streak,
        'total_time_ms': player.total_time_ms,
        'is_finished': player.status == 'finished',
        'finished_at': player.finished_at.isoformat() if player.finished_at else None,
    }


def commit_answer(player: Player, record: AnswerRecord, is_game_complete: bool, total_questions: int) -> None:
    """Append the answer, fold it into the aggregates and advance the status, atomically.

    The outbox events for the live store are written in the same transaction,
    so a committed answer always has its side effects owed. Raises
    ``SubmissionError(ALREADY_ANSWERED)`` if a concurrent submission for the
    same question won the race; nothing is applied in that case.
    """
    next_status = 'finished' if is_game_complete else 'playing'
    if next_status not in _TRANSITIONS.get(player.status, ()):
        raise SubmissionError(ErrorCode.ALREADY_ANSWERED, 'Quiz already completed')

    now = record.answered_at or utcnow()
    first_answer = player.started_at is None

    player.answers.append(record)
    player.current_score += record.total_points
    player.current_streak = record.streak_at_answer
    player.max_streak = max(player.max_streak, record.streak_at_answer)
    if record.is_correct:
        player.correct_answers += 1
    else:
        player.wrong_answers += 1
    player.total_time_ms += record.response_time_ms
    player.current_question_index = record.question_index + 1
    player.status = next_status
    if first_answer:
        player.started_at = now
    if is_game_complete:
        player.finished_at = now
        player.has_completed = True
        player.play_count += 1

    db.session.add(player)
    try:
        db.session.flush()
        standing = standing_payload(player, total_questions)
        _emit(player.game_id, player.id, PLAYER_SCORED,
              {'standing': standing, 'started': first_answer})
        if is_game_complete:
            _emit(player.game_id, player.id, PLAYER_FINISHED, {'standing': standing})
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SubmissionError(ErrorCode.ALREADY_ANSWERED, 'Question already answered')
