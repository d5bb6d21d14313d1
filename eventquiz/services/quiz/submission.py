from dataclasses import dataclass
from typing import Optional

from flask import current_app

from eventquiz import db
from eventquiz.models import Game, Player, AnswerRecord, utcnow
from eventquiz.schemas import AnswerSubmission
from . import ranking
from .catalog import QuestionCatalog, ANSWERABLE_PHASES
from .errors import ErrorCode, SubmissionError
from .outbox import schedule_dispatch
from .records import load_player_for_update, commit_answer
from .scoring import score_answer, accuracy_percent


@dataclass
class AnswerOutcome:
    is_correct: bool
    correct_answer_id: str
    base_points: int
    time_bonus: int
    streak_multiplier: float
    total_points: int
    new_total_score: int
    new_streak: int
    is_game_complete: bool
    rank: Optional[int] = None

    def to_dict(self):
        data = {
            'success': True,
            'isCorrect': self.is_correct,
            'correctAnswerId': self.correct_answer_id,
            'basePoints': self.base_points,
            'timeBonus': self.time_bonus,
            'streakMultiplier': self.streak_multiplier,
            'totalPoints': self.total_points,
            'newTotalScore': self.new_total_score,
            'newStreak': self.new_streak,
            'isGameComplete': self.is_game_complete,
        }
        if self.is_game_complete:
            data['rank'] = self.rank
        return data


def submit_answer(submission: AnswerSubmission) -> AnswerOutcome:
    """Score one answer and commit it to the player's record.

    Preconditions are checked in order and each raises ``SubmissionError``
    with its own code before anything is written. Once the commit succeeds
    the outcome is authoritative: the live leaderboard and stats are updated
    afterwards, best-effort, and their failures are only logged.
    """
    game = Game.query.filter_by(game_code=submission.game_id.upper()).first()
    if game is None:
        raise SubmissionError(ErrorCode.GAME_NOT_ACTIVE, 'Quiz not found', status=404)
    if game.phase not in ANSWERABLE_PHASES:
        raise SubmissionError(ErrorCode.GAME_NOT_ACTIVE, 'Quiz is not active')

    player = load_player_for_update(game, submission.player_id)
    if player is None:
        raise SubmissionError(ErrorCode.PLAYER_NOT_FOUND, 'Player not found', status=404)
    if player.status == 'finished' or player.has_completed:
        current_app.logger.info(f"[answer-reject] game={game.id} player={player.visitor_id} already finished")
        raise SubmissionError(ErrorCode.ALREADY_ANSWERED, 'Quiz already completed')

    catalog = QuestionCatalog(game)
    question = catalog.get_active(submission.question_id)
    if question is None:
        raise SubmissionError(ErrorCode.QUESTION_NOT_FOUND, 'Question not found', status=404)

    if submission.question_id in player.answered_question_ids():
        current_app.logger.info(
            f"[answer-reject] game={game.id} player={player.visitor_id} question={question.id} duplicate"
        )
        raise SubmissionError(ErrorCode.ALREADY_ANSWERED, 'Question already answered')

    # Server-authoritative correctness; raises CatalogMisconfigured on a broken question
    correct_answer_id = catalog.correct_answer_id(question)
    is_correct = submission.answer_id == correct_answer_id

    config = catalog.config_for(question)
    breakdown = score_answer(
        config.mode,
        is_correct,
        submission.response_time_ms,
        question.time_limit_sec * 1000,
        player.current_streak,
        config,
    )

    record = AnswerRecord(
        question_id=question.id,
        question_index=submission.question_index,
        answer_id=submission.answer_id,
        is_correct=is_correct,
        response_time_ms=submission.response_time_ms,
        base_points=breakdown.base_points,
        time_bonus=breakdown.time_bonus,
        streak_multiplier=breakdown.streak_multiplier,
        total_points=breakdown.total_points,
        streak_at_answer=breakdown.new_streak,
        answered_at=utcnow(),
    )
    total_questions = catalog.active_count
    is_game_complete = len(player.answers) + 1 >= total_questions

    game_id, player_pk, visitor_id = game.id, player.id, player.visitor_id
    commit_answer(player, record, is_game_complete, total_questions)
    current_app.logger.info(
        f"[answer] game={game_id} player={visitor_id} question={record.question_id} "
        f"correct={is_correct} points={breakdown.total_points} score={player.current_score} "
        f"complete={is_game_complete}"
    )

    outcome = AnswerOutcome(
        is_correct=is_correct,
        correct_answer_id=correct_answer_id,
        base_points=breakdown.base_points,
        time_bonus=breakdown.time_bonus,
        streak_multiplier=breakdown.streak_multiplier,
        total_points=breakdown.total_points,
        new_total_score=player.current_score,
        new_streak=breakdown.new_streak,
        is_game_complete=is_game_complete,
    )
    standing = {
        'score': player.current_score,
        'accuracy': accuracy_percent(player.correct_answers, total_questions),
        'total_time_ms': player.total_time_ms,
        'finished_at': player.finished_at,
    }

    # Past the durability boundary: nothing below may fail the request
    schedule_dispatch(current_app._get_current_object(), game_id, player_pk)

    if is_game_complete:
        outcome.rank = _final_rank(game_id, player_pk, visitor_id, standing)
    return outcome


def _final_rank(game_id, player_pk, visitor_id, standing):
    """Rank recorded at completion; falls back to ranking the committed result against the mirror."""
    try:
        player = db.session.get(Player, player_pk, populate_existing=True)
        if player is not None and player.final_rank is not None:
            return player.final_rank
        return ranking.rank(game_id, visitor_id, standing=standing)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[rank-fail] game={game_id} player={visitor_id}")
        return None
