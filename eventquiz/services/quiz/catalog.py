import json
import random
from typing import Dict, List, Optional

from flask import current_app

from eventquiz import db
from eventquiz.models import Game, Question, AnswerOption, Branch, PHASES, utcnow
from .errors import CatalogMisconfigured
from .scoring import ScoringConfig, SCORING_MODES

# Phases during which answers are accepted (players may start as soon as they register)
ANSWERABLE_PHASES = ('registration', 'playing')
REGISTRATION_PHASES = ('registration', 'playing')


class QuestionCatalog:
    """Read-only view of a game's question set, built once per request."""

    def __init__(self, game: Game):
        self.game = game
        self.active_questions: List[Question] = [q for q in game.questions if q.is_active]
        self._by_id: Dict[str, Question] = {q.id: q for q in self.active_questions}
        self.scoring_config = scoring_config_for(game)

    @property
    def active_count(self) -> int:
        return len(self.active_questions)

    def get_active(self, question_id: str) -> Optional[Question]:
        return self._by_id.get(question_id)

    def correct_answer_id(self, question: Question) -> str:
        for option in question.answers:
            if option.is_correct:
                return option.id
        raise CatalogMisconfigured(f"Question {question.id} has no correct answer defined")

    def config_for(self, question: Question) -> ScoringConfig:
        return self.scoring_config.with_base_points(question.points)

    def questions_for_player(self, shuffle_questions=None, shuffle_answers=None, rng=None):
        """Active questions with correctness stripped, optionally shuffled."""
        rng = rng or random
        if shuffle_questions is None:
            shuffle_questions = self.game.shuffle_questions
        if shuffle_answers is None:
            shuffle_answers = self.game.shuffle_answers
        result = [q.to_dict(include_correct=False) for q in self.active_questions]
        if shuffle_questions:
            rng.shuffle(result)
        if shuffle_answers:
            for q in result:
                rng.shuffle(q['answers'])
        return result


def scoring_config_for(game: Game) -> ScoringConfig:
    return ScoringConfig(
        mode=game.scoring_mode,
        base_points=game.base_points,
        time_bonus_max=game.time_bonus_max,
        streak_multipliers=tuple(game.multipliers()),
    )


def _default_multipliers():
    raw = current_app.config.get('DEFAULT_STREAK_MULTIPLIERS') or ''
    return [float(v) for v in str(raw).split(',') if v.strip()]


def _setting(values, key, default):
    value = values.get(key)
    return default if value is None else value


def create_game(data) -> Game:
    """Create a game and its question set from a validated ``GameCreate`` or a plain dict."""
    if hasattr(data, 'model_dump'):
        data = data.model_dump()
    cfg = current_app.config
    scoring = data.get('scoring') or {}
    mode = scoring.get('mode') or cfg.get('DEFAULT_SCORING_MODE', 'time_and_streak')
    if mode not in SCORING_MODES:
        raise ValueError(f"Unknown scoring mode: {mode!r}")
    multipliers = scoring.get('streak_multipliers') or _default_multipliers()
    default_limit = int(data.get('default_time_limit_sec') or cfg.get('DEFAULT_TIME_LIMIT_SEC', 30))

    game = Game(
        title=data.get('title'),
        phase=data.get('phase') or 'registration',
        scoring_mode=mode,
        base_points=int(_setting(scoring, 'base_points', cfg.get('DEFAULT_BASE_POINTS', 100))),
        time_bonus_max=int(_setting(scoring, 'time_bonus_max', cfg.get('DEFAULT_TIME_BONUS_MAX', 50))),
        streak_multipliers=json.dumps([float(m) for m in multipliers]),
        default_time_limit_sec=default_limit,
        shuffle_questions=bool(data.get('shuffle_questions', False)),
        shuffle_answers=bool(data.get('shuffle_answers', True)),
        branches_enabled=bool(data.get('branches_enabled', False)),
    )
    for idx, q in enumerate(data.get('questions') or []):
        question = Question(
            text=q['text'],
            time_limit_sec=int(q.get('time_limit_sec') or default_limit),
            points=q.get('points'),
            order=idx,
            is_active=q.get('is_active', True),
        )
        if q.get('id'):
            question.id = q['id']
        for a_idx, a in enumerate(q.get('answers') or []):
            option = AnswerOption(text=a['text'], is_correct=bool(a.get('is_correct', False)), order=a_idx)
            if a.get('id'):
                option.id = a['id']
            question.answers.append(option)
        game.questions.append(question)
    for idx, b in enumerate(data.get('branches') or []):
        game.branches.append(Branch(id=b['id'], name=b.get('name') or b['id'],
                                    is_active=b.get('is_active', True), order=idx))
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(
        f"[game-create] game={game.id} code={game.game_code} mode={game.scoring_mode} questions={len(game.questions)}"
    )
    return game


def set_phase(game: Game, phase: str) -> Game:
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase!r}")
    prev = game.phase
    game.phase = phase
    if phase == 'playing':
        game.game_started_at = utcnow()
    elif phase in ('finished', 'results'):
        game.game_ended_at = utcnow()
    elif phase == 'registration':
        game.last_reset_at = utcnow()
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(f"[phase] game={game.id} {prev} -> {phase}")
    return game


def is_valid_branch(game: Game, branch_id: Optional[str]) -> bool:
    return any(b.id == branch_id and b.is_active for b in game.branches)
