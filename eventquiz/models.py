from eventquiz import db
from sqlalchemy import event
from eventquiz.services.quiz.scoring import format_streak_multiplier
from datetime import datetime, timezone
import json
import string
import random
import uuid

PHASES = ('registration', 'countdown', 'playing', 'finished', 'results')
PLAYER_STATUSES = ('registered', 'playing', 'finished')


def utcnow():
    """Naive UTC timestamp, comparable with values read back from the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id(prefix):
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def generate_game_code(length=4):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code


def _isoformat(value):
    return value.isoformat() if value else None


# ---- Primary record store ----

class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(4), unique=True, index=True)
    title = db.Column(db.String(128), nullable=True)
    phase = db.Column(db.String(32), default='registration', nullable=False)
    # Scoring session config
    scoring_mode = db.Column(db.String(32), nullable=False, default='time_and_streak')
    base_points = db.Column(db.Integer, nullable=False, default=100)
    time_bonus_max = db.Column(db.Integer, nullable=False, default=50)
    streak_multipliers = db.Column(db.Text, nullable=True)  # JSON-encoded list of floats
    default_time_limit_sec = db.Column(db.Integer, nullable=False, default=30)
    shuffle_questions = db.Column(db.Boolean, default=False, nullable=False)
    shuffle_answers = db.Column(db.Boolean, default=True, nullable=False)
    branches_enabled = db.Column(db.Boolean, default=False, nullable=False)
    game_started_at = db.Column(db.DateTime, nullable=True)
    game_ended_at = db.Column(db.DateTime, nullable=True)
    last_reset_at = db.Column(db.DateTime, nullable=True)

    questions = db.relationship('Question', back_populates='game', order_by='Question.order',
                                cascade='all, delete-orphan')
    branches = db.relationship('Branch', back_populates='game', order_by='Branch.order',
                               cascade='all, delete-orphan')
    players = db.relationship('Player', back_populates='game', lazy='dynamic')

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()

    def multipliers(self):
        try:
            values = json.loads(self.streak_multipliers) if self.streak_multipliers else []
        except ValueError:
            values = []
        return [float(v) for v in values]

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'title': self.title,
            'phase': self.phase,
            'scoring': {
                'mode': self.scoring_mode,
                'base_points': self.base_points,
                'time_bonus_max': self.time_bonus_max,
                'streak_multipliers': self.multipliers(),
            },
            'branches_enabled': self.branches_enabled,
            'branches': [b.to_dict() for b in self.branches if b.is_active],
            'active_questions': sum(1 for q in self.questions if q.is_active),
            'game_started_at': _isoformat(self.game_started_at),
            'game_ended_at': _isoformat(self.game_ended_at),
        }


class Question(db.Model):
    __tablename__ = 'question'
    # Public ids are scoped to their game; `pk` is the storage key
    __table_args__ = (db.UniqueConstraint('game_id', 'id', name='uq_question_game_id'),)
    pk = db.Column(db.Integer, primary_key=True)
    id = db.Column(db.String(64), nullable=False, default=lambda: generate_id('q'))
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    time_limit_sec = db.Column(db.Integer, nullable=False, default=30)
    points = db.Column(db.Integer, nullable=True)  # overrides the session base points when set
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    game = db.relationship('Game', back_populates='questions')
    answers = db.relationship('AnswerOption', back_populates='question', order_by='AnswerOption.order',
                              cascade='all, delete-orphan')

    def to_dict(self, include_correct=False):
        return {
            'id': self.id,
            'text': self.text,
            'time_limit_sec': self.time_limit_sec,
            'points': self.points,
            'order': self.order,
            'answers': [a.to_dict(include_correct=include_correct) for a in self.answers],
        }


class AnswerOption(db.Model):
    __tablename__ = 'answer_option'
    __table_args__ = (db.UniqueConstraint('question_pk', 'id', name='uq_answer_option_question_id'),)
    pk = db.Column(db.Integer, primary_key=True)
    id = db.Column(db.String(64), nullable=False, default=lambda: generate_id('a'))
    question_pk = db.Column(db.Integer, db.ForeignKey('question.pk'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    question = db.relationship('Question', back_populates='answers')

    def to_dict(self, include_correct=False):
        data = {'id': self.id, 'text': self.text, 'order': self.order}
        if include_correct:
            data['is_correct'] = self.is_correct
        return data


class Branch(db.Model):
    __tablename__ = 'branch'
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    game = db.relationship('Game', back_populates='branches')

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('game_id', 'visitor_id', name='uq_player_game_visitor'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    visitor_id = db.Column(db.String(64), nullable=False)
    branch_id = db.Column(db.String(64), nullable=True)
    nickname = db.Column(db.String(64), nullable=False)
    avatar_type = db.Column(db.String(16), nullable=False, default='emoji')
    avatar_value = db.Column(db.String(256), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    consent = db.Column(db.Boolean, default=False, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='registered')
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    # Aggregates, always equal to a fold over `answers`
    current_score = db.Column(db.Integer, nullable=False, default=0)
    current_streak = db.Column(db.Integer, nullable=False, default=0)
    max_streak = db.Column(db.Integer, nullable=False, default=0)
    correct_answers = db.Column(db.Integer, nullable=False, default=0)
    wrong_answers = db.Column(db.Integer, nullable=False, default=0)
    total_time_ms = db.Column(db.Integer, nullable=False, default=0)
    registered_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)
    # Duplicate prevention
    has_completed = db.Column(db.Boolean, default=False, nullable=False)
    play_count = db.Column(db.Integer, nullable=False, default=0)
    final_rank = db.Column(db.Integer, nullable=True)

    game = db.relationship('Game', back_populates='players')
    answers = db.relationship('AnswerRecord', back_populates='player', order_by='AnswerRecord.id',
                              cascade='all, delete-orphan')

    def answered_question_ids(self):
        return {a.question_id for a in self.answers}

    def to_dict(self, include_answers=False):
        data = {
            'id': self.visitor_id,
            'game_id': self.game_id,
            'branch_id': self.branch_id,
            'nickname': self.nickname,
            'avatar_type': self.avatar_type,
            'avatar_value': self.avatar_value,
            'status': self.status,
            'current_question_index': self.current_question_index,
            'current_score': self.current_score,
            'current_streak': self.current_streak,
            'max_streak': self.max_streak,
            'correct_answers': self.correct_answers,
            'wrong_answers': self.wrong_answers,
            'total_time_ms': self.total_time_ms,
            'registered_at': _isoformat(self.registered_at),
            'started_at': _isoformat(self.started_at),
            'finished_at': _isoformat(self.finished_at),
            'has_completed': self.has_completed,
            'play_count': self.play_count,
            'final_rank': self.final_rank,
        }
        if include_answers:
            data['answers'] = [a.to_dict() for a in self.answers]
        return data


class AnswerRecord(db.Model):
    """One scored answer. Written once, never updated: the audit trail for score disputes."""
    __tablename__ = 'answer_record'
    __table_args__ = (db.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),)
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    question_id = db.Column(db.String(64), nullable=False)
    question_index = db.Column(db.Integer, nullable=False)
    answer_id = db.Column(db.String(64), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    response_time_ms = db.Column(db.Integer, nullable=False)
    base_points = db.Column(db.Integer, nullable=False)
    time_bonus = db.Column(db.Integer, nullable=False)
    streak_multiplier = db.Column(db.Float, nullable=False)
    total_points = db.Column(db.Integer, nullable=False)
    streak_at_answer = db.Column(db.Integer, nullable=False)
    answered_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    player = db.relationship('Player', back_populates='answers')

    def to_dict(self):
        return {
            'question_id': self.question_id,
            'question_index': self.question_index,
            'answer_id': self.answer_id,
            'is_correct': self.is_correct,
            'response_time_ms': self.response_time_ms,
            'base_points': self.base_points,
            'time_bonus': self.time_bonus,
            'streak_multiplier': self.streak_multiplier,
            'total_points': self.total_points,
            'streak_at_answer': self.streak_at_answer,
            'streak_label': format_streak_multiplier(self.streak_multiplier),
            'answered_at': _isoformat(self.answered_at),
        }


@event.listens_for(AnswerRecord, 'before_update')
def _reject_answer_update(mapper, connection, target):
    raise ValueError(f"AnswerRecord {target.id} is immutable")


class OutboxEvent(db.Model):
    """Side effect owed to the live store, written in the same transaction as the player commit."""
    __tablename__ = 'outbox_event'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, nullable=True)
    kind = db.Column(db.String(32), nullable=False)  # player_registered, player_scored, player_finished
    payload = db.Column(db.Text, nullable=False, default='{}')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    processed_at = db.Column(db.DateTime, nullable=True, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    def data(self):
        return json.loads(self.payload or '{}')


# ---- Live leaderboard mirror (eventually consistent) ----

class LeaderboardEntry(db.Model):
    __bind_key__ = 'live'
    __tablename__ = 'leaderboard_entry'
    game_id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.String(64), primary_key=True)
    nickname = db.Column(db.String(64), nullable=False)
    avatar_type = db.Column(db.String(16), nullable=True)
    avatar_value = db.Column(db.String(256), nullable=True)
    branch_id = db.Column(db.String(64), nullable=True, index=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    correct_answers = db.Column(db.Integer, nullable=False, default=0)
    total_questions = db.Column(db.Integer, nullable=False, default=0)
    accuracy = db.Column(db.Integer, nullable=False, default=0)
    max_streak = db.Column(db.Integer, nullable=False, default=0)
    total_time_ms = db.Column(db.Integer, nullable=False, default=0)
    is_finished = db.Column(db.Boolean, nullable=False, default=False)
    finished_at = db.Column(db.DateTime, nullable=True)
    rank = db.Column(db.Integer, nullable=True)
    last_event_id = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self, rank=None):
        return {
            'player_id': self.visitor_id,
            'nickname': self.nickname,
            'avatar_type': self.avatar_type,
            'avatar_value': self.avatar_value,
            'branch_id': self.branch_id,
            'score': self.score,
            'correct_answers': self.correct_answers,
            'total_questions': self.total_questions,
            'accuracy': self.accuracy,
            'max_streak': self.max_streak,
            'total_time_ms': self.total_time_ms,
            'is_finished': self.is_finished,
            'finished_at': _isoformat(self.finished_at),
            'rank': rank if rank is not None else self.rank,
        }


class RecentCompletion(db.Model):
    __bind_key__ = 'live'
    __tablename__ = 'recent_completion'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, nullable=False, index=True)
    visitor_id = db.Column(db.String(64), nullable=False)
    nickname = db.Column(db.String(64), nullable=False)
    avatar_value = db.Column(db.String(256), nullable=True)
    score = db.Column(db.Integer, nullable=False)
    rank = db.Column(db.Integer, nullable=False)
    accuracy = db.Column(db.Integer, nullable=False)
    finished_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self):
        return {
            'player_id': self.visitor_id,
            'nickname': self.nickname,
            'avatar_value': self.avatar_value,
            'score': self.score,
            'rank': self.rank,
            'accuracy': self.accuracy,
            'finished_at': _isoformat(self.finished_at),
        }


class GameStats(db.Model):
    """Monotonic counters; averages are derived on read."""
    __bind_key__ = 'live'
    __tablename__ = 'game_stats'
    game_id = db.Column(db.Integer, primary_key=True)
    players_registered = db.Column(db.Integer, nullable=False, default=0)
    players_started = db.Column(db.Integer, nullable=False, default=0)
    players_finished = db.Column(db.Integer, nullable=False, default=0)
    total_answers = db.Column(db.Integer, nullable=False, default=0)
    sum_score = db.Column(db.BigInteger, nullable=False, default=0)
    sum_accuracy = db.Column(db.BigInteger, nullable=False, default=0)
    sum_time_ms = db.Column(db.BigInteger, nullable=False, default=0)
    top_score = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime, nullable=False, default=utcnow)


class ProcessedEvent(db.Model):
    """Ledger of outbox events already applied to the live store."""
    __bind_key__ = 'live'
    __tablename__ = 'processed_event'
    event_id = db.Column(db.Integer, primary_key=True)
    processed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
