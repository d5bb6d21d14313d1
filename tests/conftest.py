import os
import sys
import pytest

# Ensure the project root (containing the `eventquiz` package and `config`) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from eventquiz import create_app, db, socketio
from eventquiz.models import Game
from eventquiz.services.quiz.catalog import QuestionCatalog


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_BINDS = {'live': 'sqlite://'}
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_SCORING_MODE = 'time_and_streak'
    DEFAULT_BASE_POINTS = 100
    DEFAULT_TIME_BONUS_MAX = 50
    DEFAULT_STREAK_MULTIPLIERS = '1,1.2,1.5,2,2.5,3'
    DEFAULT_TIME_LIMIT_SEC = 30
    RECENT_COMPLETIONS_LIMIT = 3
    MAX_LEADERBOARD_ENTRIES = 100
    OUTBOX_DISPATCH = 'inline'
    OUTBOX_MAX_ATTEMPTS = 5


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created on both binds
        import eventquiz.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def three_question_payload(**overrides):
    payload = {
        'title': 'Office trivia',
        'phase': 'playing',
        'scoring': {'mode': 'time_and_streak', 'base_points': 100, 'time_bonus_max': 50},
        'questions': [
            {'text': 'Q1', 'time_limit_sec': 30, 'answers': [
                {'text': 'right', 'is_correct': True}, {'text': 'wrong'}]},
            {'text': 'Q2', 'time_limit_sec': 30, 'answers': [
                {'text': 'wrong'}, {'text': 'right', 'is_correct': True}]},
            {'text': 'Q3', 'time_limit_sec': 30, 'answers': [
                {'text': 'right', 'is_correct': True}, {'text': 'wrong'}, {'text': 'also wrong'}]},
        ],
    }
    payload.update(overrides)
    return payload


class QuizHelper:
    """Drives a game through the HTTP API."""

    def __init__(self, client, created):
        self.client = client
        self.code = created['game_code']
        self.questions = created['questions']

    def correct(self, idx):
        return next(a['id'] for a in self.questions[idx]['answers'] if a['is_correct'])

    def wrong(self, idx):
        return next(a['id'] for a in self.questions[idx]['answers'] if not a['is_correct'])

    def register(self, player_id, nickname=None, **extra):
        body = {'playerId': player_id, 'nickname': nickname or f'Player {player_id}',
                'avatarType': 'emoji', 'avatarValue': '🧠'}
        body.update(extra)
        return self.client.post(f'/api/games/{self.code}/register', json=body)

    def answer(self, player_id, idx, correct=True, response_time_ms=5000, answer_id=None):
        body = {
            'gameId': self.code,
            'playerId': player_id,
            'questionId': self.questions[idx]['id'],
            'questionIndex': idx,
            'answerId': answer_id or (self.correct(idx) if correct else self.wrong(idx)),
            'responseTimeMs': response_time_ms,
        }
        return self.client.post('/api/games/answer', json=body)

    def question_row(self, idx):
        game = Game.query.filter_by(game_code=self.code).one()
        return QuestionCatalog(game).get_active(self.questions[idx]['id'])

    def player(self, player_id):
        return self.client.get(f'/api/games/{self.code}/players/{player_id}').get_json()

    def leaderboard(self, **params):
        return self.client.get(f'/api/games/{self.code}/leaderboard', query_string=params).get_json()


@pytest.fixture()
def make_quiz(client):
    def _make(**overrides):
        res = client.post('/api/games/create', json=three_question_payload(**overrides))
        assert res.status_code == 201, res.get_json()
        return QuizHelper(client, res.get_json())
    return _make
