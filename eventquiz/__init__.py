from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from eventquiz.api.quiz import quiz
    flask_app.register_blueprint(quiz, url_prefix='/api/games')

    # Live display clients subscribe to game rooms on /ws
    from eventquiz.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo game."""
        from eventquiz.services.quiz.catalog import create_game
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            game = create_game({
                'title': 'Demo trivia',
                'phase': 'registration',
                'questions': [
                    {'text': '2 + 2 = ?', 'answers': [
                        {'text': '4', 'is_correct': True}, {'text': '5'}]},
                    {'text': 'Capital of France?', 'answers': [
                        {'text': 'Lyon'}, {'text': 'Paris', 'is_correct': True}]},
                    {'text': 'Largest planet?', 'answers': [
                        {'text': 'Jupiter', 'is_correct': True}, {'text': 'Mars'}]},
                ],
            })
            print(f'Database has been reset and seeded! Demo game: {game.game_code}')

    @click.command('dispatch-outbox')
    @click.option('--game', 'game_code', default=None, help='Only dispatch events for this game code.')
    def dispatch_outbox_command(game_code):
        """Retries pending leaderboard/stats side effects."""
        from eventquiz.models import Game
        from eventquiz.services.quiz.outbox import dispatch_pending
        with flask_app.app_context():
            game_id = None
            if game_code:
                game = Game.query.filter_by(game_code=game_code.upper()).first()
                if not game:
                    raise click.ClickException(f'Game {game_code} not found')
                game_id = game.id
            applied = dispatch_pending(game_id=game_id)
            print(f'Applied {applied} pending event(s)')

    @click.command('reconcile-leaderboard')
    @click.argument('game_code')
    def reconcile_leaderboard_command(game_code):
        """Re-derives the live leaderboard and stats from the player records."""
        from eventquiz.models import Game
        from eventquiz.services.quiz.leaderboard import reconcile
        with flask_app.app_context():
            game = Game.query.filter_by(game_code=game_code.upper()).first()
            if not game:
                raise click.ClickException(f'Game {game_code} not found')
            count = reconcile(game)
            print(f'Rebuilt {count} leaderboard entries for {game.game_code}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(dispatch_outbox_command)
    flask_app.cli.add_command(reconcile_leaderboard_command)

    return flask_app
