"""initial quiz schema: record store and live leaderboard mirror

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade(engine_name=''):
    globals()[f"upgrade_{engine_name}"]()


def downgrade(engine_name=''):
    globals()[f"downgrade_{engine_name}"]()


def upgrade_():
    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_code', sa.String(length=4), nullable=True),
        sa.Column('title', sa.String(length=128), nullable=True),
        sa.Column('phase', sa.String(length=32), nullable=False),
        sa.Column('scoring_mode', sa.String(length=32), nullable=False),
        sa.Column('base_points', sa.Integer(), nullable=False),
        sa.Column('time_bonus_max', sa.Integer(), nullable=False),
        sa.Column('streak_multipliers', sa.Text(), nullable=True),
        sa.Column('default_time_limit_sec', sa.Integer(), nullable=False),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False),
        sa.Column('shuffle_answers', sa.Boolean(), nullable=False),
        sa.Column('branches_enabled', sa.Boolean(), nullable=False),
        sa.Column('game_started_at', sa.DateTime(), nullable=True),
        sa.Column('game_ended_at', sa.DateTime(), nullable=True),
        sa.Column('last_reset_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_game_game_code', 'game', ['game_code'], unique=True)

    op.create_table(
        'question',
        sa.Column('pk', sa.Integer(), primary_key=True),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('time_limit_sec', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('game_id', 'id', name='uq_question_game_id'),
    )
    op.create_index('ix_question_game_id', 'question', ['game_id'])

    op.create_table(
        'answer_option',
        sa.Column('pk', sa.Integer(), primary_key=True),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('question_pk', sa.Integer(), sa.ForeignKey('question.pk'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.UniqueConstraint('question_pk', 'id', name='uq_answer_option_question_id'),
    )
    op.create_index('ix_answer_option_question_pk', 'answer_option', ['question_pk'])

    op.create_table(
        'branch',
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), primary_key=True),
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
    )

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('visitor_id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=True),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('avatar_type', sa.String(length=16), nullable=False),
        sa.Column('avatar_value', sa.String(length=256), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('consent', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=False),
        sa.Column('current_score', sa.Integer(), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False),
        sa.Column('max_streak', sa.Integer(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('wrong_answers', sa.Integer(), nullable=False),
        sa.Column('total_time_ms', sa.Integer(), nullable=False),
        sa.Column('registered_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('has_completed', sa.Boolean(), nullable=False),
        sa.Column('play_count', sa.Integer(), nullable=False),
        sa.Column('final_rank', sa.Integer(), nullable=True),
        sa.UniqueConstraint('game_id', 'visitor_id', name='uq_player_game_visitor'),
    )
    op.create_index('ix_player_game_id', 'player', ['game_id'])

    op.create_table(
        'answer_record',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('question_id', sa.String(length=64), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('answer_id', sa.String(length=64), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=False),
        sa.Column('base_points', sa.Integer(), nullable=False),
        sa.Column('time_bonus', sa.Integer(), nullable=False),
        sa.Column('streak_multiplier', sa.Float(), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('streak_at_answer', sa.Integer(), nullable=False),
        sa.Column('answered_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),
    )
    op.create_index('ix_answer_record_player_id', 'answer_record', ['player_id'])

    op.create_table(
        'outbox_event',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
    )
    op.create_index('ix_outbox_event_game_id', 'outbox_event', ['game_id'])
    op.create_index('ix_outbox_event_processed_at', 'outbox_event', ['processed_at'])


def downgrade_():
    op.drop_table('outbox_event')
    op.drop_table('answer_record')
    op.drop_table('player')
    op.drop_table('branch')
    op.drop_table('answer_option')
    op.drop_table('question')
    op.drop_table('game')


def upgrade_live():
    op.create_table(
        'leaderboard_entry',
        sa.Column('game_id', sa.Integer(), primary_key=True),
        sa.Column('visitor_id', sa.String(length=64), primary_key=True),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('avatar_type', sa.String(length=16), nullable=True),
        sa.Column('avatar_value', sa.String(length=256), nullable=True),
        sa.Column('branch_id', sa.String(length=64), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('accuracy', sa.Integer(), nullable=False),
        sa.Column('max_streak', sa.Integer(), nullable=False),
        sa.Column('total_time_ms', sa.Integer(), nullable=False),
        sa.Column('is_finished', sa.Boolean(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('last_event_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_leaderboard_entry_branch_id', 'leaderboard_entry', ['branch_id'])

    op.create_table(
        'recent_completion',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=64), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('avatar_value', sa.String(length=256), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('accuracy', sa.Integer(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_recent_completion_game_id', 'recent_completion', ['game_id'])

    op.create_table(
        'game_stats',
        sa.Column('game_id', sa.Integer(), primary_key=True),
        sa.Column('players_registered', sa.Integer(), nullable=False),
        sa.Column('players_started', sa.Integer(), nullable=False),
        sa.Column('players_finished', sa.Integer(), nullable=False),
        sa.Column('total_answers', sa.Integer(), nullable=False),
        sa.Column('sum_score', sa.BigInteger(), nullable=False),
        sa.Column('sum_accuracy', sa.BigInteger(), nullable=False),
        sa.Column('sum_time_ms', sa.BigInteger(), nullable=False),
        sa.Column('top_score', sa.Integer(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'processed_event',
        sa.Column('event_id', sa.Integer(), primary_key=True),
        sa.Column('processed_at', sa.DateTime(), nullable=False),
    )


def downgrade_live():
    op.drop_table('processed_event')
    op.drop_table('game_stats')
    op.drop_table('recent_completion')
    op.drop_table('leaderboard_entry')
