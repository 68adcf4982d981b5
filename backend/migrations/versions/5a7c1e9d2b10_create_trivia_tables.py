"""create user, room, participant, question and answer tables

Revision ID: 5a7c1e9d2b10
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a7c1e9d2b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('games_played', sa.Integer(), nullable=False),
        sa.Column('games_won', sa.Integer(), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('category_stats_json', sa.Text(), nullable=True),
    )
    op.create_index('ix_user_external_id', 'user', ['external_id'], unique=True)
    op.create_index('ix_user_username', 'user', ['username'])

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('host_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('settings_json', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('started_at', sa.BigInteger(), nullable=True),
        sa.Column('finished_at', sa.BigInteger(), nullable=True),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)
    op.create_index('ix_room_status', 'room', ['status'])

    op.create_table(
        'participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('is_ready', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('joined_at', sa.BigInteger(), nullable=False),
        sa.UniqueConstraint('room_id', 'user_id', name='uq_participant_room_user'),
    )
    op.create_index('ix_participant_room_id', 'participant', ['room_id'])
    op.create_index('ix_participant_user_id', 'participant', ['user_id'])

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('order_in_round', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('options_json', sa.Text(), nullable=False),
        sa.Column('correct_answer', sa.String(length=16), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('difficulty', sa.String(length=16), nullable=False),
        sa.Column('fact_checked', sa.Boolean(), nullable=False),
        sa.Column('fact_check_details', sa.Text(), nullable=True),
        sa.Column('revealed_at', sa.BigInteger(), nullable=True),
        sa.Column('expires_at', sa.BigInteger(), nullable=True),
        sa.UniqueConstraint('room_id', 'round_number', 'order_in_round', name='uq_question_room_round_order'),
    )
    op.create_index('ix_question_room_id', 'question', ['room_id'])

    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('answer', sa.String(length=16), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('response_time', sa.Integer(), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('answered_at', sa.BigInteger(), nullable=False),
        sa.UniqueConstraint('user_id', 'question_id', name='uq_answer_user_question'),
    )
    op.create_index('ix_answer_user_id', 'answer', ['user_id'])
    op.create_index('ix_answer_question_id', 'answer', ['question_id'])
    op.create_index('ix_answer_room_id', 'answer', ['room_id'])


def downgrade():
    op.drop_table('answer')
    op.drop_table('question')
    op.drop_table('participant')
    op.drop_table('room')
    op.drop_table('user')
