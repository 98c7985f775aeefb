"""create room, player, player_answer, game_question and question tables

Revision ID: 4c7a9e21b0d3
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7a9e21b0d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'room' not in existing_tables:
        op.create_table(
            'room',
            sa.Column('code', sa.String(length=6), primary_key=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
            sa.Column('max_players', sa.Integer(), nullable=False),
            sa.Column('game_mode', sa.String(length=20), nullable=False, server_default='quick'),
            sa.Column('category', sa.String(length=50), nullable=True),
            sa.Column('difficulty', sa.String(length=20), nullable=True),
            sa.Column('time_limit', sa.Integer(), nullable=False),
            sa.Column('question_count', sa.Integer(), nullable=False),
            sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_questions', sa.Integer(), nullable=True),
            sa.Column('question_start_time', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        )

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(length=6), sa.ForeignKey('room.code', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('avatar', sa.String(length=20), nullable=False),
            sa.Column('is_host', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('current_answer', sa.Integer(), nullable=True),
            sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index('ix_player_room_code', 'player', ['room_code'])

    if 'player_answer' not in existing_tables:
        op.create_table(
            'player_answer',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id', ondelete='CASCADE'), nullable=False),
            sa.Column('room_code', sa.String(length=6), nullable=False),
            sa.Column('question_index', sa.Integer(), nullable=False),
            sa.Column('selected_answer', sa.Integer(), nullable=False),
            sa.Column('time_ms', sa.Integer(), nullable=False),
            sa.Column('correct', sa.Boolean(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint('player_id', 'question_index', name='uq_player_answer_question'),
        )
        op.create_index('ix_player_answer_player_id', 'player_answer', ['player_id'])
        op.create_index('ix_player_answer_room_code', 'player_answer', ['room_code'])

    if 'game_question' not in existing_tables:
        op.create_table(
            'game_question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(length=6), sa.ForeignKey('room.code', ondelete='CASCADE'), nullable=False),
            sa.Column('question_index', sa.Integer(), nullable=False),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('options', sa.JSON(), nullable=False),
            sa.Column('correct_answer_index', sa.Integer(), nullable=False),
            sa.Column('category', sa.String(length=50), nullable=True),
            sa.Column('difficulty', sa.String(length=20), nullable=True),
            sa.UniqueConstraint('room_code', 'question_index', name='uq_game_question_index'),
        )
        op.create_index('ix_game_question_room_code', 'game_question', ['room_code'])

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('options', sa.JSON(), nullable=False),
            sa.Column('correct_answer_index', sa.Integer(), nullable=False),
            sa.Column('category', sa.String(length=50), nullable=True),
            sa.Column('difficulty', sa.String(length=20), nullable=False, server_default='medium'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index('ix_question_category', 'question', ['category'])
        op.create_index('ix_question_difficulty', 'question', ['difficulty'])


def downgrade():
    op.drop_table('question')
    op.drop_table('game_question')
    op.drop_table('player_answer')
    op.drop_table('player')
    op.drop_table('room')
