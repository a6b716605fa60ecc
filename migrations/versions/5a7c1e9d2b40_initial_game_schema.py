"""initial game schema: users, rooms, roster, track pool, rounds, answers

Revision ID: 5a7c1e9d2b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a7c1e9d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('display_name', sa.String(length=64), nullable=False),
        sa.Column('unique_name', sa.String(length=80), nullable=False),
        sa.Column('account_connected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_user_unique_name', 'user', ['unique_name'], unique=True)

    op.create_table(
        'account_link',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False, unique=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=7), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('password_hash', sa.String(length=128), nullable=True),
        sa.Column('host_user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('round_duration', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)

    op.create_table(
        'room_player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('room_id', 'user_id', name='uq_room_player_room_user'),
    )

    op.create_table(
        'track',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=256), nullable=False),
        sa.Column('artist', sa.String(length=256), nullable=True),
        sa.Column('art_url', sa.Text(), nullable=True),
        sa.Column('preview_url', sa.Text(), nullable=True),
        sa.Column('listener_ids_json', sa.Text(), nullable=False),
        sa.UniqueConstraint('room_id', 'external_id', name='uq_track_room_external'),
    )
    op.create_index('ix_track_room_id', 'track', ['room_id'])

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('track_id', sa.Integer(), sa.ForeignKey('track.id'), nullable=True),
        sa.Column('correct_user_ids_json', sa.Text(), nullable=False),
        sa.Column('is_lightning', sa.Boolean(), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_round_room_id', 'round', ['room_id'])

    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('selected_user_ids_json', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('is_partial_correct', sa.Boolean(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('round_id', 'user_id', name='uq_answer_round_user'),
    )
    op.create_index('ix_answer_round_id', 'answer', ['round_id'])


def downgrade():
    op.drop_index('ix_answer_round_id', table_name='answer')
    op.drop_table('answer')
    op.drop_index('ix_round_room_id', table_name='round')
    op.drop_table('round')
    op.drop_index('ix_track_room_id', table_name='track')
    op.drop_table('track')
    op.drop_table('room_player')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
    op.drop_table('account_link')
    op.drop_index('ix_user_unique_name', table_name='user')
    op.drop_table('user')
