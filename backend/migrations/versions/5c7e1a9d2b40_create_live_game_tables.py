"""create user, live_game and live_participant tables

Revision ID: 5c7e1a9d2b40
Revises:
Create Date: 2025-09-11 18:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c7e1a9d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('whatsapp', sa.String(length=32), nullable=True),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        )

    if 'live_game' not in existing_tables:
        op.create_table(
            'live_game',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('title', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
            sa.Column('max_participants', sa.Integer(), nullable=False, server_default='50'),
            sa.Column('current_participants', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('elimination_interval', sa.Integer(), nullable=False, server_default='60'),
            sa.Column('current_round', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_by', sa.String(length=64), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('last_elimination_at', sa.DateTime(), nullable=True),
            sa.Column('finished_at', sa.DateTime(), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(), nullable=True),
            sa.Column('winner_user_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('winner_participant_id', sa.String(length=36), nullable=True),
            sa.Column('winner_number', sa.Integer(), nullable=True),
            sa.CheckConstraint('current_participants <= max_participants', name='ck_live_game_capacity'),
        )
        op.create_index('ix_live_game_status', 'live_game', ['status'])

    if 'live_participant' not in existing_tables:
        op.create_table(
            'live_participant',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('game_id', sa.String(length=36), sa.ForeignKey('live_game.id'), nullable=False),
            sa.Column('user_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('lucky_number', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.Column('eliminated_at', sa.DateTime(), nullable=True),
            sa.Column('eliminated_in_round', sa.Integer(), nullable=True),
            sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.UniqueConstraint('game_id', 'lucky_number', name='uq_live_participant_game_number'),
            sa.UniqueConstraint('game_id', 'user_id', name='uq_live_participant_game_user'),
        )
        op.create_index('ix_live_participant_game_id', 'live_participant', ['game_id'])


def downgrade():
    op.drop_index('ix_live_participant_game_id', table_name='live_participant')
    op.drop_table('live_participant')
    op.drop_index('ix_live_game_status', table_name='live_game')
    op.drop_table('live_game')
    op.drop_table('user')
