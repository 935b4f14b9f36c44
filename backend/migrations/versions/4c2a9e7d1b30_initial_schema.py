"""initial schema: users, tournaments, matches, participants, throws, confirmations, statistics

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-02-12 20:38:26.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        _timestamp('last_login', nullable=True),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'tournament',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('format', sa.String(length=32), nullable=False),
        sa.Column('match_format', sa.String(length=8), nullable=False),
        _timestamp('start_date'),
        _timestamp('end_date', nullable=True),
        _timestamp('registration_deadline', nullable=True),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('number_of_groups', sa.Integer(), nullable=False),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )

    op.create_table(
        'tournament_participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournament.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        _timestamp('registered_at'),
        sa.UniqueConstraint('tournament_id', 'user_id', name='uq_tournament_participant'),
    )

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournament.id'), nullable=False),
        sa.Column('match_format', sa.String(length=8), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        _timestamp('scheduled_start', nullable=True),
        _timestamp('actual_start', nullable=True),
        _timestamp('actual_end', nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_match_tournament_id', 'match', ['tournament_id'])

    op.create_table(
        'match_participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('finishing_score', sa.Integer(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), nullable=False),
        sa.Column('throw_sequence', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_match_participant'),
    )

    op.create_table(
        'dart_throw',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('throw_number', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('remaining_score', sa.Integer(), nullable=False),
        sa.Column('is_double', sa.Boolean(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        _timestamp('thrown_at'),
        sa.UniqueConstraint('match_id', 'user_id', 'sequence', name='uq_dart_throw_sequence'),
        sa.UniqueConstraint('match_id', 'user_id', 'round_number', 'throw_number', name='uq_dart_throw_slot'),
    )
    op.create_index('ix_dart_throw_match_round', 'dart_throw', ['match_id', 'round_number'])

    op.create_table(
        'match_confirmation',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('confirmed', sa.Boolean(), nullable=False),
        _timestamp('confirmed_at', nullable=True),
        _timestamp('created_at'),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_match_confirmation'),
    )

    op.create_table(
        'player_statistics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournament.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('matches_played', sa.Integer(), nullable=False),
        sa.Column('matches_won', sa.Integer(), nullable=False),
        sa.Column('matches_lost', sa.Integer(), nullable=False),
        sa.Column('win_loss_ratio', sa.Float(), nullable=False),
        sa.Column('average_score', sa.Float(), nullable=False),
        sa.Column('darts_thrown', sa.Integer(), nullable=False),
        sa.Column('points_scored', sa.Integer(), nullable=False),
        sa.Column('ranking', sa.Integer(), nullable=True),
        _timestamp('updated_at'),
        sa.UniqueConstraint('tournament_id', 'user_id', name='uq_player_statistics'),
    )


def downgrade():
    op.drop_table('player_statistics')
    op.drop_table('match_confirmation')
    op.drop_index('ix_dart_throw_match_round', table_name='dart_throw')
    op.drop_table('dart_throw')
    op.drop_table('match_participant')
    op.drop_index('ix_match_tournament_id', table_name='match')
    op.drop_table('match')
    op.drop_table('tournament_participant')
    op.drop_table('tournament')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
