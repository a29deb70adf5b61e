"""create user, match_type, match, match_throw, match_lock and match_stats

Revision ID: 4c2d9e7a1b30
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2d9e7a1b30'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'match_type' not in existing_tables:
        op.create_table(
            'match_type',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('name', sa.String(length=100), nullable=False, unique=True),
            sa.Column('default_start_score', sa.Integer(), nullable=False),
            sa.Column('default_checkout_rule', sa.String(length=50), nullable=False),
            sa.Column('default_format_type', sa.String(length=50), nullable=False),
            sa.Column('default_legs_count', sa.Integer(), nullable=True),
            sa.Column('default_sets_count', sa.Integer(), nullable=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('match_type_id', sa.String(length=36), sa.ForeignKey('match_type.id'), nullable=False),
            sa.Column('player1_user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('player1_guest_name', sa.String(length=255), nullable=True),
            sa.Column('player2_user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('player2_guest_name', sa.String(length=255), nullable=True),
            sa.Column('start_score', sa.Integer(), nullable=False),
            sa.Column('checkout_rule', sa.String(length=50), nullable=False),
            sa.Column('format_type', sa.String(length=50), nullable=False),
            sa.Column('legs_count', sa.Integer(), nullable=True),
            sa.Column('sets_count', sa.Integer(), nullable=True),
            sa.Column('current_leg', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('current_set', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('player1_legs_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('player2_legs_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('player1_sets_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('player2_sets_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('winner_player_number', sa.Integer(), nullable=True),
            sa.Column('match_status', sa.String(length=50), nullable=False, server_default='setup'),
            sa.Column('is_private', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('duration_seconds', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column('created_by_user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('created_by_session_id', sa.String(length=255), nullable=True),
            sa.CheckConstraint(
                '(player1_user_id IS NOT NULL AND player1_guest_name IS NULL) OR '
                '(player1_user_id IS NULL AND player1_guest_name IS NOT NULL)',
                name='player1_xor_constraint'),
            sa.CheckConstraint(
                '(player2_user_id IS NOT NULL AND player2_guest_name IS NULL) OR '
                '(player2_user_id IS NULL AND player2_guest_name IS NOT NULL)',
                name='player2_xor_constraint'),
        )
        op.create_index('ix_match_match_status', 'match', ['match_status'])

    if 'match_throw' not in existing_tables:
        op.create_table(
            'match_throw',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('match_id', sa.String(length=36), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('leg_number', sa.Integer(), nullable=False),
            sa.Column('set_number', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('player_number', sa.Integer(), nullable=False),
            sa.Column('throw_number', sa.Integer(), nullable=False),
            sa.Column('round_number', sa.Integer(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False),
            sa.Column('remaining_score', sa.Integer(), nullable=False),
            sa.Column('is_checkout_attempt', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('winner_player_number', sa.Integer(), nullable=True),
            sa.Column('winning_checkout', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('match_id', 'leg_number', 'set_number', 'player_number',
                                'throw_number', 'round_number', name='unique_throw'),
        )
        op.create_index('ix_match_throw_match_id', 'match_throw', ['match_id'])

    if 'match_lock' not in existing_tables:
        op.create_table(
            'match_lock',
            sa.Column('match_id', sa.String(length=36), sa.ForeignKey('match.id'), primary_key=True),
            sa.Column('locked_by_session_id', sa.String(length=255), nullable=False, unique=True),
            sa.Column('device_info', sa.JSON(), nullable=False),
            sa.Column('locked_at', sa.DateTime(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('auto_extend', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('last_activity_at', sa.DateTime(), nullable=False),
            *_timestamps(),
        )

    if 'match_stats' not in existing_tables:
        counters = [
            'total_score', 'darts_thrown', 'rounds_played',
            'scores_60_plus', 'scores_80_plus', 'scores_100_plus', 'scores_120_plus',
            'scores_140_plus', 'scores_170_plus', 'scores_180',
            'checkout_attempts', 'successful_checkouts', 'finishes_100_plus',
            'legs_won_on_own_throw', 'legs_won_on_opponent_throw',
        ]
        op.create_table(
            'match_stats',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('match_id', sa.String(length=36), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('player_number', sa.Integer(), nullable=False),
            *[sa.Column(name, sa.Integer(), nullable=False, server_default='0') for name in counters],
            sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('first_9_average', sa.Float(), nullable=True),
            sa.Column('high_finish', sa.Integer(), nullable=True),
            sa.Column('best_leg_darts', sa.Integer(), nullable=True),
            sa.Column('worst_leg_darts', sa.Integer(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint('match_id', 'player_number', name='unique_match_player'),
        )
        op.create_index('ix_match_stats_match_id', 'match_stats', ['match_id'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    # children first
    for table in ('match_stats', 'match_lock', 'match_throw', 'match', 'match_type', 'user'):
        if table in existing_tables:
            op.drop_table(table)
