"""create tournament_type, tournament and tournament_match_result

Revision ID: 9b7e5d21c4a8
Revises: 4c2d9e7a1b30
Create Date: 2026-10-17 15:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9b7e5d21c4a8'
down_revision = '4c2d9e7a1b30'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'tournament_type' not in existing_tables:
        tournament_type = op.create_table(
            'tournament_type',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        )
        op.bulk_insert(tournament_type, [
            {'id': 1, 'name': 'Leagues + SKO'},
            {'id': 2, 'name': 'SKO'},
        ])

    if 'tournament' not in existing_tables:
        op.create_table(
            'tournament',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('date', sa.Date(), nullable=False),
            sa.Column('tournament_type_id', sa.Integer(), sa.ForeignKey('tournament_type.id'),
                      nullable=False, server_default='1'),
            sa.Column('final_place', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('final_place IS NULL OR final_place > 0', name='final_place_positive'),
        )
        op.create_index('ix_tournament_user_id', 'tournament', ['user_id'])
        op.create_index('ix_tournament_date', 'tournament', ['date'])

    if 'tournament_match_result' not in existing_tables:
        counters = ('position', 'player_score', 'opponent_score', 'score_60_count', 'score_100_count',
                    'score_140_count', 'score_180_count', 'high_finish', 'best_leg', 'worst_leg')
        op.create_table(
            'tournament_match_result',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('tournament_id', sa.String(length=36),
                      sa.ForeignKey('tournament.id', ondelete='CASCADE'), nullable=False),
            sa.Column('match_type_id', sa.String(length=36), sa.ForeignKey('match_type.id'), nullable=False),
            sa.Column('opponent_name', sa.String(length=255), nullable=True),
            *[sa.Column(name, sa.Integer(), nullable=False, server_default='0') for name in counters],
            sa.Column('average_score', sa.Float(), nullable=False, server_default='0'),
            sa.Column('first_nine_avg', sa.Float(), nullable=False, server_default='0'),
            sa.Column('checkout_percentage', sa.Float(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('checkout_percentage >= 0 AND checkout_percentage <= 100',
                               name='checkout_percentage_range'),
        )
        op.create_index('ix_tournament_match_result_tournament_id', 'tournament_match_result',
                        ['tournament_id'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    for table in ('tournament_match_result', 'tournament', 'tournament_type'):
        if table in existing_tables:
            op.drop_table(table)
