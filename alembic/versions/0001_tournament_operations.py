"""create tournament operations tables

Revision ID: 0001_tournament_operations
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_tournament_operations'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _uuid():
    return sa.Uuid(as_uuid=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'tournaments',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('club_id', _uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('buy_in_cents', sa.Integer, nullable=False, server_default='0'),
        sa.Column('seat_cap', sa.Integer, nullable=True),
        sa.Column('early_bird_bonus_chips', sa.Integer, nullable=True),
        sa.Column('live_status', sa.String(30), nullable=False, server_default='not_started'),
        *_timestamps(),
    )
    op.create_index('ix_tournaments_club_id', 'tournaments', ['club_id'])
    op.create_index('ix_tournaments_live_status', 'tournaments', ['live_status'])

    op.create_table(
        'tournament_structures',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level_number', sa.Integer, nullable=False),
        sa.Column('small_blind', sa.Integer, nullable=False, server_default='0'),
        sa.Column('big_blind', sa.Integer, nullable=False, server_default='0'),
        sa.Column('ante', sa.Integer, nullable=False, server_default='0'),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('is_break', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('break_duration_minutes', sa.Integer, nullable=True),
        sa.UniqueConstraint('tournament_id', 'level_number', name='uq_structure_level'),
    )
    op.create_index('ix_tournament_structures_tournament_id', 'tournament_structures', ['tournament_id'])

    op.create_table(
        'tournament_entries',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('entry_type', sa.String(20), nullable=False, server_default='initial'),
        sa.Column('amount_cents', sa.Integer, nullable=False, server_default='0'),
        sa.Column('chips_received', sa.Integer, nullable=True),
        sa.Column('recorded_by', _uuid(), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_tournament_entries_tournament_id', 'tournament_entries', ['tournament_id'])
    op.create_index('ix_tournament_entries_user_id', 'tournament_entries', ['user_id'])

    op.create_table(
        'tournament_registrations',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='registered'),
        sa.Column('registration_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tournament_id', 'user_id', name='uq_registration_tournament_user'),
    )
    op.create_index('ix_tournament_registrations_user_id', 'tournament_registrations', ['user_id'])
    op.create_index('ix_registration_tournament_status', 'tournament_registrations', ['tournament_id', 'status'])

    op.create_table(
        'club_tables',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('club_id', _uuid(), nullable=False),
        sa.Column('table_number', sa.Integer, nullable=False),
        sa.Column('table_name', sa.String(100), nullable=True),
        sa.Column('max_seats', sa.Integer, nullable=False, server_default='9'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('club_id', 'table_number', name='uq_club_table_number'),
    )
    op.create_index('ix_club_tables_club_id', 'club_tables', ['club_id'])

    op.create_table(
        'tournament_table_assignments',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('club_table_id', _uuid(), sa.ForeignKey('club_tables.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('unassigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('tournament_id', 'club_table_id', name='uq_tournament_table'),
    )
    op.create_index('ix_tournament_table_assignments_tournament_id', 'tournament_table_assignments', ['tournament_id'])
    op.create_index('ix_tournament_table_assignments_club_table_id', 'tournament_table_assignments', ['club_table_id'])

    op.create_table(
        'table_seat_assignments',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('club_table_id', _uuid(), sa.ForeignKey('club_tables.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('seat_number', sa.Integer, nullable=False),
        sa.Column('stack_size', sa.Integer, nullable=True),
        sa.Column('is_current', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('unassigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('assigned_by', _uuid(), nullable=True),
        sa.Column('unassigned_by', _uuid(), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('seat_number >= 1', name='seat_number_positive'),
    )
    # Partial unique indexes: one current seat per player, one current occupant per seat
    op.create_index(
        'uq_seat_assignments_current_user',
        'table_seat_assignments',
        ['tournament_id', 'user_id'],
        unique=True,
        postgresql_where=sa.text('is_current'),
        sqlite_where=sa.text('is_current = 1'),
    )
    op.create_index(
        'uq_seat_assignments_current_seat',
        'table_seat_assignments',
        ['club_table_id', 'seat_number'],
        unique=True,
        postgresql_where=sa.text('is_current'),
        sqlite_where=sa.text('is_current = 1'),
    )
    op.create_index('ix_seat_assignments_tournament_current', 'table_seat_assignments', ['tournament_id', 'is_current'])
    op.create_index('ix_seat_assignments_assigned_at', 'table_seat_assignments', ['assigned_at'])

    op.create_table(
        'tournament_clocks',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('clock_status', sa.String(20), nullable=False, server_default='stopped'),
        sa.Column('current_level', sa.Integer, nullable=False, server_default='1'),
        sa.Column('level_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('level_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pause_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_pause_duration', sa.Interval, nullable=False),
        sa.Column('auto_advance', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_tournament_clocks_status_end', 'tournament_clocks', ['clock_status', 'level_end_time'])

    op.create_table(
        'tournament_clock_events',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(30), nullable=False),
        sa.Column('level_number', sa.Integer, nullable=True),
        sa.Column('actor_id', _uuid(), nullable=True),
        sa.Column('event_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('metadata', JSON_TYPE, nullable=True),
    )
    op.create_index('ix_tournament_clock_events_tournament_id', 'tournament_clock_events', ['tournament_id'])

    op.create_table(
        'payout_templates',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('min_players', sa.Integer, nullable=False, server_default='2'),
        sa.Column('max_players', sa.Integer, nullable=True),
        sa.Column('payout_structure', JSON_TYPE, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'tournament_payouts',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('template_id', _uuid(), sa.ForeignKey('payout_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('player_count', sa.Integer, nullable=False),
        sa.Column('total_prize_pool', sa.Integer, nullable=False),
        sa.Column('payout_positions', JSON_TYPE, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'player_deals',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('deal_type', sa.String(20), nullable=False),
        sa.Column('affected_positions', JSON_TYPE, nullable=False),
        sa.Column('custom_payouts', JSON_TYPE, nullable=True),
        sa.Column('total_amount_cents', sa.Integer, nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_by', _uuid(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_player_deals_tournament_id', 'player_deals', ['tournament_id'])

    op.create_table(
        'tournament_results',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('tournament_id', _uuid(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('final_position', sa.Integer, nullable=False),
        sa.Column('prize_cents', sa.Integer, nullable=False, server_default='0'),
        sa.Column('points', sa.Integer, nullable=False, server_default='0'),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tournament_id', 'user_id', name='uq_result_tournament_user'),
        sa.UniqueConstraint('tournament_id', 'final_position', name='uq_result_tournament_position'),
    )
    op.create_index('ix_tournament_results_tournament_id', 'tournament_results', ['tournament_id'])


def downgrade() -> None:
    op.drop_table('tournament_results')
    op.drop_table('player_deals')
    op.drop_table('tournament_payouts')
    op.drop_table('payout_templates')
    op.drop_table('tournament_clock_events')
    op.drop_table('tournament_clocks')
    op.drop_table('table_seat_assignments')
    op.drop_table('tournament_table_assignments')
    op.drop_table('club_tables')
    op.drop_table('tournament_registrations')
    op.drop_table('tournament_entries')
    op.drop_table('tournament_structures')
    op.drop_table('tournaments')
