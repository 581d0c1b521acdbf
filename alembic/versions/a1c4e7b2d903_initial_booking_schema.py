"""initial booking schema

Revision ID: a1c4e7b2d903
Revises:
Create Date: 2026-10-16 09:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c4e7b2d903'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

appointment_kind = postgresql.ENUM('booking', 'session', name='appointment_kind', create_type=False)
appointment_status = postgresql.ENUM(
    'pending', 'confirmed', 'scheduled', 'cancelled', 'completed', 'no_show',
    name='appointment_status', create_type=False,
)
rsvp_status = postgresql.ENUM(
    'pending', 'accepted', 'declined', 'reschedule_requested',
    name='rsvp_status', create_type=False,
)


def _practitioner_fk():
    return sa.Column(
        'practitioner_id', UUID,
        sa.ForeignKey('practitioners.id', ondelete='CASCADE'), nullable=False,
    )


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    appointment_kind.create(op.get_bind(), checkfirst=True)
    appointment_status.create(op.get_bind(), checkfirst=True)
    rsvp_status.create(op.get_bind(), checkfirst=True)

    # 1. Practitioners (profile data owned elsewhere)
    op.create_table(
        'practitioners',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('is_published', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('accepts_online_booking', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_practitioners_slug', 'practitioners', ['slug'], unique=True)

    # 2. Booking settings, one row per practitioner
    op.create_table(
        'booking_settings',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('practitioner_id', UUID, sa.ForeignKey('practitioners.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('slot_duration_minutes', sa.Integer, nullable=False, server_default='60'),
        sa.Column('buffer_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('min_booking_notice_hours', sa.Integer, nullable=False, server_default='24'),
        sa.Column('max_booking_days_ahead', sa.Integer, nullable=False, server_default='60'),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Europe/London'),
        sa.Column('requires_approval', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('send_rsvp_reminders', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('rsvp_first_reminder_hours', sa.Integer, nullable=False, server_default='24'),
        sa.Column('rsvp_second_reminder_hours', sa.Integer, nullable=False, server_default='48'),
        sa.Column('send_client_session_reminders', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('client_session_reminder_24h', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('client_session_reminder_1h', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('send_visitor_reminders', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('send_practitioner_reminders', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('slot_duration_minutes BETWEEN 15 AND 240', name='ck_booking_settings_slot_duration'),
        sa.CheckConstraint('buffer_minutes BETWEEN 0 AND 60', name='ck_booking_settings_buffer'),
        sa.CheckConstraint('min_booking_notice_hours BETWEEN 0 AND 168', name='ck_booking_settings_notice'),
        sa.CheckConstraint('max_booking_days_ahead BETWEEN 1 AND 365', name='ck_booking_settings_days_ahead'),
    )

    # 3. Weekly rules and date overrides
    op.create_table(
        'availability_rules',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _practitioner_fk(),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day'),
        sa.CheckConstraint('start_time < end_time', name='ck_availability_rules_range'),
    )
    op.create_index('ix_availability_rules_practitioner_id', 'availability_rules', ['practitioner_id'])

    op.create_table(
        'availability_overrides',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _practitioner_fk(),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False),
        sa.Column('start_time', sa.Time, nullable=True),
        sa.Column('end_time', sa.Time, nullable=True),
        sa.Column('reason', sa.String, nullable=True),
        sa.UniqueConstraint('practitioner_id', 'date', name='uq_availability_override_date'),
        sa.CheckConstraint(
            'NOT is_available OR (start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time)',
            name='ck_availability_overrides_times',
        ),
    )
    op.create_index('ix_availability_overrides_practitioner_id', 'availability_overrides', ['practitioner_id'])

    # 4. External calendars and their busy-time cache
    op.create_table(
        'calendar_integrations',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _practitioner_fk(),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('access_token_encrypted', sa.LargeBinary),
        sa.Column('refresh_token_encrypted', sa.LargeBinary),
        sa.Column('token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('provider_config', sa.JSON),
        sa.Column('last_sync_at', sa.DateTime(timezone=True)),
        sa.Column('last_sync_status', sa.String(20)),
        sa.Column('last_sync_error', sa.Text),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('practitioner_id', 'provider', name='uq_calendar_integration_provider'),
    )
    op.create_index('ix_calendar_integrations_practitioner_id', 'calendar_integrations', ['practitioner_id'])

    op.create_table(
        'calendar_busy_times',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _practitioner_fk(),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('fetched_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_calendar_busy_times_practitioner_id', 'calendar_busy_times', ['practitioner_id'])
    op.create_index('idx_calendar_busy_times_range', 'calendar_busy_times', ['practitioner_id', 'starts_at', 'ends_at'])

    # 5. Booking ledger
    op.create_table(
        'appointments',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        _practitioner_fk(),
        sa.Column('kind', appointment_kind, nullable=False),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('session_date', sa.Date, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('client_name', sa.String(200), nullable=False),
        sa.Column('client_email', sa.String(320), nullable=False),
        sa.Column('client_phone', sa.String(40)),
        sa.Column('session_format', sa.String(40)),
        sa.Column('notes', sa.Text),
        sa.Column('verification_token', sa.String(64), unique=True),
        sa.Column('verification_expires_at', sa.DateTime(timezone=True)),
        sa.Column('verified_at', sa.DateTime(timezone=True)),
        sa.Column('visitor_token', sa.String(64), unique=True),
        sa.Column('rsvp_status', rsvp_status),
        sa.Column('rsvp_token', sa.String(64), unique=True),
        sa.Column('rsvp_token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('rsvp_responded_at', sa.DateTime(timezone=True)),
        sa.Column('proposed_date', sa.Date),
        sa.Column('proposed_start_time', sa.Time),
        sa.Column('proposed_end_time', sa.Time),
        sa.Column('proposed_message', sa.Text),
        sa.Column('rsvp_reminder_1_sent_at', sa.DateTime(timezone=True)),
        sa.Column('rsvp_reminder_2_sent_at', sa.DateTime(timezone=True)),
        sa.Column('reminder_24h_sent_at', sa.DateTime(timezone=True)),
        sa.Column('reminder_1h_sent_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('confirmed_at', sa.DateTime(timezone=True)),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_by', sa.String(20)),
        sa.Column('cancellation_reason', sa.Text),
        sa.CheckConstraint('start_time < end_time', name='ck_appointments_range'),
    )
    op.create_index('ix_appointments_practitioner_id', 'appointments', ['practitioner_id'])
    op.create_index('ix_appointments_session_date', 'appointments', ['session_date'])
    op.create_index('idx_appointments_reminder_scan', 'appointments', ['status', 'session_date'])

    # Two blocking appointments of one practitioner may never overlap
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
        "EXCLUDE USING gist ("
        "practitioner_id WITH =, "
        "tsrange(session_date + start_time, session_date + end_time, '[)') WITH &&"
        ") WHERE (status IN ('pending', 'confirmed', 'scheduled'))"
    )

    # 6. Verified visitor e-mails
    op.create_table(
        'verified_visitor_emails',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_verified_visitor_emails_email', 'verified_visitor_emails', ['email'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('verified_visitor_emails')
    op.drop_table('appointments')
    op.drop_table('calendar_busy_times')
    op.drop_table('calendar_integrations')
    op.drop_table('availability_overrides')
    op.drop_table('availability_rules')
    op.drop_table('booking_settings')
    op.drop_table('practitioners')

    rsvp_status.drop(op.get_bind(), checkfirst=True)
    appointment_status.drop(op.get_bind(), checkfirst=True)
    appointment_kind.drop(op.get_bind(), checkfirst=True)
