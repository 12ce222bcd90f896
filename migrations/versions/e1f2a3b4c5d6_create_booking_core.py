"""create booking core tables

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'booking_slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('responder_id', sa.String(length=64), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('timezone', sa.String(length=100), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_free', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('held_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('responder_id', 'start_time', 'end_time', name='uq_responder_timeslot'),
        sa.CheckConstraint('end_time > start_time', name='ck_slot_time_range'),
        sa.CheckConstraint('price_cents >= 0', name='ck_slot_price_non_negative'),
    )
    with op.batch_alter_table('booking_slots', schema=None) as batch_op:
        batch_op.create_index('ix_booking_slots_responder_id', ['responder_id'], unique=False)
        batch_op.create_index('ix_booking_slots_start_time', ['start_time'], unique=False)
        batch_op.create_index('ix_slots_responder_status', ['responder_id', 'status'], unique=False)

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('requester_id', sa.String(length=64), nullable=False),
        sa.Column('responder_id', sa.String(length=64), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=True),
        sa.Column('session_id', sa.String(length=64), nullable=True),
        sa.Column('scheduled_start', sa.DateTime(), nullable=False),
        sa.Column('scheduled_end', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('timezone', sa.String(length=100), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('platform_fee_cents', sa.Integer(), nullable=False),
        sa.Column('responder_payout_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('canceled_by', sa.String(length=64), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('held_until', sa.DateTime(), nullable=True),
        sa.Column('hold_token', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['slot_id'], ['booking_slots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_token', name='uq_booking_hold_token'),
        sa.CheckConstraint('price_cents >= 0', name='ck_booking_price_non_negative'),
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index('ix_bookings_requester_id', ['requester_id'], unique=False)
        batch_op.create_index('ix_bookings_responder_id', ['responder_id'], unique=False)
        batch_op.create_index('ix_bookings_slot_id', ['slot_id'], unique=False)
        batch_op.create_index('ix_bookings_scheduled_start', ['scheduled_start'], unique=False)
        batch_op.create_index('ix_bookings_payment_intent_id', ['payment_intent_id'], unique=False)
        batch_op.create_index('ix_bookings_status_held_until', ['status', 'held_until'], unique=False)

    op.create_table(
        'booking_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('booking_events', schema=None) as batch_op:
        batch_op.create_index('ix_booking_events_booking_id', ['booking_id'], unique=False)
        batch_op.create_index('ix_booking_events_published_at', ['published_at'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('detail_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_booking_id', ['booking_id'], unique=False)


def downgrade():
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_booking_id')
    op.drop_table('audit_logs')
    with op.batch_alter_table('booking_events', schema=None) as batch_op:
        batch_op.drop_index('ix_booking_events_published_at')
        batch_op.drop_index('ix_booking_events_booking_id')
    op.drop_table('booking_events')
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.drop_index('ix_bookings_status_held_until')
        batch_op.drop_index('ix_bookings_payment_intent_id')
        batch_op.drop_index('ix_bookings_scheduled_start')
        batch_op.drop_index('ix_bookings_slot_id')
        batch_op.drop_index('ix_bookings_responder_id')
        batch_op.drop_index('ix_bookings_requester_id')
    op.drop_table('bookings')
    with op.batch_alter_table('booking_slots', schema=None) as batch_op:
        batch_op.drop_index('ix_slots_responder_status')
        batch_op.drop_index('ix_booking_slots_start_time')
        batch_op.drop_index('ix_booking_slots_responder_id')
    op.drop_table('booking_slots')
