"""Booking engine schema

Revision ID: 0001
Revises:
Create Date: 2025-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Flights (owned by reference data, read by the booking engine)
    op.create_table('flights',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('flight_number', sa.String(length=10), nullable=False),
        sa.Column('airline_code', sa.String(length=3), nullable=False),
        sa.Column('origin_airport_code', sa.String(length=3), nullable=False),
        sa.Column('destination_airport_code', sa.String(length=3), nullable=False),
        sa.Column('departure_time', sa.DateTime(), nullable=False),
        sa.Column('arrival_time', sa.DateTime(), nullable=False),
        sa.Column('base_fare', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('base_fare >= 0', name='ck_flight_base_fare_non_negative'),
        sa.CheckConstraint('arrival_time > departure_time', name='ck_flight_arrival_after_departure'),
        sa.CheckConstraint('origin_airport_code != destination_airport_code', name='ck_flight_route_distinct_airports'),
        sa.CheckConstraint('length(currency) = 3', name='ck_flight_currency_length'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_flights_flight_number'), 'flights', ['flight_number'], unique=False)
    op.create_index(op.f('ix_flights_airline_code'), 'flights', ['airline_code'], unique=False)
    op.create_index(op.f('ix_flights_departure_time'), 'flights', ['departure_time'], unique=False)
    op.create_index(op.f('ix_flights_status'), 'flights', ['status'], unique=False)

    # Seats
    op.create_table('seats',
        sa.Column('flight_id', sa.Uuid(), nullable=False),
        sa.Column('seat_number', sa.String(length=8), nullable=False),
        sa.Column('seat_class', sa.String(length=16), nullable=False),
        sa.Column('price_modifier', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('length(seat_number) > 0', name='ck_seat_number_not_empty'),
        sa.CheckConstraint("seat_class IN ('economy', 'business', 'first')", name='ck_seat_class_valid'),
        sa.ForeignKeyConstraint(['flight_id'], ['flights.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('flight_id', 'seat_number')
    )
    op.create_index('ix_seats_flight_available', 'seats', ['flight_id', 'is_available'], unique=False)

    # Bookings
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_reference', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('flight_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_amount_non_negative'),
        sa.CheckConstraint('length(booking_reference) > 0', name='ck_booking_reference_not_empty'),
        sa.CheckConstraint('length(user_id) > 0', name='ck_booking_user_id_not_empty'),
        sa.CheckConstraint("status IN ('CONFIRMED', 'CANCELLED')", name='ck_booking_status_valid'),
        sa.ForeignKeyConstraint(['flight_id'], ['flights.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_booking_reference'), 'bookings', ['booking_reference'], unique=True)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_flight_id'), 'bookings', ['flight_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    # Passengers, with the fare charged for their seat
    op.create_table('passengers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('passport_number', sa.String(length=32), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('seat_number', sa.String(length=8), nullable=False),
        sa.Column('seat_class', sa.String(length=16), nullable=False),
        sa.Column('base_fare', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('price_modifier', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('length(first_name) > 0', name='ck_passenger_first_name_not_empty'),
        sa.CheckConstraint('length(last_name) > 0', name='ck_passenger_last_name_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_passengers_booking_id'), 'passengers', ['booking_id'], unique=False)

    # Seat assignments; at most one active row per seat
    op.create_table('seat_assignments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('flight_id', sa.Uuid(), nullable=False),
        sa.Column('seat_number', sa.String(length=8), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['flight_id', 'seat_number'],
            ['seats.flight_id', 'seats.seat_number'],
            name='fk_seat_assignment_seat',
            ondelete='RESTRICT'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_seat_assignments_booking_id'), 'seat_assignments', ['booking_id'], unique=False)
    op.create_index('ix_seat_assignments_flight_active', 'seat_assignments', ['flight_id', 'active'], unique=False)
    op.create_index(
        'uq_seat_assignments_active_seat',
        'seat_assignments',
        ['flight_id', 'seat_number'],
        unique=True,
        postgresql_where=sa.text('active'),
        sqlite_where=sa.text('active')
    )

    # Outbound booking events
    op.create_table('booking_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('flight_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('dispatched_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "event_type IN ('booking_created', 'booking_cancelled')",
            name='ck_booking_event_type_valid'
        ),
        sa.CheckConstraint('attempts >= 0', name='ck_booking_event_attempts_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_events_booking_id'), 'booking_events', ['booking_id'], unique=False)
    op.create_index('ix_booking_events_status_created', 'booking_events', ['status', 'created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_booking_events_status_created', table_name='booking_events')
    op.drop_index(op.f('ix_booking_events_booking_id'), table_name='booking_events')
    op.drop_table('booking_events')

    op.drop_index('uq_seat_assignments_active_seat', table_name='seat_assignments')
    op.drop_index('ix_seat_assignments_flight_active', table_name='seat_assignments')
    op.drop_index(op.f('ix_seat_assignments_booking_id'), table_name='seat_assignments')
    op.drop_table('seat_assignments')

    op.drop_index(op.f('ix_passengers_booking_id'), table_name='passengers')
    op.drop_table('passengers')

    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_flight_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_user_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_booking_reference'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index('ix_seats_flight_available', table_name='seats')
    op.drop_table('seats')

    op.drop_index(op.f('ix_flights_status'), table_name='flights')
    op.drop_index(op.f('ix_flights_departure_time'), table_name='flights')
    op.drop_index(op.f('ix_flights_airline_code'), table_name='flights')
    op.drop_index(op.f('ix_flights_flight_number'), table_name='flights')
    op.drop_table('flights')
