"""Initial broker schema

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

Tables:
- Catalog: currencies, board_types, facilities, room_attributes, locations, hotels
- Pricing: agencies, price_rules, commissions
- Booking: room_search_sessions, reservations
- System: audit_logs
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all database tables."""

    # ===========================================
    # 1. CATALOG (upstream-owned content)
    # ===========================================
    op.create_table(
        'currencies',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(3), unique=True, nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_hidden', sa.Boolean, default=False),
        *_timestamps(),
    )
    op.create_table(
        'board_types',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(20), unique=True, nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_hidden', sa.Boolean, default=False),
        *_timestamps(),
    )
    for table in ('facilities', 'room_attributes'):
        op.create_table(
            table,
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('external_id', sa.String(50), unique=True, nullable=False),
            sa.Column('category', sa.String(100), nullable=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('is_hidden', sa.Boolean, default=False),
            *_timestamps(),
        )
    op.create_table(
        'locations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('external_id', sa.String(50), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('upstream_parent_id', sa.String(50), nullable=True),
        sa.Column('parent_id', sa.String(36), sa.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_featured', sa.Boolean, default=False),
        sa.Column('is_hidden', sa.Boolean, default=False),
        *_timestamps(),
    )
    op.create_table(
        'hotels',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('hotel_code', sa.String(50), unique=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('stars', sa.Integer, nullable=True),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('latitude', sa.Float, nullable=True),
        sa.Column('longitude', sa.Float, nullable=True),
        sa.Column('thumbnail_image', sa.String(500), nullable=True),
        sa.Column('images', sa.JSON, nullable=True),
        sa.Column('facility_ids', sa.JSON, nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('upstream_location_id', sa.String(50), nullable=True),
        # Locally owned
        sa.Column('location_id', sa.String(36), sa.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_featured', sa.Boolean, default=False),
        sa.Column('is_hidden', sa.Boolean, default=False),
        sa.Column('manual_notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_hotels_location_id', 'hotels', ['location_id'])

    # ===========================================
    # 2. PRICING
    # ===========================================
    op.create_table(
        'agencies',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('company_name', sa.String(200), nullable=False),
        sa.Column('discount_rate', sa.Numeric(5, 2), default=0),
        sa.Column('feed_id', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, default=True),
        *_timestamps(),
    )
    op.create_table(
        'price_rules',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('applies_to', sa.String(30), nullable=False),
        sa.Column('agency_id', sa.String(36), sa.ForeignKey('agencies.id', ondelete='CASCADE'), nullable=True),
        sa.Column('hotel_code', sa.String(50), nullable=True),
        sa.Column('board_type', sa.String(20), nullable=True),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('priority', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_price_rule_active_priority', 'price_rules', ['is_active', 'priority'])
    op.create_table(
        'commissions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('agency_id', sa.String(36), sa.ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('hotel_code', sa.String(50), nullable=True),
        sa.Column('board_type', sa.String(20), nullable=True),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('priority', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_commissions_agency_id', 'commissions', ['agency_id'])

    # ===========================================
    # 3. BOOKING
    # ===========================================
    op.create_table(
        'room_search_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('room_search_id', sa.String(100), nullable=False),
        sa.Column('feed_id', sa.String(100), nullable=False),
        sa.Column('hotel_code', sa.String(50), nullable=False),
        sa.Column('check_in', sa.Date, nullable=False),
        sa.Column('check_out', sa.Date, nullable=False),
        sa.Column('occupancy', sa.JSON, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('nationality', sa.String(2), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('agency_id', sa.String(36), nullable=True),
        sa.Column('rooms', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_room_search_sessions_expires_at', 'room_search_sessions', ['expires_at'])
    op.create_index('ix_room_search_hotel', 'room_search_sessions', ['hotel_code'])

    op.create_table(
        'reservations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_number', sa.String(100), nullable=True),
        sa.Column('hotel_confirmation_number', sa.String(100), nullable=True),
        sa.Column('room_confirmation_codes', sa.JSON, nullable=True),
        sa.Column('client_reference_id', sa.String(100), nullable=False, unique=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('failure_reason', sa.Text, nullable=True),
        sa.Column('source', sa.String(20), nullable=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('agency_id', sa.String(36), sa.ForeignKey('agencies.id', ondelete='SET NULL'), nullable=True),
        sa.Column('session_id', sa.String(36), nullable=True),
        sa.Column('room_search_id', sa.String(100), nullable=True),
        sa.Column('feed_id', sa.String(100), nullable=True),
        sa.Column('hotel_code', sa.String(50), nullable=False),
        sa.Column('room_code', sa.String(100), nullable=False),
        sa.Column('room_name', sa.String(255), nullable=True),
        sa.Column('board_type', sa.String(20), nullable=True),
        sa.Column('price_code', sa.String(255), nullable=False),
        sa.Column('check_in', sa.Date, nullable=False),
        sa.Column('check_out', sa.Date, nullable=False),
        sa.Column('contact_name', sa.String(100), nullable=False),
        sa.Column('contact_surname', sa.String(100), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=False),
        sa.Column('contact_phone', sa.String(50), nullable=True),
        sa.Column('guests', sa.JSON, nullable=False),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('applied_rule_id', sa.String(36), nullable=True),
        sa.Column('commission_id', sa.String(36), nullable=True),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('cancellation_policy', sa.JSON, nullable=True),
        sa.Column('cancellation_fee', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('confirmed_at', sa.DateTime, nullable=True),
        sa.Column('cancelled_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_reservations_booking_number', 'reservations', ['booking_number'])
    op.create_index('ix_reservations_user_id', 'reservations', ['user_id'])
    op.create_index('ix_reservations_agency_id', 'reservations', ['agency_id'])
    op.create_index('ix_reservations_hotel_code', 'reservations', ['hotel_code'])
    op.create_index('ix_reservations_price_code', 'reservations', ['price_code'])
    op.create_index('ix_reservation_status_created', 'reservations', ['status', 'created_at'])

    # ===========================================
    # 4. AUDIT
    # ===========================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('entity', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('actor_user_id', sa.String(36), nullable=True),
        sa.Column('payload', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_entity_created', 'audit_logs', ['entity', 'created_at'])


def downgrade() -> None:
    """Drop all tables, children first."""
    for table in (
        'audit_logs', 'reservations', 'room_search_sessions',
        'commissions', 'price_rules', 'agencies',
        'hotels', 'locations', 'room_attributes', 'facilities', 'board_types', 'currencies',
    ):
        op.drop_table(table)
