import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, Numeric, Text, DateTime, Index, JSON, ForeignKey
from ..database import Base
from ..exceptions import InvalidStateTransition
import enum


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


# PENDING -> CONFIRMED | FAILED, CONFIRMED -> CANCELLED, nothing else
ALLOWED_TRANSITIONS = {
    ReservationStatus.PENDING: {ReservationStatus.CONFIRMED, ReservationStatus.FAILED},
    ReservationStatus.CONFIRMED: {ReservationStatus.CANCELLED},
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.FAILED: set(),
}

# Statuses that keep a price code in use
LIVE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


class ReservationSource(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    AGENCY = "AGENCY"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Upstream-issued, empty until confirmed
    booking_number = Column(String(100), nullable=True, index=True)
    hotel_confirmation_number = Column(String(100), nullable=True)
    room_confirmation_codes = Column(JSON, nullable=True)

    # Caller-issued idempotency key
    client_reference_id = Column(String(100), nullable=False, unique=True)

    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    failure_reason = Column(Text, nullable=True)
    source = Column(String(20), default=ReservationSource.CUSTOMER.value)

    # Who booked
    user_id = Column(String(36), nullable=False, index=True)
    agency_id = Column(String(36), ForeignKey("agencies.id", ondelete="SET NULL"), nullable=True, index=True)

    # What was booked
    session_id = Column(String(36), nullable=True)
    room_search_id = Column(String(100), nullable=True)
    feed_id = Column(String(100), nullable=True)
    hotel_code = Column(String(50), nullable=False, index=True)
    room_code = Column(String(100), nullable=False)
    room_name = Column(String(255), nullable=True)
    board_type = Column(String(20), nullable=True)
    price_code = Column(String(255), nullable=False, index=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)

    # Contact & guests
    contact_name = Column(String(100), nullable=False)
    contact_surname = Column(String(100), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50), nullable=True)
    guests = Column(JSON, nullable=False, default=list)

    # Pricing snapshot
    base_price = Column(Numeric(12, 2), nullable=False)
    final_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    applied_rule_id = Column(String(36), nullable=True)
    commission_id = Column(String(36), nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=True)
    cancellation_policy = Column(JSON, nullable=True)
    cancellation_fee = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_reservation_status_created", "status", "created_at"),
    )

    @property
    def status_enum(self) -> ReservationStatus:
        return ReservationStatus(self.status)

    def can_transition_to(self, target: ReservationStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status_enum]

    def transition_to(self, target: ReservationStatus) -> str:
        """
        Move to ``target`` and return the previous status.

        Raises:
            InvalidStateTransition: the lifecycle does not allow the move
        """
        if not self.can_transition_to(target):
            raise InvalidStateTransition(self.status, target.value)
        old_status = self.status
        self.status = target.value
        now = datetime.utcnow()
        if target == ReservationStatus.CONFIRMED:
            self.confirmed_at = now
        elif target == ReservationStatus.CANCELLED:
            self.cancelled_at = now
        self.updated_at = now
        return old_status

    def __repr__(self):
        return f"<Reservation {self.client_reference_id} {self.status}>"
