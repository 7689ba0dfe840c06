"""
Booking Coordinator

Runs the two-system (upstream + local) booking lifecycle:
- create: quote lookup -> price -> persist PENDING -> upstream create -> CONFIRMED/FAILED
- cancel: CONFIRMED -> upstream cancel -> CANCELLED
- reconcile: settle PENDING rows whose upstream outcome was never recorded

This is the only place that moves a reservation between statuses. An
upstream-confirmed booking is never reported as failed because of a local
error: the local write is retried and, failing that, raised as an operator
alert while the row stays PENDING for reconciliation.
"""

import time
import uuid
import random
import string
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from dataclasses import dataclass

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import (
    ConfigurationError,
    DuplicateClientReference,
    Indeterminate,
    InvalidPriceCode,
    InvalidStateTransition,
    PersistenceFailure,
    ReservationNotFound,
    SessionExpired,
    SessionNotFound,
    UpstreamRejected,
    UpstreamUnavailable,
)
from ..models.audit_log import AuditAction, AuditEntity, AuditLog
from ..models.quote import RoomSearchSession
from ..models.reservation import LIVE_STATUSES, Reservation, ReservationSource, ReservationStatus
from ..schemas.booking import ContactIn, RoomGuestsIn
from ..schemas.royal import (
    CONFIRMED_STATUSES,
    REJECTED_STATUSES,
    BookingContact,
    BookingGuest,
    BookingRoom,
    CreateBookingRequest,
)
from ..utils.db_helpers import acquire_row_lock, get_pending_with_skip_locked
from ..utils.logging_config import get_logger
from .access import Actor
from .pricing_engine import PricingEngine
from .quote_cache import QuoteCache
from .royal_client import RoyalClient, get_royal_client

logger = get_logger(__name__)


def generate_client_reference_id() -> str:
    """LB-<epoch millis>-<6 random chars>"""
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"LB-{int(time.time() * 1000)}-{suffix}"


@dataclass
class ReconcileSummary:
    """Result of one reconciliation pass"""
    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    still_pending: int = 0


class BookingCoordinator:
    def __init__(
        self,
        db: Session,
        client: Optional[RoyalClient] = None,
        quote_cache: Optional[QuoteCache] = None,
        pricing_engine: Optional[PricingEngine] = None,
        request_id: Optional[str] = None,
        clock=None
    ):
        self.db = db
        self.request_id = request_id or "no-request-id"
        self._client = client
        self._clock = clock or datetime.utcnow
        self.quote_cache = quote_cache or QuoteCache(db, client=client, clock=self._clock)
        self.pricing = pricing_engine or PricingEngine(db)

        self.persist_retries = max(1, settings.booking_persist_retries)
        self.persist_retry_delay = 0.5

    @property
    def client(self) -> RoyalClient:
        if self._client is None:
            self._client = get_royal_client(request_id=self.request_id)
        return self._client

    def _find_by_client_reference(self, client_reference_id: str) -> Optional[Reservation]:
        return self.db.query(Reservation).filter(
            Reservation.client_reference_id == client_reference_id
        ).first()

    def _commit_pending(self, client_reference_id: str):
        """Commit the PENDING insert, mapping a unique-key clash on the client reference"""
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self._find_by_client_reference(client_reference_id) is None:
                raise
            raise DuplicateClientReference(client_reference_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"Could not store reservation: {e}")

    # ==================
    # Create
    # ==================

    def create_booking(
        self,
        session_id: str,
        room_code: str,
        price_code: str,
        contact: ContactIn,
        guests: List[RoomGuestsIn],
        client_reference_id: str,
        actor: Actor
    ) -> Reservation:
        """
        Book a room from a stored search.

        Returns the reservation (CONFIRMED, or the existing row for a repeated
        client reference).

        Raises:
            SessionExpired: unknown or expired session, before any side effect
            InvalidPriceCode: code not in the session or already booked
            ConfigurationError: no feed id, before any external call
            UpstreamRejected: upstream refused, reservation is FAILED
            Indeterminate: upstream outcome unknown, reservation is PENDING
            PersistenceFailure: upstream confirmed but the local write failed
        """
        try:
            session = self.quote_cache.lookup(session_id)
        except SessionExpired:
            raise
        except SessionNotFound as e:
            raise SessionExpired(e.message)

        room = session.find_room(room_code, price_code)
        if room is None:
            raise InvalidPriceCode(f"Room {room_code} / price code {price_code} is not part of this search")

        existing = self._find_by_client_reference(client_reference_id)
        if existing is not None:
            logger.info(f"[{self.request_id}] Returning existing reservation for {client_reference_id}")
            return existing

        # Serialize concurrent bookings of the same search (PostgreSQL only)
        acquire_row_lock(self.db, RoomSearchSession, RoomSearchSession.id == session.id)

        in_use = self.db.query(Reservation).filter(
            Reservation.price_code == price_code,
            Reservation.status.in_(LIVE_STATUSES)
        ).first()
        if in_use is not None:
            self.db.rollback()
            if in_use.client_reference_id == client_reference_id:
                logger.info(f"[{self.request_id}] Concurrent retry already booked {client_reference_id}, returning it")
                return in_use
            raise InvalidPriceCode(f"Price code {price_code} is already booked")

        agency_id = actor.pricing_agency_id
        price = self.pricing.quote(
            base_price=room["total_price"],
            currency=room.get("currency") or session.currency,
            hotel_code=session.hotel_code,
            board_type=room.get("board_type"),
            agency_id=agency_id,
            booking_date=self._clock().date(),
        )
        feed_id = session.feed_id or settings.resolve_feed_id()

        reservation_id = str(uuid.uuid4())
        reservation = Reservation(
            id=reservation_id,
            client_reference_id=client_reference_id,
            status=ReservationStatus.PENDING.value,
            source=ReservationSource.AGENCY.value if actor.agency_id else ReservationSource.CUSTOMER.value,
            user_id=actor.user_id,
            agency_id=actor.agency_id,
            session_id=session.id,
            room_search_id=session.room_search_id,
            feed_id=feed_id,
            hotel_code=session.hotel_code,
            room_code=room_code,
            room_name=room.get("room_name"),
            board_type=room.get("board_type"),
            price_code=price_code,
            check_in=session.check_in,
            check_out=session.check_out,
            contact_name=contact.name,
            contact_surname=contact.surname,
            contact_email=contact.email,
            contact_phone=contact.phone,
            guests=[g.model_dump(mode="json") for r in guests for g in r.guests],
            base_price=price.base_price,
            final_price=price.final_price,
            currency=price.currency,
            applied_rule_id=price.applied_rule_id,
            commission_id=price.commission_id,
            commission_amount=price.commission if price.commission_id else None,
            cancellation_policy=room.get("cancellation_policies") or [],
        )
        self.db.add(reservation)
        AuditLog.record(
            self.db, AuditEntity.RESERVATION, AuditAction.RESERVATION_CREATED,
            entity_id=reservation_id, actor_user_id=actor.user_id,
            payload={"client_reference_id": client_reference_id, "final_price": price.final_price,
                     "base_price": price.base_price, "applied_rule_id": price.applied_rule_id},
        )

        try:
            self._commit_pending(client_reference_id)
        except DuplicateClientReference:
            twin = self._find_by_client_reference(client_reference_id)
            logger.info(f"[{self.request_id}] Concurrent twin won for {client_reference_id}, returning it")
            return twin

        logger.reservation_created(reservation_id, client_reference_id, str(price.final_price))

        request = CreateBookingRequest(
            feed_id=feed_id,
            room_search_id=session.room_search_id,
            price_code=price_code,
            client_reference_id=client_reference_id,
            contact=BookingContact(**contact.model_dump()),
            rooms=[
                BookingRoom(guests=[BookingGuest(**g.model_dump()) for g in r.guests])
                for r in guests
            ],
        )

        try:
            response = self.client.create_booking(request)
        except UpstreamRejected as e:
            self._mark_failed(reservation_id, e.reason, actor.user_id)
            raise
        except UpstreamUnavailable as e:
            logger.warning(
                f"[{self.request_id}] Upstream outcome unknown for reservation {reservation_id}: {e.message}"
            )
            raise Indeterminate(reservation_id)

        upstream_status = (response.status or "").lower()
        if upstream_status in REJECTED_STATUSES:
            reason = f"Upstream booking {response.booking_number} returned as {response.status}"
            self._mark_failed(reservation_id, reason, actor.user_id)
            raise UpstreamRejected(reason)
        if upstream_status not in CONFIRMED_STATUSES:
            # Accepted but not confirmed (on request, waiting): reconciliation settles it
            self._hold_pending(reservation_id, response.booking_number, response.status)
            raise Indeterminate(
                reservation_id,
                f"Upstream booking {response.booking_number} is {response.status or 'unconfirmed'}, "
                f"reservation {reservation_id} awaits reconciliation",
            )

        def confirm(row: Reservation):
            self._apply_confirmation(
                row,
                booking_number=response.booking_number,
                hotel_confirmation_number=response.hotel_confirmation_number,
                room_confirmation_codes=response.room_confirmation_codes,
                actor_user_id=actor.user_id,
                action=AuditAction.RESERVATION_CONFIRMED,
            )

        try:
            return self._persist_with_retry(reservation_id, confirm, response.booking_number)
        except InvalidStateTransition:
            # Reconciliation settled the row while the upstream call was in flight
            row = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
            if row is not None and row.status == ReservationStatus.CONFIRMED.value:
                return row
            raise

    def _apply_confirmation(
        self,
        row: Reservation,
        booking_number: str,
        hotel_confirmation_number: Optional[str],
        room_confirmation_codes: Optional[List[str]],
        actor_user_id: Optional[str],
        action: AuditAction
    ) -> None:
        old_status = row.transition_to(ReservationStatus.CONFIRMED)
        row.booking_number = booking_number
        row.hotel_confirmation_number = hotel_confirmation_number
        row.room_confirmation_codes = list(room_confirmation_codes or [])
        AuditLog.record(
            self.db, AuditEntity.RESERVATION, action,
            entity_id=row.id, actor_user_id=actor_user_id,
            payload={"old_status": old_status, "new_status": row.status, "booking_number": booking_number},
        )

    def _hold_pending(self, reservation_id: str, booking_number: str, upstream_status: Optional[str]) -> None:
        """Keep the row PENDING but remember the upstream booking number"""
        try:
            row = acquire_row_lock(self.db, Reservation, Reservation.id == reservation_id)
            if row is None or row.status != ReservationStatus.PENDING.value:
                self.db.rollback()
                return
            row.booking_number = booking_number
            AuditLog.record(
                self.db, AuditEntity.RESERVATION, AuditAction.RESERVATION_AWAITING_UPSTREAM,
                entity_id=reservation_id,
                payload={"booking_number": booking_number, "upstream_status": upstream_status},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            # Reconciliation looks the booking up by client reference, the number is not required
            self.db.rollback()
            logger.warning(
                f"[{self.request_id}] Could not store booking number {booking_number} "
                f"on pending reservation {reservation_id}: {e}"
            )
            return
        logger.info(
            f"[{self.request_id}] Upstream booking {booking_number} is {upstream_status}, "
            f"reservation {reservation_id} stays PENDING"
        )

    def _mark_failed(self, reservation_id: str, reason: str, actor_user_id: Optional[str],
                     action: AuditAction = AuditAction.RESERVATION_FAILED) -> bool:
        """Move a PENDING row to FAILED. Returns False when the row was left as is."""
        try:
            row = acquire_row_lock(self.db, Reservation, Reservation.id == reservation_id)
            if row is None or not row.can_transition_to(ReservationStatus.FAILED):
                self.db.rollback()
                logger.info(f"[{self.request_id}] Reservation {reservation_id} already settled, not failing it")
                return False
            old_status = row.transition_to(ReservationStatus.FAILED)
            row.failure_reason = reason[:2000] if reason else None
            AuditLog.record(
                self.db, AuditEntity.RESERVATION, action,
                entity_id=reservation_id, actor_user_id=actor_user_id,
                payload={"old_status": old_status, "new_status": row.status, "reason": reason},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            # Row stays PENDING; reconciliation finds no upstream booking and fails it
            self.db.rollback()
            logger.error(f"[{self.request_id}] Could not mark reservation {reservation_id} FAILED: {e}")
            return False
        logger.reservation_status_changed(reservation_id, old_status, row.status, reason=reason)
        return True

    def _persist_with_retry(
        self,
        reservation_id: str,
        apply: Callable[[Reservation], None],
        booking_number: Optional[str],
        left_status: ReservationStatus = ReservationStatus.PENDING,
        change: str = "confirmed"
    ) -> Reservation:
        """
        Apply a status change that upstream has already made and commit it,
        retrying the local write. Raises PersistenceFailure with an operator
        alert when every attempt fails.
        """
        last_error = None
        for attempt in range(self.persist_retries):
            try:
                row = acquire_row_lock(self.db, Reservation, Reservation.id == reservation_id)
                if row is None:
                    raise ReservationNotFound(f"Reservation {reservation_id} not found")
                old_status = row.status
                try:
                    apply(row)
                except InvalidStateTransition:
                    self.db.rollback()
                    raise
                self.db.commit()
                logger.reservation_status_changed(
                    reservation_id, old_status, row.status, booking_number=booking_number
                )
                return row
            except SQLAlchemyError as e:
                self.db.rollback()
                last_error = e
                logger.warning(
                    f"[{self.request_id}] Local write for reservation {reservation_id} failed "
                    f"(attempt {attempt + 1}/{self.persist_retries}): {e}"
                )
                if attempt + 1 < self.persist_retries and self.persist_retry_delay:
                    time.sleep(self.persist_retry_delay * (2 ** attempt))

        logger.operator_alert(
            f"Upstream booking {booking_number} was {change} upstream but not recorded locally; "
            f"reservation {reservation_id} left {left_status.value}",
            entity_id=reservation_id,
            booking_number=booking_number,
            left_status=left_status.value,
            error=str(last_error),
        )
        raise PersistenceFailure(
            f"Booking {booking_number} {change} upstream but could not be stored",
            booking_number=booking_number,
        )

    # ==================
    # Cancel
    # ==================

    def cancel_booking(self, reservation_id: str, actor: Actor) -> Reservation:
        """
        Cancel a CONFIRMED reservation upstream, then locally.

        Upstream failures leave the reservation untouched and propagate.
        """
        reservation = acquire_row_lock(self.db, Reservation, Reservation.id == reservation_id)
        if reservation is None:
            raise ReservationNotFound(f"Reservation {reservation_id} not found")

        if not reservation.can_transition_to(ReservationStatus.CANCELLED):
            current = reservation.status
            self.db.rollback()
            raise InvalidStateTransition(current, ReservationStatus.CANCELLED.value)

        booking_number = reservation.booking_number
        try:
            response = self.client.cancel_booking(booking_number)
        except (UpstreamRejected, UpstreamUnavailable):
            self.db.rollback()
            raise

        def cancel(row: Reservation):
            old_status = row.transition_to(ReservationStatus.CANCELLED)
            row.cancellation_fee = response.cancellation_fee
            AuditLog.record(
                self.db, AuditEntity.RESERVATION, AuditAction.RESERVATION_CANCELLED,
                entity_id=row.id, actor_user_id=actor.user_id,
                payload={"old_status": old_status, "new_status": row.status,
                         "cancellation_fee": response.cancellation_fee, "currency": response.currency},
            )

        return self._persist_with_retry(
            reservation_id, cancel, booking_number,
            left_status=ReservationStatus.CONFIRMED, change="cancelled",
        )

    # ==================
    # Reconciliation
    # ==================

    def reconcile_pending(self, older_than: Optional[timedelta] = None) -> ReconcileSummary:
        """
        Settle PENDING reservations older than the grace window by asking
        upstream what happened to their client reference.
        """
        grace = older_than if older_than is not None else timedelta(seconds=settings.reconcile_grace_seconds)
        cutoff = self._clock() - grace
        summary = ReconcileSummary()

        pending = get_pending_with_skip_locked(
            self.db,
            Reservation,
            and_(
                Reservation.status == ReservationStatus.PENDING.value,
                Reservation.created_at <= cutoff
            ),
            order_by=Reservation.created_at,
            limit=settings.reconcile_batch_size
        )
        targets = [(r.id, r.client_reference_id) for r in pending]

        for index, (reservation_id, client_reference_id) in enumerate(targets):
            summary.checked += 1
            try:
                detail = self.client.find_reservation(client_reference_id)
            except ConfigurationError as e:
                # Every further lookup would fail the same way
                remaining = len(targets) - index
                logger.error(f"[{self.request_id}] Reconciliation stopped, {remaining} rows left PENDING: {e.message}")
                summary.checked += remaining - 1
                summary.still_pending += remaining
                break
            except (UpstreamUnavailable, UpstreamRejected) as e:
                logger.warning(f"[{self.request_id}] Reconcile lookup failed for {client_reference_id}: {e.message}")
                summary.still_pending += 1
                continue

            if detail is None:
                if self._mark_failed(reservation_id, "No upstream booking for this client reference",
                                     None, action=AuditAction.RESERVATION_RECONCILED):
                    summary.failed += 1
                else:
                    summary.still_pending += 1
                continue

            upstream_status = (detail.status or "").lower()
            if upstream_status in CONFIRMED_STATUSES:
                def confirm(row: Reservation, detail=detail):
                    self._apply_confirmation(
                        row,
                        booking_number=detail.booking_number,
                        hotel_confirmation_number=detail.hotel_confirmation_number,
                        room_confirmation_codes=detail.room_confirmation_codes,
                        actor_user_id=None,
                        action=AuditAction.RESERVATION_RECONCILED,
                    )
                try:
                    self._persist_with_retry(reservation_id, confirm, detail.booking_number)
                except PersistenceFailure:
                    summary.still_pending += 1
                    continue
                except InvalidStateTransition:
                    logger.info(f"[{self.request_id}] Reservation {reservation_id} settled by another worker")
                    continue
                summary.confirmed += 1
            elif upstream_status in REJECTED_STATUSES:
                if self._mark_failed(reservation_id, f"Upstream status {detail.status}",
                                     None, action=AuditAction.RESERVATION_RECONCILED):
                    summary.failed += 1
                else:
                    summary.still_pending += 1
            else:
                summary.still_pending += 1

        # Release any skip-locked rows we did not touch
        self.db.commit()

        if summary.checked:
            logger.info(
                f"Reconciled {summary.checked} pending reservations: {summary.confirmed} confirmed, "
                f"{summary.failed} failed, {summary.still_pending} still pending"
            )
        return summary
