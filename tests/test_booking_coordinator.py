"""
Tests for the Booking Coordinator

Tests cover:
- Happy path: PENDING -> CONFIRMED with the upstream booking number
- Validation before side effects (unknown price code, expired session)
- Idempotent retries, including two requests racing on one client reference
- Upstream rejection -> FAILED, timeout -> Indeterminate + reconciliation
- Cancellation and the reservation state machine
- Upstream statuses other than confirmed (on request, rejected)
- Local write failure after an upstream confirmation or cancellation
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from broker.exceptions import (
    ConfigurationError,
    Indeterminate,
    InvalidPriceCode,
    InvalidStateTransition,
    PersistenceFailure,
    SessionExpired,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from broker.models.audit_log import AuditLog
from broker.models.pricing import Agency, PriceRule
from broker.models.reservation import Reservation, ReservationStatus
from broker.schemas.booking import ContactIn, GuestIn, RoomGuestsIn
from broker.schemas.royal import CancelBookingResponse, CreateBookingResponse, ReservationDetailResponse
from broker.services.access import Actor, ActorRole
from broker.services import booking_coordinator
from broker.services.booking_coordinator import BookingCoordinator, generate_client_reference_id

from conftest import make_room

CUSTOMER = Actor(user_id="user-1")


def contact():
    return ContactIn(name="Ada", surname="Lovelace", email="ada@example.com", phone="+905551112233")


def guests():
    return [RoomGuestsIn(guests=[GuestIn(name="Ada", surname="Lovelace", gender="Female")])]


def confirmed_response(booking_number="BK-1"):
    return CreateBookingResponse(
        booking_number=booking_number,
        status="Confirmed",
        hotel_confirmation_number="HC-1",
        room_confirmation_codes=["RC-1"],
    )


@pytest.fixture
def coordinator(db_session, upstream):
    coordinator = BookingCoordinator(db_session, client=upstream, request_id="test")
    coordinator.persist_retry_delay = 0
    return coordinator


def book(coordinator, session, client_reference_id="LB-1", price_code="PC-1", room_code="DBL", actor=CUSTOMER):
    return coordinator.create_booking(
        session_id=session.id,
        room_code=room_code,
        price_code=price_code,
        contact=contact(),
        guests=guests(),
        client_reference_id=client_reference_id,
        actor=actor,
    )


class TestCreateBooking:
    def test_confirmed_booking(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = confirmed_response()

        reservation = book(coordinator, session)

        assert reservation.status == ReservationStatus.CONFIRMED.value
        assert reservation.booking_number == "BK-1"
        assert reservation.hotel_confirmation_number == "HC-1"
        assert reservation.room_confirmation_codes == ["RC-1"]
        assert reservation.final_price == Decimal("1000.00")
        assert reservation.confirmed_at is not None
        assert reservation.guests[0]["name"] == "Ada"

        request = upstream.create_booking.call_args[0][0]
        assert request.client_reference_id == "LB-1"
        assert request.room_search_id == "rs-123"
        assert request.to_wire()["rooms"][0]["guests"][0]["gender"] == "Female"

        actions = [e.action for e in db_session.query(AuditLog).order_by(AuditLog.created_at).all()]
        assert "reservation_created" in actions
        assert "reservation_confirmed" in actions

    def test_agency_booking_is_priced_for_the_agency(self, db_session, coordinator, upstream, make_search):
        db_session.add(Agency(id="A1", company_name="Acme", discount_rate=Decimal("0"), is_active=True))
        db_session.add(PriceRule(
            id="r-a1", name="Acme deal", type="PERCENTAGE_DISCOUNT", value=Decimal("10"),
            applies_to="SPECIFIC_AGENCY", agency_id="A1", priority=1, is_active=True,
        ))
        db_session.commit()
        session = make_search(agency_id="A1")
        upstream.create_booking.return_value = confirmed_response()

        reservation = book(coordinator, session, actor=Actor(user_id="agent-1", role=ActorRole.AGENCY, agency_id="A1"))

        assert reservation.final_price == Decimal("900.00")
        assert reservation.applied_rule_id == "r-a1"
        assert reservation.agency_id == "A1"
        assert reservation.source == "AGENCY"

    def test_unknown_price_code_creates_nothing(self, db_session, coordinator, upstream, make_search):
        session = make_search()

        with pytest.raises(InvalidPriceCode):
            book(coordinator, session, price_code="NOT-IN-SEARCH")

        assert db_session.query(Reservation).count() == 0
        upstream.create_booking.assert_not_called()

    def test_expired_session_creates_nothing(self, db_session, coordinator, upstream, make_search):
        session = make_search(expires_in=timedelta(seconds=-5))

        with pytest.raises(SessionExpired):
            book(coordinator, session)

        assert db_session.query(Reservation).count() == 0

    def test_unknown_session_is_reported_as_expired(self, db_session, coordinator, upstream):
        with pytest.raises(SessionExpired):
            coordinator.create_booking(
                session_id="no-such-session", room_code="DBL", price_code="PC-1", contact=contact(),
                guests=guests(), client_reference_id="LB-1", actor=CUSTOMER,
            )

        assert db_session.query(Reservation).count() == 0
        upstream.create_booking.assert_not_called()

    def test_retry_on_expired_session_stays_expired(self, db_session, coordinator, upstream, make_search):
        session = make_search(expires_in=timedelta(seconds=-5))

        for _ in range(2):
            with pytest.raises(SessionExpired) as exc_info:
                book(coordinator, session)
            assert exc_info.value.code == "session_expired"

        upstream.create_booking.assert_not_called()

    def test_price_code_in_use_by_another_reference(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = confirmed_response()
        book(coordinator, session, client_reference_id="LB-1")

        with pytest.raises(InvalidPriceCode):
            book(coordinator, session, client_reference_id="LB-2")

        assert upstream.create_booking.call_count == 1

    def test_generated_client_reference_format(self):
        ref = generate_client_reference_id()
        prefix, millis, suffix = ref.split("-")
        assert prefix == "LB"
        assert millis.isdigit()
        assert len(suffix) == 6


class TestIdempotency:
    def test_retry_returns_same_reservation(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = confirmed_response()

        first = book(coordinator, session)
        second = book(coordinator, session)

        assert first.id == second.id
        assert db_session.query(Reservation).count() == 1
        upstream.create_booking.assert_called_once()

    def test_racing_retry_behind_the_session_lock(self, db_session, coordinator, upstream, make_search):
        """The twin committed after our first lookup: it is returned, upstream is called once"""
        session = make_search()
        upstream.create_booking.return_value = confirmed_response()
        twin = book(coordinator, session)

        with patch.object(coordinator, "_find_by_client_reference", return_value=None):
            result = book(coordinator, session)

        assert result.id == twin.id
        assert db_session.query(Reservation).count() == 1
        upstream.create_booking.assert_called_once()

    def test_racing_retry_on_unique_constraint(self, db_session, coordinator, upstream, make_search):
        """The twin's insert won the unique constraint: our insert is dropped and the twin returned"""
        session = make_search()
        upstream.create_booking.side_effect = UpstreamRejected("Sold out", 422)
        with pytest.raises(UpstreamRejected):
            book(coordinator, session)
        twin_id = db_session.query(Reservation).one().id

        real_find = coordinator._find_by_client_reference
        calls = []

        def miss_first_lookup(client_reference_id):
            calls.append(client_reference_id)
            if len(calls) == 1:
                return None
            return real_find(client_reference_id)

        with patch.object(coordinator, "_find_by_client_reference", side_effect=miss_first_lookup):
            result = book(coordinator, session)

        assert result.id == twin_id
        assert db_session.query(Reservation).count() == 1
        assert upstream.create_booking.call_count == 1


class TestUpstreamOutcomes:
    def test_rejection_marks_failed_and_frees_price_code(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.side_effect = UpstreamRejected("Room no longer available", 422)

        with pytest.raises(UpstreamRejected):
            book(coordinator, session, client_reference_id="LB-1")

        row = db_session.query(Reservation).one()
        assert row.status == ReservationStatus.FAILED.value
        assert row.failure_reason == "Room no longer available"

        upstream.create_booking.side_effect = None
        upstream.create_booking.return_value = confirmed_response("BK-2")
        retry = book(coordinator, session, client_reference_id="LB-2")
        assert retry.status == ReservationStatus.CONFIRMED.value

    def test_timeout_is_indeterminate_then_reconciled(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.side_effect = UpstreamTimeout("read timed out")

        with pytest.raises(Indeterminate) as exc_info:
            book(coordinator, session, client_reference_id="LB-77")

        row = db_session.query(Reservation).filter(Reservation.id == exc_info.value.reservation_id).one()
        assert row.status == ReservationStatus.PENDING.value

        upstream.find_reservation.return_value = ReservationDetailResponse(
            booking_number="BK-77", client_reference_id="LB-77", status="Confirmed",
            hotel_confirmation_number="HC-77",
        )
        summary = coordinator.reconcile_pending(older_than=timedelta(0))

        assert summary.checked == 1
        assert summary.confirmed == 1
        db_session.refresh(row)
        assert row.status == ReservationStatus.CONFIRMED.value
        assert row.booking_number == "BK-77"
        upstream.find_reservation.assert_called_once_with("LB-77")

    def test_connection_error_is_indeterminate(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.side_effect = UpstreamUnavailable("connection reset")

        with pytest.raises(Indeterminate):
            book(coordinator, session)

        assert db_session.query(Reservation).one().status == ReservationStatus.PENDING.value

    def test_upstream_status_is_matched_case_insensitively(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = CreateBookingResponse(booking_number="BK-5", status="CONFIRMED")

        reservation = book(coordinator, session)

        assert reservation.status == ReservationStatus.CONFIRMED.value
        assert reservation.booking_number == "BK-5"

    @pytest.mark.parametrize("upstream_status", ["OnRequest", "Pending", None])
    def test_accepted_but_unconfirmed_stays_pending(self, db_session, coordinator, upstream, make_search,
                                                    upstream_status):
        session = make_search()
        upstream.create_booking.return_value = CreateBookingResponse(booking_number="BK-9", status=upstream_status)

        with pytest.raises(Indeterminate) as exc_info:
            book(coordinator, session, client_reference_id="LB-9")

        row = db_session.query(Reservation).filter(Reservation.id == exc_info.value.reservation_id).one()
        assert row.status == ReservationStatus.PENDING.value
        assert row.booking_number == "BK-9"
        assert row.confirmed_at is None
        actions = [e.action for e in db_session.query(AuditLog).all()]
        assert "reservation_awaiting_upstream" in actions
        assert "reservation_confirmed" not in actions

    def test_on_request_booking_settled_by_reconciliation(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = CreateBookingResponse(booking_number="BK-9", status="OnRequest")
        with pytest.raises(Indeterminate):
            book(coordinator, session, client_reference_id="LB-9")

        upstream.find_reservation.return_value = ReservationDetailResponse(
            booking_number="BK-9", client_reference_id="LB-9", status="Confirmed",
        )
        summary = coordinator.reconcile_pending(older_than=timedelta(0))

        assert summary.confirmed == 1
        assert db_session.query(Reservation).one().status == ReservationStatus.CONFIRMED.value

    def test_rejected_status_marks_failed(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = CreateBookingResponse(booking_number="BK-4", status="Rejected")

        with pytest.raises(UpstreamRejected) as exc_info:
            book(coordinator, session, client_reference_id="LB-4")

        assert "Rejected" in exc_info.value.reason
        row = db_session.query(Reservation).one()
        assert row.status == ReservationStatus.FAILED.value
        assert "BK-4" in row.failure_reason

        # The price code is free again
        upstream.create_booking.return_value = confirmed_response("BK-5")
        assert book(coordinator, session, client_reference_id="LB-5").status == ReservationStatus.CONFIRMED.value


class TestReconciliation:
    def _pending(self, coordinator, upstream, session, ref):
        upstream.create_booking.side_effect = UpstreamTimeout("timed out")
        with pytest.raises(Indeterminate) as exc_info:
            book(coordinator, session, client_reference_id=ref, price_code=f"PC-{ref}", room_code="DBL")
        return exc_info.value.reservation_id

    def test_outcomes(self, db_session, coordinator, upstream, make_search):
        session = make_search(rooms=[
            make_room(price_code="PC-LB-A"),
            make_room(price_code="PC-LB-B"),
            make_room(price_code="PC-LB-C"),
            make_room(price_code="PC-LB-D"),
        ])
        ids = {ref: self._pending(coordinator, upstream, session, ref) for ref in ("LB-A", "LB-B", "LB-C", "LB-D")}

        def find(client_reference_id):
            if client_reference_id == "LB-A":
                return ReservationDetailResponse(booking_number="BK-A", status="BOOKED")
            if client_reference_id == "LB-B":
                return None
            if client_reference_id == "LB-C":
                return ReservationDetailResponse(booking_number="BK-C", status="Rejected")
            raise UpstreamUnavailable("down")

        upstream.find_reservation.side_effect = find
        summary = coordinator.reconcile_pending(older_than=timedelta(0))

        assert (summary.checked, summary.confirmed, summary.failed, summary.still_pending) == (4, 1, 2, 1)
        status = {ref: db_session.get(Reservation, rid).status for ref, rid in ids.items()}
        assert status == {"LB-A": "CONFIRMED", "LB-B": "FAILED", "LB-C": "FAILED", "LB-D": "PENDING"}

    def test_unknown_upstream_status_stays_pending(self, db_session, coordinator, upstream, make_search):
        session = make_search(rooms=[make_room(price_code="PC-LB-X")])
        rid = self._pending(coordinator, upstream, session, "LB-X")
        upstream.find_reservation.return_value = ReservationDetailResponse(booking_number="BK-X", status="Processing")

        summary = coordinator.reconcile_pending(older_than=timedelta(0))

        assert summary.still_pending == 1
        assert db_session.get(Reservation, rid).status == "PENDING"

    def test_grace_window_skips_fresh_rows(self, db_session, coordinator, upstream, make_search):
        session = make_search(rooms=[make_room(price_code="PC-LB-Y")])
        self._pending(coordinator, upstream, session, "LB-Y")

        summary = coordinator.reconcile_pending(older_than=timedelta(hours=1))

        assert summary.checked == 0
        upstream.find_reservation.assert_not_called()

    def test_missing_credentials_stop_the_pass(self, db_session, coordinator, upstream, make_search):
        session = make_search(rooms=[make_room(price_code="PC-LB-E"), make_room(price_code="PC-LB-F")])
        ids = [self._pending(coordinator, upstream, session, ref) for ref in ("LB-E", "LB-F")]
        upstream.find_reservation.side_effect = ConfigurationError("Royal API credentials are not configured")

        summary = coordinator.reconcile_pending(older_than=timedelta(0))

        assert (summary.checked, summary.confirmed, summary.failed, summary.still_pending) == (2, 0, 0, 2)
        assert upstream.find_reservation.call_count == 1
        assert {db_session.get(Reservation, rid).status for rid in ids} == {"PENDING"}


class TestCancellation:
    def _confirmed(self, coordinator, upstream, make_search):
        upstream.create_booking.return_value = confirmed_response()
        return book(coordinator, make_search())

    def test_cancel_confirmed(self, db_session, coordinator, upstream, make_search):
        reservation = self._confirmed(coordinator, upstream, make_search)
        upstream.cancel_booking.return_value = CancelBookingResponse(
            booking_number="BK-1", status="Cancelled", cancellation_fee=Decimal("50"), currency="EUR",
        )

        cancelled = coordinator.cancel_booking(reservation.id, CUSTOMER)

        assert cancelled.status == ReservationStatus.CANCELLED.value
        assert cancelled.cancellation_fee == Decimal("50.00")
        assert cancelled.cancelled_at is not None
        upstream.cancel_booking.assert_called_once_with("BK-1")

    def test_upstream_cancel_failure_keeps_confirmed(self, db_session, coordinator, upstream, make_search):
        reservation = self._confirmed(coordinator, upstream, make_search)
        upstream.cancel_booking.side_effect = UpstreamUnavailable("down")

        with pytest.raises(UpstreamUnavailable):
            coordinator.cancel_booking(reservation.id, CUSTOMER)

        db_session.refresh(reservation)
        assert reservation.status == ReservationStatus.CONFIRMED.value

    def test_cancelled_cannot_be_cancelled_again(self, db_session, coordinator, upstream, make_search):
        reservation = self._confirmed(coordinator, upstream, make_search)
        upstream.cancel_booking.return_value = CancelBookingResponse(booking_number="BK-1")
        coordinator.cancel_booking(reservation.id, CUSTOMER)

        with pytest.raises(InvalidStateTransition):
            coordinator.cancel_booking(reservation.id, CUSTOMER)

        assert upstream.cancel_booking.call_count == 1

    def test_pending_cannot_be_cancelled(self, db_session, coordinator, upstream, make_search):
        upstream.create_booking.side_effect = UpstreamTimeout("timed out")
        with pytest.raises(Indeterminate) as exc_info:
            book(coordinator, make_search())

        with pytest.raises(InvalidStateTransition):
            coordinator.cancel_booking(exc_info.value.reservation_id, CUSTOMER)
        upstream.cancel_booking.assert_not_called()


class TestStateMachine:
    @pytest.mark.parametrize("target", [ReservationStatus.PENDING, ReservationStatus.FAILED,
                                        ReservationStatus.CONFIRMED])
    def test_confirmed_only_moves_to_cancelled(self, target):
        reservation = Reservation(status=ReservationStatus.CONFIRMED.value)
        with pytest.raises(InvalidStateTransition):
            reservation.transition_to(target)

    @pytest.mark.parametrize("terminal", [ReservationStatus.CANCELLED, ReservationStatus.FAILED])
    def test_terminal_statuses(self, terminal):
        reservation = Reservation(status=terminal.value)
        for target in ReservationStatus:
            assert not reservation.can_transition_to(target)

    def test_pending_transitions(self):
        reservation = Reservation(status=ReservationStatus.PENDING.value)
        assert reservation.transition_to(ReservationStatus.CONFIRMED) == "PENDING"
        assert reservation.confirmed_at is not None


class TestPersistenceFailure:
    def test_local_write_failure_after_upstream_confirmation(self, db_session, coordinator, upstream, make_search):
        session = make_search()
        upstream.create_booking.return_value = confirmed_response("BK-9")
        real_commit = db_session.commit
        commits = []

        def flaky_commit():
            commits.append(1)
            if len(commits) == 1:
                return real_commit()
            raise OperationalError("UPDATE reservations", {}, Exception("database is locked"))

        with patch.object(db_session, "commit", side_effect=flaky_commit):
            with pytest.raises(PersistenceFailure) as exc_info:
                book(coordinator, session, client_reference_id="LB-9")

        assert exc_info.value.booking_number == "BK-9"
        assert len(commits) == 1 + coordinator.persist_retries
        row = db_session.query(Reservation).one()
        assert row.status == ReservationStatus.PENDING.value

        # Reconciliation picks it up once the store is back
        upstream.find_reservation.return_value = ReservationDetailResponse(booking_number="BK-9", status="Confirmed")
        coordinator.reconcile_pending(older_than=timedelta(0))
        db_session.refresh(row)
        assert row.status == ReservationStatus.CONFIRMED.value
        assert row.booking_number == "BK-9"

    def test_local_write_failure_after_upstream_cancellation(self, db_session, coordinator, upstream, make_search):
        upstream.create_booking.return_value = confirmed_response("BK-3")
        reservation = book(coordinator, make_search(), client_reference_id="LB-3")
        upstream.cancel_booking.return_value = CancelBookingResponse(booking_number="BK-3", status="Cancelled")

        locked = OperationalError("UPDATE reservations", {}, Exception("database is locked"))
        with patch.object(db_session, "commit", side_effect=locked), \
                patch.object(booking_coordinator.logger, "operator_alert") as alert:
            with pytest.raises(PersistenceFailure):
                coordinator.cancel_booking(reservation.id, CUSTOMER)

        message = alert.call_args[0][0]
        assert "cancelled upstream" in message
        assert "left CONFIRMED" in message
        assert alert.call_args[1]["left_status"] == "CONFIRMED"
        db_session.refresh(reservation)
        assert reservation.status == ReservationStatus.CONFIRMED.value
