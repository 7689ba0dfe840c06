"""
HTTP surface tests: actor headers, status codes and error bodies
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from broker.exceptions import UpstreamTimeout, UpstreamUnavailable
from broker.models.pricing import PriceRule
from broker.models.catalog import Hotel, Location
from broker.schemas.royal import (
    CreateBookingResponse, HotelSearchResponse, HotelSearchResult, RoomResult, RoomSearchResponse
)

CUSTOMER = {"X-Actor-Id": "user-1", "X-Actor-Role": "CUSTOMER"}
OTHER_CUSTOMER = {"X-Actor-Id": "user-2"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "ADMIN"}

SEARCH_BODY = {
    "hotel_code": "HTL1",
    "check_in": "2026-12-01",
    "check_out": "2026-12-04",
    "rooms": [{"adult": 2, "child_ages": [7]}],
}


def booking_body(session_id, client_reference_id="LB-API-1"):
    return {
        "session_id": session_id,
        "room_code": "DBL",
        "price_code": "PC-1",
        "client_reference_id": client_reference_id,
        "contact": {"name": "Ada", "surname": "Lovelace", "email": "ada@example.com", "phone": "+905551112233"},
        "rooms": [{"guests": [{"name": "Ada", "surname": "Lovelace", "gender": "Female"}]}],
    }


@pytest.fixture
def royal(upstream):
    upstream.search_rooms.return_value = RoomSearchResponse(
        room_search_id="rs-1",
        rooms=[RoomResult(room_code="DBL", price_code="PC-1", total_price=Decimal("1000"), currency="EUR")],
    )
    upstream.create_booking.return_value = CreateBookingResponse(booking_number="BK-1", status="Confirmed")
    with patch("broker.routers.rooms.get_royal_client", return_value=upstream), \
            patch("broker.services.booking_coordinator.get_royal_client", return_value=upstream), \
            patch("broker.services.catalog_service.get_royal_client", return_value=upstream), \
            patch("broker.services.sync_engine.get_royal_client", return_value=upstream), \
            patch("broker.services.hotel_search.get_royal_client", return_value=upstream):
        yield upstream


def search(api_client, headers=CUSTOMER):
    response = api_client.post("/api/rooms/search", json=SEARCH_BODY, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers


class TestActorHeaders:
    def test_missing_actor(self, api_client):
        assert api_client.post("/api/rooms/search", json=SEARCH_BODY).status_code == 401

    def test_unknown_role(self, api_client):
        response = api_client.get("/api/reservations", headers={"X-Actor-Id": "u", "X-Actor-Role": "ROOT"})
        assert response.status_code == 403

    def test_admin_only_endpoints(self, api_client):
        assert api_client.post("/api/content/sync", headers=CUSTOMER).status_code == 403
        assert api_client.get("/api/admin/audit-logs", headers=CUSTOMER).status_code == 403


class TestSearchAndBook:
    def test_search_prices_rooms(self, api_client, db_session, royal):
        db_session.add(PriceRule(
            id="r1", name="Winter", type="MARKUP", value=Decimal("10"), applies_to="ALL_CUSTOMERS",
            priority=1, is_active=True,
        ))
        db_session.commit()

        body = search(api_client)

        room = body["rooms"][0]
        assert body["session_id"]
        assert Decimal(room["base_price"]) == Decimal("1000")
        assert Decimal(room["total_price"]) == Decimal("1100")

    def test_invalid_search(self, api_client, royal):
        body = dict(SEARCH_BODY, check_out="2026-11-30")
        assert api_client.post("/api/rooms/search", json=body, headers=CUSTOMER).status_code == 422

    def test_book_and_read_back(self, api_client, royal):
        session_id = search(api_client)["session_id"]

        response = api_client.post("/api/bookings", json=booking_body(session_id), headers=CUSTOMER)
        assert response.status_code == 201, response.text
        reservation = response.json()
        assert reservation["status"] == "CONFIRMED"
        assert reservation["booking_number"] == "BK-1"

        own = api_client.get(f"/api/reservations/{reservation['id']}", headers=CUSTOMER)
        assert own.status_code == 200
        other = api_client.get(f"/api/reservations/{reservation['id']}", headers=OTHER_CUSTOMER)
        assert other.status_code == 404
        assert other.json()["code"] == "reservation_not_found"

        listing = api_client.get("/api/reservations", headers=CUSTOMER).json()
        assert listing["total"] == 1
        assert api_client.get("/api/reservations", headers=OTHER_CUSTOMER).json()["total"] == 0

    def test_retry_returns_same_reservation(self, api_client, royal):
        session_id = search(api_client)["session_id"]

        first = api_client.post("/api/bookings", json=booking_body(session_id), headers=CUSTOMER).json()
        second = api_client.post("/api/bookings", json=booking_body(session_id), headers=CUSTOMER).json()

        assert first["id"] == second["id"]
        royal.create_booking.assert_called_once()

    def test_unknown_session_is_expired(self, api_client, royal):
        response = api_client.post("/api/bookings", json=booking_body("missing"), headers=CUSTOMER)
        assert response.status_code == 410
        assert response.json()["code"] == "session_expired"
        royal.create_booking.assert_not_called()

    def test_indeterminate_outcome(self, api_client, royal):
        session_id = search(api_client)["session_id"]
        royal.create_booking.side_effect = UpstreamTimeout("timed out")

        response = api_client.post("/api/bookings", json=booking_body(session_id), headers=CUSTOMER)

        assert response.status_code == 202
        assert response.json()["code"] == "booking_indeterminate"
        assert response.json()["reservation_id"]

    def test_cancel_requires_access(self, api_client, royal):
        session_id = search(api_client)["session_id"]
        reservation = api_client.post("/api/bookings", json=booking_body(session_id), headers=CUSTOMER).json()

        response = api_client.post(f"/api/reservations/{reservation['id']}/cancel", headers=OTHER_CUSTOMER)

        assert response.status_code == 404
        royal.cancel_booking.assert_not_called()


class TestHotelsAndAdmin:
    def test_hotel_not_found(self, api_client, royal):
        royal.get_hotel_detail.side_effect = UpstreamUnavailable("down")

        response = api_client.get("/api/hotels/NOPE")

        assert response.status_code == 404
        assert response.json()["code"] == "hotel_not_found"

    def test_sync_and_audit_trail(self, api_client, royal):
        for method in ("get_currencies", "get_board_types", "get_facilities",
                       "get_room_attributes", "get_locations", "get_hotel_list"):
            getattr(royal, method).return_value = []

        response = api_client.post("/api/content/sync", headers=ADMIN)
        assert response.status_code == 200, response.text
        assert set(response.json()["results"]) == {
            "currencies", "board_types", "facilities", "room_attributes", "locations", "hotels",
        }

        logs = api_client.get("/api/admin/audit-logs", params={"entity": "catalog"}, headers=ADMIN).json()
        assert logs["total"] == 1
        assert logs["items"][0]["action"] == "sync"
        assert logs["items"][0]["actor_user_id"] == "admin-1"

    def test_hotel_search(self, api_client, db_session, royal):
        db_session.add_all([
            Location(id="L1", external_id="100", name="Antalya"),
            Hotel(hotel_code="HTL1", name="Sea View", location_id="L1"),
        ])
        db_session.commit()
        royal.search_hotels.return_value = HotelSearchResponse(
            search_id="hs-1",
            hotels=[HotelSearchResult(hotel_code="HTL1", hotel_name="Sea View", min_price=Decimal("900"))],
        )
        body = {"destination": " Antalya ", "check_in": "2026-12-01", "check_out": "2026-12-04",
                "rooms": [{"adult": 2}]}

        response = api_client.post("/api/hotels/search", json=body, headers=CUSTOMER)

        assert response.status_code == 200, response.text
        result = response.json()
        assert result["destination"] == "Antalya"
        assert result["hotels"][0]["hotel_code"] == "HTL1"
        assert Decimal(result["hotels"][0]["min_price"]) == Decimal("900")

    def test_hotel_search_requires_actor(self, api_client, royal):
        body = {"destination": "Antalya", "check_in": "2026-12-01", "check_out": "2026-12-04",
                "rooms": [{"adult": 2}]}
        assert api_client.post("/api/hotels/search", json=body).status_code == 401
        royal.search_hotels.assert_not_called()
