from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.booking import BookingCreate, IndeterminateResponse, ReservationResponse
from ..services.access import Actor
from ..services.booking_coordinator import BookingCoordinator, generate_client_reference_id
from ..utils.dependencies import get_current_actor, get_request_id
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.post(
    "",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={202: {"model": IndeterminateResponse}},
)
@limiter.limit(get_rate_limit("booking_create"))
def create_booking(
    request: Request,
    booking: BookingCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Book a room from a room search session.

    Safe to retry with the same client_reference_id. A 202 answer means the
    upstream outcome is unknown and the reservation stays PENDING until
    reconciled.
    """
    coordinator = BookingCoordinator(db, request_id=get_request_id(request))
    return coordinator.create_booking(
        session_id=booking.session_id,
        room_code=booking.room_code,
        price_code=booking.price_code,
        contact=booking.contact,
        guests=booking.rooms,
        client_reference_id=booking.client_reference_id or generate_client_reference_id(),
        actor=actor,
    )
