from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..models.reservation import ReservationStatus
from ..schemas.booking import ReservationResponse
from ..schemas.pagination import PaginatedResponse, MAX_LIMIT
from ..services.access import Actor
from ..services.booking_coordinator import BookingCoordinator
from ..services.reservation_service import get_reservation, list_reservations
from ..utils.dependencies import get_current_actor, get_request_id
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/reservations", tags=["Reservations"])


@router.get("", response_model=PaginatedResponse[ReservationResponse])
def get_reservations(
    status: Optional[ReservationStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    items, total, limit = list_reservations(db, actor, status=status, page=page, limit=limit)
    return PaginatedResponse.create(
        items=[ReservationResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation_detail(
    reservation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return get_reservation(db, reservation_id, actor)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
@limiter.limit(get_rate_limit("booking_cancel"))
def cancel_reservation(
    request: Request,
    reservation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    # Access check first; the coordinator itself does not authorize
    get_reservation(db, reservation_id, actor)
    coordinator = BookingCoordinator(db, request_id=get_request_id(request))
    return coordinator.cancel_booking(reservation_id, actor)
