"""
Reservation read model.
"""
from typing import List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..exceptions import ReservationNotFound
from ..models.reservation import Reservation, ReservationStatus
from ..schemas.pagination import clamp_limit, paginate_query
from .access import Actor, can_access_reservation, scope_reservations


def get_reservation(db: Session, reservation_id: str, actor: Optional[Actor] = None) -> Reservation:
    """
    Fetch one reservation. With an actor, reservations the actor may not
    see are reported as missing.
    """
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if reservation is None or (actor is not None and not can_access_reservation(actor, reservation)):
        raise ReservationNotFound(f"Reservation {reservation_id} not found")
    return reservation


def list_reservations(
    db: Session,
    actor: Actor,
    status: Optional[ReservationStatus] = None,
    page: int = 1,
    limit: int = 20
) -> Tuple[List[Reservation], int, int]:
    query = scope_reservations(db.query(Reservation), actor)
    if status is not None:
        query = query.filter(Reservation.status == ReservationStatus(status).value)
    query = query.order_by(desc(Reservation.created_at), desc(Reservation.id))

    limit = clamp_limit(limit)
    items, total = paginate_query(query, page, limit)
    return items, total, limit
