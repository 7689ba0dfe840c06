"""
Reservation access rules.

One predicate decides who may see or act on a reservation; list queries are
narrowed with the same rule so single reads and listings never disagree.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import false

from ..models.reservation import Reservation


class ActorRole(str, Enum):
    ADMIN = "ADMIN"
    AGENCY = "AGENCY"
    CUSTOMER = "CUSTOMER"


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller"""
    user_id: str
    role: ActorRole = ActorRole.CUSTOMER
    agency_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def pricing_agency_id(self) -> Optional[str]:
        """Agency whose rules price this actor's bookings, None for customer pricing"""
        if self.role == ActorRole.AGENCY:
            return self.agency_id
        return None


SYSTEM_ACTOR = Actor(user_id="system", role=ActorRole.ADMIN)


def can_access_reservation(actor: Actor, reservation: Reservation) -> bool:
    if actor.role == ActorRole.ADMIN:
        return True
    if actor.role == ActorRole.AGENCY:
        return bool(actor.agency_id) and reservation.agency_id == actor.agency_id
    return reservation.user_id == actor.user_id


def scope_reservations(query, actor: Actor):
    """Filter a Reservation query down to what ``actor`` may see"""
    if actor.role == ActorRole.ADMIN:
        return query
    if actor.role == ActorRole.AGENCY:
        if not actor.agency_id:
            return query.filter(false())
        return query.filter(Reservation.agency_id == actor.agency_id)
    return query.filter(Reservation.user_id == actor.user_id)
