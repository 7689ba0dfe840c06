# Models package
from .pricing import Agency, PriceRule, Commission, PriceRuleType, PriceRuleTarget, CommissionType
from .quote import RoomSearchSession, SearchHistory
from .reservation import (
    Reservation,
    ReservationStatus,
    ReservationSource,
    ALLOWED_TRANSITIONS,
    LIVE_STATUSES
)
from .catalog import Currency, BoardType, Facility, RoomAttribute, Location, Hotel, LocationType
from .audit_log import AuditLog, AuditAction, AuditEntity

__all__ = [
    "Agency", "PriceRule", "Commission", "PriceRuleType", "PriceRuleTarget", "CommissionType",
    "RoomSearchSession", "SearchHistory",
    "Reservation", "ReservationStatus", "ReservationSource", "ALLOWED_TRANSITIONS", "LIVE_STATUSES",
    "Currency", "BoardType", "Facility", "RoomAttribute", "Location", "Hotel", "LocationType",
    "AuditLog", "AuditAction", "AuditEntity",
]
