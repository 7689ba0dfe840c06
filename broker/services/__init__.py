# Services package
from .royal_client import RoyalClient, TokenManager, get_royal_client, get_token_manager
from .pricing_engine import PricingEngine, PriceResolution, AgencyContext, resolve_price
from .quote_cache import QuoteCache
from .access import Actor, ActorRole, SYSTEM_ACTOR, can_access_reservation, scope_reservations
from .booking_coordinator import BookingCoordinator, ReconcileSummary, generate_client_reference_id
from .catalog_service import CatalogService, EntityOwnership, FIELD_OWNERSHIP, merge_hotel_detail
from .sync_engine import SyncEngine, EntitySyncStats, is_sync_running
from .reservation_service import get_reservation, list_reservations
from .audit_service import list_audit_logs
from .hotel_search import HotelSearchService
from .quote_cache import resolve_search_feed_id
from . import pricing_admin

__all__ = [
    "RoyalClient", "TokenManager", "get_royal_client", "get_token_manager",
    "PricingEngine", "PriceResolution", "AgencyContext", "resolve_price",
    "QuoteCache",
    "Actor", "ActorRole", "SYSTEM_ACTOR", "can_access_reservation", "scope_reservations",
    "BookingCoordinator", "ReconcileSummary", "generate_client_reference_id",
    "CatalogService", "EntityOwnership", "FIELD_OWNERSHIP", "merge_hotel_detail",
    "SyncEngine", "EntitySyncStats", "is_sync_running",
    "get_reservation", "list_reservations",
    "list_audit_logs",
    "HotelSearchService", "resolve_search_feed_id",
    "pricing_admin",
]
