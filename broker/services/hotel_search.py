"""
Hotel Search

Destination search over the synced catalog: the destination is matched
against local location names, the hotels stored under those locations are
sent upstream for availability, and the results are priced with the
merchant rules.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.catalog import Hotel, Location
from ..models.quote import SearchHistory
from ..schemas.royal import HotelSearchRequest, RoomOccupancy
from ..schemas.search import HotelResultOut, HotelSearchCriteria, HotelSearchResponseOut
from ..utils.logging_config import get_logger
from .pricing_engine import PricingEngine
from .quote_cache import resolve_search_feed_id
from .royal_client import RoyalClient, get_royal_client

logger = get_logger(__name__)


class HotelSearchService:
    def __init__(
        self,
        db: Session,
        client: Optional[RoyalClient] = None,
        pricing_engine: Optional[PricingEngine] = None,
        request_id: Optional[str] = None
    ):
        self.db = db
        self._client = client
        self.pricing = pricing_engine or PricingEngine(db)
        self.request_id = request_id or "no-request-id"

    @property
    def client(self) -> RoyalClient:
        if self._client is None:
            self._client = get_royal_client(request_id=self.request_id)
        return self._client

    def hotel_codes_for(self, destination: str) -> List[str]:
        """Codes of visible hotels stored under locations whose name contains ``destination``"""
        location_ids = [
            row.id for row in self.db.query(Location.id).filter(
                Location.name.ilike(f"%{destination}%"),
                Location.is_hidden.isnot(True)
            )
        ]
        if not location_ids:
            return []

        rows = self.db.query(Hotel.hotel_code).filter(
            Hotel.location_id.in_(location_ids),
            Hotel.is_hidden.isnot(True)
        ).order_by(Hotel.hotel_code)
        return [row.hotel_code for row in rows]

    def search(
        self,
        criteria: HotelSearchCriteria,
        user_id: Optional[str] = None,
        agency_id: Optional[str] = None,
        booking_date: Optional[date] = None
    ) -> HotelSearchResponseOut:
        """
        Search availability for a destination.

        A destination with no stored hotels returns an empty result without
        calling upstream. Upstream errors propagate unchanged.

        Raises:
            ConfigurationError: no feed id, before any upstream call
        """
        feed_id = resolve_search_feed_id(self.db, agency_id)
        hotel_codes = self.hotel_codes_for(criteria.destination)

        search_id = None
        hotels: List[HotelResultOut] = []
        if hotel_codes:
            request = HotelSearchRequest(
                feed_id=feed_id,
                currency=criteria.currency,
                nationality=criteria.nationality,
                check_in=criteria.check_in,
                check_out=criteria.check_out,
                hotel_codes=hotel_codes,
                rooms=[RoomOccupancy(adult=r.adult, child_ages=r.child_ages) for r in criteria.rooms],
            )
            response = self.client.search_hotels(request)
            search_id = response.search_id

            for item in response.hotels:
                min_price = item.min_price
                currency = item.currency or criteria.currency
                if min_price is not None:
                    price = self.pricing.quote(
                        base_price=min_price,
                        currency=currency,
                        hotel_code=item.hotel_code,
                        board_type=None,
                        agency_id=agency_id,
                        booking_date=booking_date,
                    )
                    min_price = price.final_price
                hotels.append(HotelResultOut(
                    hotel_code=item.hotel_code,
                    name=item.hotel_name,
                    stars=item.stars,
                    address=item.address,
                    latitude=item.latitude,
                    longitude=item.longitude,
                    thumbnail_image=item.thumbnail_image,
                    min_price=min_price,
                    currency=currency,
                    board_types=item.board_types,
                ))
        else:
            logger.info(f"[{self.request_id}] No stored hotels for destination '{criteria.destination}'")

        self._record_history(criteria, user_id, agency_id, len(hotels))

        return HotelSearchResponseOut(
            search_id=search_id,
            destination=criteria.destination,
            check_in=criteria.check_in,
            check_out=criteria.check_out,
            hotels=hotels,
        )

    def _record_history(self, criteria: HotelSearchCriteria, user_id: Optional[str],
                        agency_id: Optional[str], result_count: int) -> None:
        """History is reporting data; a failed write never fails the search"""
        try:
            self.db.add(SearchHistory(
                user_id=user_id,
                agency_id=agency_id,
                destination=criteria.destination,
                params=criteria.model_dump(mode="json"),
                result_count=result_count,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"[{self.request_id}] Could not record search history: {e}")
