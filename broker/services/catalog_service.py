"""
Catalog field ownership and the merged hotel view.

FIELD_OWNERSHIP is the single place that says which columns of a catalog
entity come from upstream and which belong to us. The content sync writes
only upstream-owned fields; foreign keys are filled once and then left
alone; the merged hotel view reads each field from its owner.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Type

from sqlalchemy.orm import Session

from ..database import Base
from ..exceptions import HotelNotFound, UpstreamRejected, UpstreamUnavailable
from ..models.catalog import BoardType, Currency, Facility, Hotel, Location, RoomAttribute
from ..schemas.hotel import HotelDetailView, HotelFacilityOut, HotelImageOut, HotelLocationOut
from ..schemas.royal import HotelDetailResponse
from .royal_client import RoyalClient, get_royal_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityOwnership:
    model: Type[Base]
    key: str
    upstream: Tuple[str, ...]
    local: Tuple[str, ...] = ("id", "is_hidden")
    # Local foreign keys resolved from upstream ids, filled only while empty
    foreign_keys: Tuple[str, ...] = ()
    # Upstream fields only the live detail call returns
    live_only: Tuple[str, ...] = field(default_factory=tuple)


FIELD_OWNERSHIP: Dict[str, EntityOwnership] = {
    "currencies": EntityOwnership(Currency, key="code", upstream=("name",)),
    "board_types": EntityOwnership(BoardType, key="code", upstream=("name",)),
    "facilities": EntityOwnership(Facility, key="external_id", upstream=("category", "name")),
    "room_attributes": EntityOwnership(RoomAttribute, key="external_id", upstream=("category", "name")),
    "locations": EntityOwnership(
        Location,
        key="external_id",
        upstream=("name", "type", "upstream_parent_id"),
        local=("id", "parent_id", "is_featured", "is_hidden"),
        foreign_keys=("parent_id",),
    ),
    "hotels": EntityOwnership(
        Hotel,
        key="hotel_code",
        upstream=(
            "name", "stars", "address", "latitude", "longitude",
            "thumbnail_image", "images", "facility_ids", "upstream_location_id",
        ),
        local=("id", "location_id", "is_featured", "is_hidden", "manual_notes"),
        foreign_keys=("location_id",),
        live_only=("description", "phone", "email"),
    ),
}


def _location_out(location: Optional[Location]) -> Optional[HotelLocationOut]:
    if location is None:
        return None
    return HotelLocationOut(
        id=location.id,
        external_id=location.external_id,
        name=location.name,
        type=location.type,
    )


def merge_hotel_detail(local: Optional[Hotel], live: Optional[HotelDetailResponse]) -> HotelDetailView:
    """
    Build the hotel view from whatever is available.

    Locally-owned fields always come from storage. Upstream-owned fields come
    from the live detail when present, else from storage.

    Raises:
        HotelNotFound: neither a stored nor a live record exists
    """
    if local is None and live is None:
        raise HotelNotFound()

    ownership = FIELD_OWNERSHIP["hotels"]
    data = {"hotel_code": (live.hotel_code if live else local.hotel_code)}

    if local is not None:
        for name in ownership.upstream + ownership.live_only:
            if hasattr(local, name):
                data[name] = getattr(local, name)
        data["images"] = [HotelImageOut(url=url, is_main=(i == 0)) for i, url in enumerate(local.images or [])]
        data["facility_ids"] = list(local.facility_ids or [])

    if live is not None:
        data.update(
            name=live.name,
            stars=live.stars,
            address=live.address,
            description=live.description,
            latitude=live.latitude,
            longitude=live.longitude,
            phone=live.phone,
            email=live.email,
            images=[HotelImageOut(url=img.url, caption=img.caption, is_main=img.is_main) for img in live.images],
            facilities=[
                HotelFacilityOut(id=f.id, category_name=f.category_name, name=f.name)
                for f in live.facilities
            ],
            facility_ids=[f.id for f in live.facilities],
        )

    # Locally-owned fields never come from upstream
    if local is not None:
        data.update(
            id=local.id,
            location=_location_out(local.location),
            is_featured=bool(local.is_featured),
            is_hidden=bool(local.is_hidden),
            manual_notes=local.manual_notes,
        )

    data.pop("upstream_location_id", None)
    return HotelDetailView(**data, is_live=live is not None, is_stored=local is not None)


class CatalogService:
    def __init__(self, db: Session, client: Optional[RoyalClient] = None, request_id: Optional[str] = None):
        self.db = db
        self.request_id = request_id or "no-request-id"
        self._client = client

    @property
    def client(self) -> RoyalClient:
        if self._client is None:
            self._client = get_royal_client(request_id=self.request_id)
        return self._client

    def get_hotel_detail(self, hotel_code: str) -> HotelDetailView:
        local = self.db.query(Hotel).filter(Hotel.hotel_code == hotel_code).first()

        live = None
        try:
            live = self.client.get_hotel_detail(hotel_code)
        except UpstreamUnavailable as e:
            logger.warning(f"[{self.request_id}] Live detail for {hotel_code} unavailable, serving stored copy: {e.message}")
        except UpstreamRejected as e:
            logger.info(f"[{self.request_id}] Upstream has no detail for {hotel_code}: {e.reason}")

        return merge_hotel_detail(local, live)
