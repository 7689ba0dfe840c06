"""
Royal API DTOs

Wire models for the upstream provider. Upstream speaks camelCase JSON; the
models expose snake_case attributes and accept either form.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any, Generic, TypeVar
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

T = TypeVar('T')


class RoyalModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize for an upstream request body"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RoyalEnvelope(RoyalModel, Generic[T]):
    """Every upstream response is wrapped in this envelope"""
    result: Optional[T] = None
    is_success: bool = False
    message: Optional[str] = None
    status_code: int = 0


# ==================
# Auth
# ==================

class TokenResponse(RoyalModel):
    access_token: str
    refresh_token: Optional[str] = None
    expiration: datetime


# ==================
# Content
# ==================

class CurrencyDto(RoyalModel):
    code: str
    name: str


class BoardTypeDto(RoyalModel):
    code: str
    name: str


class FacilityDto(RoyalModel):
    id: int
    category_name: Optional[str] = None
    name: str


class RoomAttributeDto(RoyalModel):
    id: int
    category_name: Optional[str] = None
    name: str


class LocationDto(RoyalModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    type: Optional[str] = None


# ==================
# Hotels
# ==================

class HotelImage(RoyalModel):
    url: str
    caption: Optional[str] = None
    is_main: bool = False


class HotelFacilityItem(RoyalModel):
    id: int
    category_name: Optional[str] = None
    name: str


class HotelDetailResponse(RoyalModel):
    hotel_code: str
    name: str
    stars: Optional[int] = None
    address: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    images: List[HotelImage] = Field(default_factory=list)
    facilities: List[HotelFacilityItem] = Field(default_factory=list)
    phone: Optional[str] = None
    email: Optional[str] = None


class HotelListRequest(RoyalModel):
    feed_id: str
    last_revision_date: Optional[date] = None


class HotelListItem(RoyalModel):
    hotel_code: str
    name: str
    stars: Optional[int] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    thumbnail_image: Optional[str] = None
    location_id: Optional[int] = None
    facilities: List[int] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)


class HotelSearchResult(RoyalModel):
    hotel_code: str
    hotel_name: str
    stars: Optional[int] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    thumbnail_image: Optional[str] = None
    min_price: Optional[Decimal] = None
    currency: Optional[str] = None
    board_types: List[str] = Field(default_factory=list)


class HotelSearchResponse(RoyalModel):
    search_id: Optional[str] = None
    hotels: List[HotelSearchResult] = Field(default_factory=list)


# ==================
# Room search
# ==================

class RoomOccupancy(RoyalModel):
    adult: int = Field(..., ge=1)
    child_ages: List[int] = Field(default_factory=list)


class RoomSearchRequest(RoyalModel):
    feed_id: str
    currency: str
    nationality: str
    check_in: date
    check_out: date
    hotel_code: str
    rooms: List[RoomOccupancy]


class HotelSearchRequest(RoyalModel):
    feed_id: str
    currency: str
    nationality: str
    check_in: date
    check_out: date
    hotel_codes: List[str]
    rooms: List[RoomOccupancy]


class CancellationPolicy(RoyalModel):
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    penalty: Decimal = Decimal("0")
    penalty_currency: Optional[str] = None
    description: Optional[str] = None


class RoomAttributeItem(RoyalModel):
    id: int
    category_name: Optional[str] = None
    name: str


class RoomResult(RoyalModel):
    room_code: str
    room_name: Optional[str] = None
    board_type: Optional[str] = None
    board_type_name: Optional[str] = None
    price_code: str
    total_price: Decimal
    nightly_price: Optional[Decimal] = None
    currency: str
    cancellation_policies: List[CancellationPolicy] = Field(default_factory=list)
    attributes: List[RoomAttributeItem] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    # Advisory only, never enforced locally
    allotment: Optional[int] = None


class RoomSearchResponse(RoyalModel):
    room_search_id: str
    expires_at: Optional[datetime] = None
    rooms: List[RoomResult] = Field(default_factory=list)


# ==================
# Booking
# ==================

class GuestType(str, Enum):
    ADULT = "Adult"
    CHILD = "Child"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class BookingContact(RoyalModel):
    name: str
    surname: str
    email: str
    phone: Optional[str] = None


class BookingGuest(RoyalModel):
    name: str
    surname: str
    type: GuestType = GuestType.ADULT
    age: Optional[int] = None
    gender: Optional[Gender] = None
    nationality: Optional[str] = None


class BookingRoom(RoyalModel):
    guests: List[BookingGuest]


class CreateBookingRequest(RoyalModel):
    feed_id: str
    room_search_id: str
    price_code: str
    client_reference_id: str
    contact: BookingContact
    rooms: List[BookingRoom]


class CreateBookingResponse(RoyalModel):
    booking_number: str
    status: Optional[str] = None
    hotel_confirmation_number: Optional[str] = None
    room_confirmation_codes: List[str] = Field(default_factory=list)
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None


class ReservationDetailResponse(RoyalModel):
    booking_number: str
    client_reference_id: Optional[str] = None
    status: str
    hotel_code: Optional[str] = None
    hotel_name: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    board_type: Optional[str] = None
    room_type: Optional[str] = None
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None
    hotel_confirmation_number: Optional[str] = None
    room_confirmation_codes: List[str] = Field(default_factory=list)
    cancellation_policies: List[CancellationPolicy] = Field(default_factory=list)

    @field_validator("check_in", "check_out", mode="before")
    @classmethod
    def trim_datetime(cls, v: Any):
        # Upstream sometimes sends full timestamps for stay dates
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class CancelBookingRequest(RoyalModel):
    booking_number: str


class CancelBookingResponse(RoyalModel):
    booking_number: str
    status: Optional[str] = None
    cancellation_fee: Decimal = Decimal("0")
    currency: Optional[str] = None


# Upstream booking statuses, compared case-insensitively
CONFIRMED_STATUSES = {"confirmed", "booked", "ok", "completed"}
REJECTED_STATUSES = {"rejected", "failed", "cancelled", "canceled", "error"}
