from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal


class OccupancyIn(BaseModel):
    adult: int = Field(..., ge=1, le=10)
    child_ages: List[int] = Field(default_factory=list)

    @field_validator('child_ages')
    @classmethod
    def validate_child_ages(cls, v):
        for age in v:
            if age < 0 or age > 17:
                raise ValueError("Child age must be between 0 and 17")
        return v


class RoomSearchCriteria(BaseModel):
    hotel_code: str = Field(..., min_length=1, max_length=50)
    check_in: date
    check_out: date
    rooms: List[OccupancyIn] = Field(..., min_length=1, max_length=9)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    nationality: str = Field(default="TR", min_length=2, max_length=2)

    @field_validator('currency', 'nationality')
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_dates(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class RoomResultOut(BaseModel):
    room_code: str
    room_name: Optional[str] = None
    board_type: Optional[str] = None
    board_type_name: Optional[str] = None
    price_code: str
    base_price: Decimal
    total_price: Decimal = Field(description="Price after merchant rules")
    nightly_price: Optional[Decimal] = None
    currency: str
    cancellation_policies: List[Dict[str, Any]] = Field(default_factory=list)
    allotment: Optional[int] = None


class RoomSearchSessionResponse(BaseModel):
    session_id: str
    hotel_code: str
    check_in: date
    check_out: date
    currency: str
    expires_at: datetime
    rooms: List[RoomResultOut]


class HotelSearchCriteria(BaseModel):
    destination: str = Field(..., min_length=1, max_length=200)
    check_in: date
    check_out: date
    rooms: List[OccupancyIn] = Field(..., min_length=1, max_length=4)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    nationality: str = Field(default="TR", min_length=2, max_length=2)

    @field_validator('destination')
    @classmethod
    def strip_destination(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("destination must not be blank")
        return v

    @field_validator('currency', 'nationality')
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_dates(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class HotelResultOut(BaseModel):
    hotel_code: str
    name: str
    stars: Optional[int] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    thumbnail_image: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, description="Lowest price after merchant rules")
    currency: Optional[str] = None
    board_types: List[str] = Field(default_factory=list)


class HotelSearchResponseOut(BaseModel):
    search_id: Optional[str] = None
    destination: str
    check_in: date
    check_out: date
    hotels: List[HotelResultOut]
