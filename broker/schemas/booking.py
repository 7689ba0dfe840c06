from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal
import re

from .royal import GuestType, Gender


def _strip_markup(v):
    """Drop script tags and inline handlers from free-text fields"""
    if isinstance(v, str):
        v = re.sub(r'<script[^>]*>.*?</script>', '', v, flags=re.IGNORECASE | re.DOTALL)
        v = re.sub(r'on\w+\s*=', '', v, flags=re.IGNORECASE)
        return v.strip()
    return v


class ContactIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    surname: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=10, max_length=20)

    @field_validator('name', 'surname', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _strip_markup(v)


class GuestIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    surname: str = Field(..., min_length=2, max_length=100)
    type: GuestType = GuestType.ADULT
    age: Optional[int] = Field(None, ge=0, le=120)
    gender: Gender
    nationality: str = Field(default="TR", min_length=2, max_length=2)

    @field_validator('name', 'surname', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _strip_markup(v)


class RoomGuestsIn(BaseModel):
    guests: List[GuestIn] = Field(..., min_length=1)


class BookingCreate(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=36)
    room_code: str = Field(..., min_length=1, max_length=100)
    price_code: str = Field(..., min_length=1, max_length=255)
    client_reference_id: Optional[str] = Field(
        None, min_length=1, max_length=100,
        description="Idempotency key; generated when omitted"
    )
    contact: ContactIn
    rooms: List[RoomGuestsIn] = Field(..., min_length=1)


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_number: Optional[str] = None
    hotel_confirmation_number: Optional[str] = None
    room_confirmation_codes: Optional[List[str]] = None
    client_reference_id: str
    status: str
    failure_reason: Optional[str] = None
    source: Optional[str] = None
    user_id: str
    agency_id: Optional[str] = None
    hotel_code: str
    room_code: str
    room_name: Optional[str] = None
    board_type: Optional[str] = None
    check_in: date
    check_out: date
    contact_name: str
    contact_surname: str
    contact_email: str
    contact_phone: Optional[str] = None
    guests: List[Dict[str, Any]] = Field(default_factory=list)
    base_price: Decimal
    final_price: Decimal
    currency: str
    applied_rule_id: Optional[str] = None
    commission_amount: Optional[Decimal] = None
    cancellation_policy: Optional[List[Dict[str, Any]]] = None
    cancellation_fee: Optional[Decimal] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class IndeterminateResponse(BaseModel):
    """Returned with 202 when the upstream outcome is not known yet"""
    reservation_id: str
    status: str = "PENDING"
    detail: str
    code: str = "booking_indeterminate"
