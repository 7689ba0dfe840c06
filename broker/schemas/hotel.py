from pydantic import BaseModel, Field
from typing import Optional, List


class HotelImageOut(BaseModel):
    url: str
    caption: Optional[str] = None
    is_main: bool = False


class HotelFacilityOut(BaseModel):
    id: int
    category_name: Optional[str] = None
    name: str


class HotelLocationOut(BaseModel):
    id: str
    external_id: str
    name: str
    type: str


class HotelDetailView(BaseModel):
    """Stored hotel merged with the live upstream detail"""
    id: Optional[str] = None
    hotel_code: str
    name: str
    stars: Optional[int] = None
    address: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    thumbnail_image: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    images: List[HotelImageOut] = Field(default_factory=list)
    facilities: List[HotelFacilityOut] = Field(default_factory=list)
    facility_ids: List[int] = Field(default_factory=list)

    location: Optional[HotelLocationOut] = None
    is_featured: bool = False
    is_hidden: bool = False
    manual_notes: Optional[str] = None

    is_live: bool = Field(description="False when built from storage only")
    is_stored: bool = Field(description="False when the hotel is not in the local catalog yet")
