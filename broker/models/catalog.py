"""
Catalog Models

Reference data mirrored from the upstream provider. Every row carries two
kinds of columns:
- upstream-owned: overwritten by the content sync
- locally-owned: id, foreign keys and the manual flags (is_featured,
  is_hidden, manual_notes); sync never touches these once set

The exact split per entity lives in services/catalog_service.FIELD_OWNERSHIP.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class LocationType(str, enum.Enum):
    COUNTRY = "COUNTRY"
    CITY = "CITY"
    DISTRICT = "DISTRICT"
    AREA = "AREA"


class Currency(Base):
    __tablename__ = "currencies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(3), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BoardType(Base):
    __tablename__ = "board_types"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Facility(Base):
    __tablename__ = "facilities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = Column(String(50), unique=True, nullable=False)
    category = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RoomAttribute(Base):
    __tablename__ = "room_attributes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = Column(String(50), unique=True, nullable=False)
    category = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = Column(String(50), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False, default=LocationType.CITY.value)

    # Upstream parent id as sent, resolved into parent_id on insert
    upstream_parent_id = Column(String(50), nullable=True)
    parent_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)

    is_featured = Column(Boolean, default=False)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = relationship("Location", remote_side=[id])

    def __repr__(self):
        return f"<Location {self.external_id} {self.name}>"


class Hotel(Base):
    __tablename__ = "hotels"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hotel_code = Column(String(50), unique=True, nullable=False)

    # Upstream-owned
    name = Column(String(255), nullable=False)
    stars = Column(Integer, nullable=True)
    address = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    thumbnail_image = Column(String(500), nullable=True)
    images = Column(JSON, default=list)
    facility_ids = Column(JSON, default=list)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    upstream_location_id = Column(String(50), nullable=True)

    # Locally-owned
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True)
    is_featured = Column(Boolean, default=False)
    is_hidden = Column(Boolean, default=False)
    manual_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    location = relationship("Location")

    def __repr__(self):
        return f"<Hotel {self.hotel_code} {self.name}>"
