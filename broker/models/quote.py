import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Integer, JSON, Index
from ..database import Base


class RoomSearchSession(Base):
    """
    Room search results kept between a search and a booking commit.

    Written once, never updated. Rows past ``expires_at`` are treated as
    absent by the quote cache even before they are purged.
    """
    __tablename__ = "room_search_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Handle the upstream needs again at booking time
    room_search_id = Column(String(100), nullable=False)
    feed_id = Column(String(100), nullable=False)

    hotel_code = Column(String(50), nullable=False)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    occupancy = Column(JSON, nullable=False)  # [{"adult": 2, "child_ages": [5]}]
    currency = Column(String(3), nullable=False)
    nationality = Column(String(2), nullable=False)

    # Searching actor, used to price the quote the same way at booking time
    user_id = Column(String(36), nullable=True)
    agency_id = Column(String(36), nullable=True)

    # Ordered RoomResult dicts as returned upstream
    rooms = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index("ix_room_search_hotel", "hotel_code"),
    )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def find_room(self, room_code: str, price_code: str):
        """Return the room result matching both codes, or None"""
        for room in self.rooms or []:
            if room.get("room_code") == room_code and room.get("price_code") == price_code:
                return room
        return None

    def __repr__(self):
        return f"<RoomSearchSession {self.id} hotel={self.hotel_code} expires={self.expires_at}>"


class SearchHistory(Base):
    """One row per destination search, kept for reporting"""
    __tablename__ = "search_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    agency_id = Column(String(36), nullable=True)
    destination = Column(String(200), nullable=False)
    params = Column(JSON, nullable=False)
    result_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
