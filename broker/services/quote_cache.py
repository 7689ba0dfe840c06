"""
Quote Cache

Bridges a stateless upstream room search to a later booking commit. Each
search is stored under a fresh session id for ``QUOTE_TTL_MINUTES``; the
stored rows are never updated.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings, FeedContext
from ..exceptions import SessionExpired, SessionNotFound
from ..models.pricing import Agency
from ..models.quote import RoomSearchSession
from ..schemas.royal import RoomOccupancy, RoomSearchRequest
from ..schemas.search import RoomSearchCriteria
from .royal_client import RoyalClient, get_royal_client

logger = logging.getLogger(__name__)


def resolve_search_feed_id(db: Session, agency_id: Optional[str]) -> str:
    """Agency feed id when the agency has one, otherwise the configured back-office feed"""
    agency_feed_id = None
    if agency_id:
        agency = db.query(Agency).filter(Agency.id == agency_id).first()
        if agency:
            agency_feed_id = agency.feed_id
    return settings.resolve_feed_id(FeedContext.BACK_OFFICE, agency_feed_id)


class QuoteCache:
    def __init__(self, db: Session, client: Optional[RoyalClient] = None, clock=None):
        self.db = db
        self._client = client
        self._clock = clock or datetime.utcnow
        self.ttl = timedelta(minutes=settings.quote_ttl_minutes)

    @property
    def client(self) -> RoyalClient:
        if self._client is None:
            self._client = get_royal_client()
        return self._client

    def search(
        self,
        criteria: RoomSearchCriteria,
        user_id: Optional[str] = None,
        agency_id: Optional[str] = None
    ) -> RoomSearchSession:
        """
        Run an upstream room search and store the results.

        Upstream failures propagate unchanged; nothing is stored then.
        """
        feed_id = resolve_search_feed_id(self.db, agency_id)

        request = RoomSearchRequest(
            feed_id=feed_id,
            currency=criteria.currency,
            nationality=criteria.nationality,
            check_in=criteria.check_in,
            check_out=criteria.check_out,
            hotel_code=criteria.hotel_code,
            rooms=[RoomOccupancy(adult=r.adult, child_ages=r.child_ages) for r in criteria.rooms],
        )
        response = self.client.search_rooms(request)

        now = self._clock()
        session = RoomSearchSession(
            room_search_id=response.room_search_id,
            feed_id=feed_id,
            hotel_code=criteria.hotel_code,
            check_in=criteria.check_in,
            check_out=criteria.check_out,
            occupancy=[r.model_dump() for r in criteria.rooms],
            currency=criteria.currency,
            nationality=criteria.nationality,
            user_id=user_id,
            agency_id=agency_id,
            rooms=[room.model_dump(mode="json") for room in response.rooms],
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info(
            f"Stored room search {session.id} for {criteria.hotel_code}: "
            f"{len(session.rooms)} rooms, expires {session.expires_at.isoformat()}"
        )
        return session

    def lookup(self, session_id: str) -> RoomSearchSession:
        """
        Return a live session.

        Raises:
            SessionNotFound: unknown id
            SessionExpired: the session is past its validity, purged or not
        """
        session = self.db.query(RoomSearchSession).filter(RoomSearchSession.id == session_id).first()
        if session is None:
            raise SessionNotFound(f"Room search session {session_id} not found")

        # Expired rows are removed only by purge_expired
        if session.is_expired(self._clock()):
            raise SessionExpired(f"Room search session {session_id} expired at {session.expires_at.isoformat()}")

        return session

    def purge_expired(self) -> int:
        """Physically remove expired sessions. Returns the number removed."""
        now = self._clock()
        removed = self.db.query(RoomSearchSession).filter(
            RoomSearchSession.expires_at <= now
        ).delete(synchronize_session=False)
        self.db.commit()
        if removed:
            logger.info(f"Purged {removed} expired room search sessions")
        return removed
