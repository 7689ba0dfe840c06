from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..schemas.search import RoomSearchCriteria, RoomSearchSessionResponse, RoomResultOut
from ..services.access import Actor
from ..services.pricing_engine import PricingEngine
from ..services.quote_cache import QuoteCache
from ..services.royal_client import get_royal_client
from ..utils.dependencies import get_current_actor, get_request_id
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["Rooms"])


@router.post("/search", response_model=RoomSearchSessionResponse)
@limiter.limit(get_rate_limit("search"))
def search_rooms(
    request: Request,
    criteria: RoomSearchCriteria,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Search a hotel's rooms and open a 30 minute booking window"""
    request_id = get_request_id(request)
    cache = QuoteCache(db, client=get_royal_client(request_id=request_id))
    session = cache.search(criteria, user_id=actor.user_id, agency_id=actor.pricing_agency_id)

    engine = PricingEngine(db)
    rooms = []
    for room in session.rooms:
        price = engine.quote(
            base_price=room["total_price"],
            currency=room.get("currency") or session.currency,
            hotel_code=session.hotel_code,
            board_type=room.get("board_type"),
            agency_id=actor.pricing_agency_id,
        )
        rooms.append(RoomResultOut(
            room_code=room["room_code"],
            room_name=room.get("room_name"),
            board_type=room.get("board_type"),
            board_type_name=room.get("board_type_name"),
            price_code=room["price_code"],
            base_price=price.base_price,
            total_price=price.final_price,
            nightly_price=room.get("nightly_price"),
            currency=price.currency,
            cancellation_policies=room.get("cancellation_policies") or [],
            allotment=room.get("allotment"),
        ))

    logger.info(f"[{request_id}] Room search {session.id} for {session.hotel_code}: {len(rooms)} rooms")
    return RoomSearchSessionResponse(
        session_id=session.id,
        hotel_code=session.hotel_code,
        check_in=session.check_in,
        check_out=session.check_out,
        currency=session.currency,
        expires_at=session.expires_at,
        rooms=rooms,
    )
