from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.hotel import HotelDetailView
from ..schemas.search import HotelSearchCriteria, HotelSearchResponseOut
from ..services.access import Actor
from ..services.catalog_service import CatalogService
from ..services.hotel_search import HotelSearchService
from ..utils.dependencies import get_current_actor, get_request_id
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/hotels", tags=["Hotels"])


@router.post("/search", response_model=HotelSearchResponseOut)
@limiter.limit(get_rate_limit("search"))
def search_hotels(
    request: Request,
    criteria: HotelSearchCriteria,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Availability for the stored hotels of a destination"""
    service = HotelSearchService(db, request_id=get_request_id(request))
    return service.search(criteria, user_id=actor.user_id, agency_id=actor.pricing_agency_id)


@router.get("/{hotel_code}", response_model=HotelDetailView)
def get_hotel(hotel_code: str, request: Request, db: Session = Depends(get_db)):
    """Stored hotel merged with the live upstream detail"""
    return CatalogService(db, request_id=get_request_id(request)).get_hotel_detail(hotel_code)
