from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from datetime import date

from ..database import get_db
from ..services.access import Actor
from ..services.scheduler import get_scheduler_status
from ..services.sync_engine import SyncEngine
from ..utils.dependencies import get_request_id, require_admin

router = APIRouter(prefix="/api/content", tags=["Content"])


class SyncRequest(BaseModel):
    feed_id: Optional[str] = None
    last_revision_date: Optional[date] = None


class SyncResponse(BaseModel):
    results: Dict[str, Dict[str, Any]]


@router.post("/sync", response_model=SyncResponse)
def trigger_sync(
    request: Request,
    body: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """Run a content sync now (admin only)"""
    body = body or SyncRequest()
    engine = SyncEngine(db, request_id=get_request_id(request))
    results = engine.sync_all(
        feed_id=body.feed_id,
        last_revision_date=body.last_revision_date,
        actor_user_id=actor.user_id,
    )
    return SyncResponse(results={name: stats.as_dict() for name, stats in results.items()})


@router.get("/scheduler")
def scheduler_status(actor: Actor = Depends(require_admin)):
    return get_scheduler_status()
