"""
Content Sync Engine

Mirrors upstream reference data into the local catalog in a fixed order:
currencies -> board types -> facilities -> room attributes -> locations -> hotels

Guarantees:
- Only upstream-owned fields are written (see catalog_service.FIELD_OWNERSHIP)
- Local ids never change; foreign keys are filled once, while still empty
- Each row is upserted in its own SAVEPOINT, so one bad row only counts
  as ``failed`` and the stage goes on
- A stage whose fetch fails records ``error`` and the next stage still runs
- One run at a time per process
"""

import threading
import time
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import ConfigurationError, SyncInProgress, UpstreamRejected, UpstreamUnavailable
from ..models.audit_log import AuditAction, AuditEntity, AuditLog
from ..models.catalog import Location, LocationType
from ..schemas.royal import (
    BoardTypeDto,
    CurrencyDto,
    FacilityDto,
    HotelListItem,
    LocationDto,
    RoomAttributeDto,
)
from ..utils.db_helpers import advisory_lock
from ..utils.logging_config import get_logger
from .catalog_service import FIELD_OWNERSHIP, EntityOwnership
from .royal_client import RoyalClient, get_royal_client

logger = get_logger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"

SYNC_ORDER = ("currencies", "board_types", "facilities", "room_attributes", "locations", "hotels")

_sync_lock = threading.Lock()
SYNC_ADVISORY_LOCK_KEY = 731_204_001


@dataclass
class EntitySyncStats:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    error: Optional[str] = None

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_sync_running() -> bool:
    return _sync_lock.locked()


def parents_first(locations: List[LocationDto]) -> List[LocationDto]:
    """
    Order locations so every parent precedes its children. Locations whose
    parent is not in the batch count as roots; cycles keep input order.
    """
    by_id = {loc.id: loc for loc in locations}
    ordered: List[LocationDto] = []
    placed = set()
    remaining = list(locations)

    while remaining:
        progressed = False
        pending = []
        for loc in remaining:
            if loc.parent_id is None or loc.parent_id not in by_id or loc.parent_id in placed:
                ordered.append(loc)
                placed.add(loc.id)
                progressed = True
            else:
                pending.append(loc)
        if not progressed:
            ordered.extend(pending)
            break
        remaining = pending

    return ordered


class SyncEngine:
    def __init__(self, db: Session, client: Optional[RoyalClient] = None, request_id: Optional[str] = None):
        self.db = db
        self.request_id = request_id or "sync"
        self._client = client

    @property
    def client(self) -> RoyalClient:
        if self._client is None:
            self._client = get_royal_client(request_id=self.request_id)
        return self._client

    # ==================
    # Generic upsert
    # ==================

    def _upsert(
        self,
        ownership: EntityOwnership,
        key_value: str,
        values: Dict[str, Any],
        foreign_keys: Optional[Dict[str, Optional[str]]] = None
    ) -> str:
        model = ownership.model
        foreign_keys = foreign_keys or {}

        row = self.db.query(model).filter(getattr(model, ownership.key) == key_value).first()
        if row is None:
            row = model(**{ownership.key: key_value})
            for name, value in values.items():
                setattr(row, name, value)
            for name, value in foreign_keys.items():
                setattr(row, name, value)
            self.db.add(row)
            self.db.flush()
            return CREATED

        changed = False
        for name, value in values.items():
            if name not in ownership.upstream:
                raise ValueError(f"{name} is not upstream-owned on {model.__tablename__}")
            if getattr(row, name) != value:
                setattr(row, name, value)
                changed = True

        for name, value in foreign_keys.items():
            if getattr(row, name) is None and value is not None:
                setattr(row, name, value)
                changed = True

        if not changed:
            return UNCHANGED

        self.db.flush()
        return UPDATED

    def _location_id_for(self, upstream_id: Optional[int]) -> Optional[str]:
        if upstream_id is None:
            return None
        location = self.db.query(Location).filter(Location.external_id == str(upstream_id)).first()
        return location.id if location else None

    # ==================
    # Per-entity mapping
    # ==================

    def _sync_currency(self, item: CurrencyDto) -> str:
        return self._upsert(FIELD_OWNERSHIP["currencies"], item.code, {"name": item.name})

    def _sync_board_type(self, item: BoardTypeDto) -> str:
        return self._upsert(FIELD_OWNERSHIP["board_types"], item.code, {"name": item.name})

    def _sync_facility(self, item: FacilityDto) -> str:
        return self._upsert(
            FIELD_OWNERSHIP["facilities"], str(item.id),
            {"category": item.category_name, "name": item.name}
        )

    def _sync_room_attribute(self, item: RoomAttributeDto) -> str:
        return self._upsert(
            FIELD_OWNERSHIP["room_attributes"], str(item.id),
            {"category": item.category_name, "name": item.name}
        )

    def _sync_location(self, item: LocationDto) -> str:
        location_type = (item.type or "").upper()
        if location_type not in LocationType.__members__:
            location_type = LocationType.CITY.value
        return self._upsert(
            FIELD_OWNERSHIP["locations"],
            str(item.id),
            {
                "name": item.name,
                "type": location_type,
                "upstream_parent_id": str(item.parent_id) if item.parent_id is not None else None,
            },
            foreign_keys={"parent_id": self._location_id_for(item.parent_id)},
        )

    def _sync_hotel(self, item: HotelListItem) -> str:
        return self._upsert(
            FIELD_OWNERSHIP["hotels"],
            item.hotel_code,
            {
                "name": item.name,
                "stars": item.stars,
                "address": item.address,
                "latitude": item.latitude,
                "longitude": item.longitude,
                "thumbnail_image": item.thumbnail_image,
                "images": list(item.images),
                "facility_ids": list(item.facilities),
                "upstream_location_id": str(item.location_id) if item.location_id is not None else None,
            },
            foreign_keys={"location_id": self._location_id_for(item.location_id)},
        )

    # ==================
    # Runner
    # ==================

    def _run_stage(self, name: str, fetch: Callable[[], List], apply: Callable[[Any], str]) -> EntitySyncStats:
        stats = EntitySyncStats()
        try:
            items = fetch()
        except (UpstreamUnavailable, UpstreamRejected) as e:
            stats.error = e.message
            logger.warning(f"[{self.request_id}] Sync stage {name} fetch failed: {e.message}")
            return stats

        if name == "locations":
            items = parents_first(items)

        for item in items:
            try:
                with self.db.begin_nested():
                    outcome = apply(item)
            except Exception as e:
                stats.failed += 1
                logger.warning(f"[{self.request_id}] Sync {name} row failed: {e}")
                continue
            stats.record(outcome)

        self.db.commit()
        logger.info(
            f"[{self.request_id}] Sync {name}: {stats.created} created, {stats.updated} updated, "
            f"{stats.unchanged} unchanged, {stats.failed} failed"
        )
        return stats

    def sync_all(
        self,
        feed_id: Optional[str] = None,
        last_revision_date: Optional[date] = None,
        actor_user_id: Optional[str] = None
    ) -> Dict[str, EntitySyncStats]:
        """
        Run every sync stage in order.

        Raises:
            ConfigurationError: no feed id, before any upstream call
            SyncInProgress: another run is active in this process or on another worker
        """
        feed_id = (feed_id or settings.resolve_feed_id()).strip()
        if not feed_id:
            raise ConfigurationError("Content sync needs a feed id")

        if not _sync_lock.acquire(blocking=False):
            raise SyncInProgress()

        try:
            with advisory_lock(self.db, SYNC_ADVISORY_LOCK_KEY) as acquired:
                if not acquired:
                    raise SyncInProgress("A content sync is already running on another worker")
                return self._run_stages(feed_id, last_revision_date, actor_user_id)
        finally:
            _sync_lock.release()

    def _run_stages(
        self,
        feed_id: str,
        last_revision_date: Optional[date],
        actor_user_id: Optional[str]
    ) -> Dict[str, EntitySyncStats]:
        start_time = time.time()
        client = self.client
        stages = {
            "currencies": (client.get_currencies, self._sync_currency),
            "board_types": (client.get_board_types, self._sync_board_type),
            "facilities": (client.get_facilities, self._sync_facility),
            "room_attributes": (client.get_room_attributes, self._sync_room_attribute),
            "locations": (client.get_locations, self._sync_location),
            "hotels": (lambda: client.get_hotel_list(feed_id, last_revision_date), self._sync_hotel),
        }

        results: Dict[str, EntitySyncStats] = {}
        for name in SYNC_ORDER:
            fetch, apply = stages[name]
            results[name] = self._run_stage(name, fetch, apply)

        summary = {name: stats.as_dict() for name, stats in results.items()}
        AuditLog.record(
            self.db, AuditEntity.CATALOG, AuditAction.SYNC,
            actor_user_id=actor_user_id,
            payload={"feed_id": feed_id, "last_revision_date": last_revision_date, "stats": summary},
        )
        self.db.commit()

        duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.sync_finished(feed_id, summary, duration_ms)
        return results
