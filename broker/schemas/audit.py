from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity: str
    entity_id: Optional[str] = None
    action: str
    actor_user_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime
