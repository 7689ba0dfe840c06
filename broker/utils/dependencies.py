"""
Request dependencies.

Authentication happens at the gateway; it forwards the caller as
X-Actor-Id / X-Actor-Role / X-Agency-Id headers.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..services.access import Actor, ActorRole
from .logging_config import actor_id_var


def get_request_id(request: Request) -> str:
    """Get or create request ID for correlation"""
    if hasattr(request.state, 'request_id'):
        return request.state.request_id
    return str(uuid.uuid4())[:8]


def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_agency_id: Optional[str] = Header(None)
) -> Actor:
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated actor"
        )

    try:
        role = ActorRole((x_actor_role or ActorRole.CUSTOMER.value).upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown actor role: {x_actor_role}"
        )

    actor_id_var.set(x_actor_id)
    return Actor(user_id=x_actor_id, role=role, agency_id=x_agency_id or None)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return actor
