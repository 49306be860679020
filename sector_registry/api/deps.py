from typing import Optional

from fastapi import Depends, Header, HTTPException

from sector_registry.core.actor import ADMIN_ROLES, EDITOR_ROLES, Actor
from sector_registry.models.user import USER_ROLES


async def get_actor(
    x_user_id: Optional[int] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """Identity forwarded by the authentication gateway in front of this service."""
    if x_user_id is None or x_user_role not in USER_ROLES:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Actor(id=x_user_id, role=x_user_role)


def require_roles(*roles: str):
    async def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor

    return dependency


can_edit = require_roles(*EDITOR_ROLES)
is_admin = require_roles(*ADMIN_ROLES)
