"""Shared FastAPI dependencies for identity and authorization.

Authentication happens upstream; the gateway forwards the resolved identity in
``X-User-Id`` / ``X-User-Role`` headers and this service trusts them.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic import BaseModel


logger = logging.getLogger("auth.deps")


class CurrentUser(BaseModel):
    """Minimal user identity shared across endpoints."""
    id: str
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role in _admin_roles()


@lru_cache()
def _admin_roles() -> set[str]:
    return {"admin", "superadmin"}


async def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> CurrentUser:
    """Resolve the caller forwarded by the gateway."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")

    current = CurrentUser(id=user_id, role=(x_user_role or "student").strip().lower() or "student")
    request.state.current_user = current
    logger.debug(
        "auth_resolved user_id=%s role=%s request_id=%s path=%s",
        current.id,
        current.role,
        getattr(request.state, "request_id", None),
        request.url.path,
    )
    return current


def require_role(*roles: str) -> Callable:
    allowed = {r.lower() for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed and not (current_user.is_admin and "admin" in allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return current_user

    return _checker


def require_admin() -> Callable:
    return require_role("admin", "superadmin")


__all__ = ["CurrentUser", "get_current_user", "require_role", "require_admin"]
