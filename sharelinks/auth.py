"""Bearer-token capability checks.

Tokens are issued by the portal's auth service; this module only verifies them
and exposes the caller as a ``Principal``. User records are not consulted: the
token's ``role`` (or legacy ``isAdmin``) claim is the admin capability.

How to Use
===========
::
    @router.post("/share")
    async def create(principal: Principal = Depends(get_current_principal)): ...

    @router.get("/admin/shares/overview")
    async def overview(principal: Principal = Depends(require_admin)): ...
"""

from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sharelinks.config import get_settings
from sharelinks.enums import Role
from sharelinks.exceptions import Forbidden, Unauthorized

__all__ = ["Principal", "decode_token", "get_current_principal", "require_admin"]

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def decode_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        raise Unauthorized("Invalid token") from exc

    user_id = payload.get("sub") or payload.get("userId") or payload.get("id")
    if not user_id:
        raise Unauthorized("Invalid token payload")

    is_admin = payload.get("role") == Role.ADMIN or payload.get("isAdmin") is True
    return Principal(user_id=str(user_id), role=Role.ADMIN if is_admin else Role.USER)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing token")
    return decode_token(credentials.credentials)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Admin required")
    return principal
