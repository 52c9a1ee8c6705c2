"""Acting identity from upstream auth proxy headers, plus role gates."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request

from .config import settings

ROLE_READ = "READ"
ROLE_WRITE = "WRITE"
ROLE_ADMIN = "ADMIN"
WRITE_ROLES = frozenset({ROLE_WRITE, ROLE_ADMIN})


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES


def get_actor(request: Request) -> Actor:
    """Resolve the caller. Raises 401 when the proxy did not identify one."""
    user_id = request.headers.get(settings.actor_user_header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    role = request.headers.get(settings.actor_role_header, "").strip().upper() or ROLE_READ
    return Actor(user_id=user_id, role=role)


def require_writer(request: Request) -> Actor:
    actor = get_actor(request)
    if not actor.can_write:
        raise HTTPException(status_code=403, detail="Write access required")
    return actor
