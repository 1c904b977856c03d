from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.security import decode_token
from ..middlewares import actor_id_var
from ..schemas.auth import Actor


def _unauthorized(detail: str = "Unauthorized") -> None:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, principal: str) -> None:
    actor_id_var.set(principal)
    request.state.principal = principal


async def require_actor(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Actor:
    """Resolve the calling actor from the session layer's bearer token."""

    if not authorization:
        _unauthorized("Authorization required")
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        _unauthorized("Bearer token required")
    try:
        payload = decode_token(credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    actor = Actor(id=payload.sub, display_name=payload.name, role=payload.role)
    _set_principal(request, f"{actor.role}:{actor.id}")
    return actor


async def require_admin(actor: Actor = Depends(require_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return actor
