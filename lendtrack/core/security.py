"""Signed actor tokens.

The session layer (mobile app or admin dashboard) exchanges its own login for
one of these tokens; the lending API only ever sees the actor claims inside.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError, field_validator

from .clock import utcnow
from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "device-lending-clients"
ISSUER = "device-lending"


class TokenPayload(BaseModel):
    sub: str
    name: str
    role: Literal["user", "admin"] = "user"
    exp: datetime
    iat: datetime

    @field_validator("sub", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("claim must not be blank")
        return value


def issue_access_token(
    subject: str,
    name: str,
    role: str = "user",
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a token for actor ``subject`` shown to others as ``name``."""

    issued = utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)
    claims = {
        "sub": str(subject),
        "name": name,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + lifetime).timestamp()),
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> TokenPayload:
    """Verify ``token`` and return its actor claims; ``ValueError`` if unusable."""

    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            issuer=ISSUER,
        )
    except ExpiredSignatureError as exc:
        raise ValueError("Token expired") from exc
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        return TokenPayload.model_validate(claims)
    except ValidationError as exc:
        raise ValueError("Invalid actor claims") from exc
