from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Actor(BaseModel):
    """The authenticated identity behind a lifecycle call.

    The session layer vouches for it; the core only reads ``id`` and
    ``display_name`` and leaves role checks to the HTTP layer.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True, frozen=True)

    id: str
    display_name: str = ""
    role: Literal["user", "admin"] = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class TokenRequest(BaseModel):
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    user_id: str = Field(..., alias="userId", min_length=1)
    display_name: str = Field(..., alias="displayName", min_length=1)
    role: Literal["user", "admin"] = "user"

    model_config = {
        "populate_by_name": True,
        "coerce_numbers_to_str": True,
        "json_schema_extra": {
            "example": {
                "apiKey": "super-secret-key",
                "userId": "42",
                "displayName": "Alice",
                "role": "user",
            }
        },
    }


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
