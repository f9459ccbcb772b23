from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..core.security import ROLE_ADMIN, ROLES

ROLE_PATTERN = f"^({'|'.join(ROLES)})$"


class TokenRequest(BaseModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)
    subject: Optional[str] = Field(default=None, max_length=120)
    # Key holders may mint narrower staff tokens for counter terminals and scanners.
    role: str = Field(default=ROLE_ADMIN, pattern=ROLE_PATTERN)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {"apiKey": "super-secret-key", "subject": "front-desk-2", "role": "staff"}
        },
    }


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "<jwt>",
                "refresh_token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 900,
                "role": "staff",
            }
        }
    }


class RefreshRequest(BaseModel):
    refresh_token: str
