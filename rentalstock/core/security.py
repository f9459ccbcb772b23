"""Signed bearer tokens carrying the caller's role.

Two roles exist. ``admin`` may run batch mutations, retire or lose items,
manage policies, suppliers and orders; ``staff`` may record day-to-day stock
movements and report damage. The role travels inside the token so the API
never has to look it up.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError, field_validator

from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "rentalstock-clients"
ISSUER = "rentalstock"

ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
ROLES = (ROLE_ADMIN, ROLE_STAFF)

ACCESS = "access"
REFRESH = "refresh"


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    typ: str
    aud: str
    iss: str
    role: str = ROLE_STAFF

    @field_validator("role")
    @classmethod
    def known_role(cls, value: str) -> str:
        if value not in ROLES:
            raise ValueError(f"unknown role {value!r}")
        return value


def _sign(claims: dict[str, Any], lifetime: timedelta) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims = {
        **claims,
        "iat": int(issued.timestamp()),
        "exp": int((issued + lifetime).timestamp()),
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def issue_token_pair(subject: str, role: str = ROLE_STAFF) -> TokenPair:
    if role not in ROLES:
        raise ValueError(f"unknown role {role!r}")
    access_ttl = timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)
    refresh_ttl = timedelta(days=settings.JWT_REFRESH_TTL_DAYS)
    return TokenPair(
        access_token=_sign({"sub": subject, "typ": ACCESS, "role": role}, access_ttl),
        refresh_token=_sign({"sub": subject, "typ": REFRESH, "role": role}, refresh_ttl),
        expires_in=int(access_ttl.total_seconds()),
        role=role,
    )


def decode_token(token: str, *, verify_type: str | None = None) -> TokenPayload:
    """Verify signature, audience, issuer and expiry; raises ValueError on any failure."""

    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
        payload = TokenPayload.model_validate(claims)
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
    if verify_type and payload.typ != verify_type:
        raise ValueError(f"Expected a {verify_type} token")
    return payload


def refresh_access_token(refresh_token: str) -> TokenPair:
    payload = decode_token(refresh_token, verify_type=REFRESH)
    return issue_token_pair(payload.sub, role=payload.role)
