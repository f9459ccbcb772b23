from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import ACCESS, ROLE_ADMIN, ROLE_STAFF, decode_token
from ..middlewares import principal_ctx_var


class Actor:
    """Who is calling: ``subject`` ends up in ledger entries as ``performed_by``."""

    def __init__(self, *, subject: str, scheme: str, role: str) -> None:
        self.subject = subject
        self.scheme = scheme
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def _unauthorized(detail: str = "Unauthorized") -> None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def get_actor(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Actor:
    api_key = (settings.API_KEY or "").strip()
    provided_key = (x_api_key or "").strip()
    if api_key and provided_key and hmac.compare_digest(api_key, provided_key):
        _set_principal(request, "api-key")
        return Actor(subject="api-key", scheme="api_key", role=ROLE_ADMIN)

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type=ACCESS)
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            subject = f"jwt:{payload.sub}"
            _set_principal(request, subject)
            request.state.token_payload = payload
            return Actor(subject=subject, scheme="jwt", role=payload.role)

    if not api_key:
        _set_principal(request, "anonymous")
        return Actor(subject="anonymous", scheme="open", role=ROLE_STAFF)

    if provided_key:
        _unauthorized("Invalid API key")
    _unauthorized("Authorization required")


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return actor
