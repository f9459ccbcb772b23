from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Header, HTTPException, status

from ..core.config import settings
from ..core.security import issue_token_pair, refresh_access_token
from ..schemas.auth import RefreshRequest, TokenRequest, TokenResponse

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _check_key(provided: str | None) -> None:
    configured = (settings.API_KEY or "").strip()
    if not configured:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="API key authentication is disabled")
    if not provided or not hmac.compare_digest(provided.strip(), configured):
        logger.warning("auth.token_rejected")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@router.post("/token", response_model=TokenResponse, summary="Exchange the API key for an admin or staff token pair")
async def exchange_token(
    payload: TokenRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    _check_key(payload.api_key or x_api_key)
    subject = (payload.subject or "api-client").strip()
    pair = issue_token_pair(subject=subject, role=payload.role)
    logger.info("auth.token_issued", extra={"extra_data": {"subject": subject, "role": payload.role}})
    return TokenResponse(**pair.model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Rotate a token pair, keeping its role")
async def refresh_token(payload: RefreshRequest):
    try:
        pair = refresh_access_token(payload.refresh_token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return TokenResponse(**pair.model_dump())
