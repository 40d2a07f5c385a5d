"""Authentication endpoints – /api/auth/*."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from rabbitmq_admin.deps import get_auth_service, get_bearer_token, get_current_user
from rabbitmq_admin.entities import User
from rabbitmq_admin.models import (
    LoginRequest,
    RefreshRequest,
    TokenResponse,
    TokenValidationResponse,
    UserInfo,
)
from rabbitmq_admin.services.auth import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange username + password for an access / refresh token pair."""
    return await auth.login(payload.username, payload.password)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    payload: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    return await auth.refresh(payload.refresh_token)


@router.get("/me", response_model=UserInfo)
async def me(user: User = Depends(get_current_user)) -> UserInfo:
    return UserInfo.from_user(user)


@router.get("/validate", response_model=TokenValidationResponse)
async def validate(
    token: str = Depends(get_bearer_token),
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> TokenValidationResponse:
    return auth.validate(token, user)


@router.post("/logout", status_code=204)
async def logout(user: User = Depends(get_current_user)) -> None:
    """Tokens are stateless; the client discards them.  Only logged here."""
    logger.info("User '%s' logged out", user.username)
