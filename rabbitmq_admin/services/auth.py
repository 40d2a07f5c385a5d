"""Login, token refresh and bearer-token resolution."""

from __future__ import annotations

import logging
import time
from uuid import UUID

from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import User
from rabbitmq_admin.errors import AccountLocked, AuthenticationFailed, NotFound
from rabbitmq_admin.models import TokenResponse, TokenValidationResponse, UserInfo
from rabbitmq_admin.security import ACCESS, REFRESH, TokenIssuer, verify_password
from rabbitmq_admin.services.users import UserService

logger = logging.getLogger(__name__)

_LOCKED_MESSAGE = "Account is locked due to too many failed login attempts. Contact an administrator."


class AuthService:
    def __init__(self, users: UserService, tokens: TokenIssuer, settings: Settings) -> None:
        self._users = users
        self._tokens = tokens
        self._settings = settings

    async def login(self, username: str, password: str) -> TokenResponse:
        user = await self._users.find_by_username(username)
        if user is None:
            logger.warning("Login failed for unknown user '%s'", username)
            raise AuthenticationFailed("Invalid username or password")

        lockout = self._settings.lockout_enabled
        if lockout:
            user = await self._users.release_expired_lock(user, self._settings.lockout_auto_unlock_minutes)
            if user.locked:
                logger.warning("Login rejected for locked user '%s'", user.username)
                raise AccountLocked(_LOCKED_MESSAGE)

        if not verify_password(password, user.password_hash):
            logger.warning("Login failed for user '%s': bad password", user.username)
            if not lockout:
                raise AuthenticationFailed("Invalid username or password")
            max_attempts = self._settings.lockout_max_failed_attempts
            user = await self._users.register_failed_login(user.id, max_attempts)
            if user.locked:
                raise AccountLocked(_LOCKED_MESSAGE)
            remaining = max_attempts - user.failed_login_attempts
            raise AuthenticationFailed(
                f"Invalid username or password. {remaining} attempt(s) remaining before the account is locked",
                details={"remainingAttempts": remaining},
            )

        user = await self._users.register_successful_login(user.id)
        logger.info("User '%s' logged in", user.username)
        return self._token_pair(user)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        claims = self._tokens.decode(refresh_token, kind=REFRESH)
        user = await self._user_for_claims(claims)
        return self._token_pair(user)

    async def resolve(self, access_token: str) -> User:
        """Return the user an access token was issued to."""
        claims = self._tokens.decode(access_token, kind=ACCESS)
        return await self._user_for_claims(claims)

    def validate(self, access_token: str, user: User) -> TokenValidationResponse:
        claims = self._tokens.decode(access_token, kind=ACCESS)
        return TokenValidationResponse(
            valid=True,
            username=user.username,
            role=user.role,
            expires_in=max(0, int(claims["exp"]) - int(time.time())),
        )

    # ── Internal helpers ─────────────────────────────────────────────────────

    async def _user_for_claims(self, claims: dict) -> User:
        try:
            user = await self._users.get_user(UUID(claims["sub"]))
        except (NotFound, ValueError) as exc:
            raise AuthenticationFailed("Token subject no longer exists") from exc
        if user.locked and self._settings.lockout_enabled:
            raise AccountLocked(_LOCKED_MESSAGE)
        return user

    def _token_pair(self, user: User) -> TokenResponse:
        return TokenResponse(
            access_token=self._tokens.issue(user, ACCESS),
            refresh_token=self._tokens.issue(user, REFRESH),
            expires_in=self._tokens.access_ttl_seconds,
            user=UserInfo.from_user(user),
        )
