"""Password hashing and bearer-token signing.

Passwords are hashed with passlib (PBKDF2-SHA256).  Tokens are compact
HS256 JWS objects produced with jwcrypto, signed with the SHA-256 digest of
``settings.jwt_secret``.
"""

from __future__ import annotations

import hashlib
import json
import secrets
import time
from typing import Any

from jwcrypto import jwk
from jwcrypto.common import JWException, base64url_encode
from jwcrypto.jwt import JWT
from passlib.context import CryptContext

from rabbitmq_admin.entities import User
from rabbitmq_admin.errors import AuthenticationFailed

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return _pwd_context.verify(password, password_hash)


class TokenIssuer:
    """Issue and verify signed access / refresh tokens."""

    def __init__(
        self,
        secret: str,
        issuer: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        # HS256 needs a 256-bit key whatever the length of the configured secret.
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._key = jwk.JWK(kty="oct", k=base64url_encode(digest))
        self._issuer = issuer
        self._ttl = {ACCESS: access_ttl_seconds, REFRESH: refresh_ttl_seconds}

    @property
    def access_ttl_seconds(self) -> int:
        return self._ttl[ACCESS]

    def issue(self, user: User, kind: str = ACCESS) -> str:
        """Return a signed token of *kind* (``access`` or ``refresh``) for *user*."""
        now = int(time.time())
        claims = {
            "iss": self._issuer,
            "sub": str(user.id),
            "username": user.username,
            "role": user.role.value,
            "typ": kind,
            "iat": now,
            "nbf": now,
            "exp": now + self._ttl[kind],
            "jti": secrets.token_urlsafe(16),
        }
        token = JWT(header={"alg": "HS256", "typ": "JWT"}, claims=claims)
        token.make_signed_token(self._key)
        return token.serialize()

    def decode(self, token: str, kind: str = ACCESS) -> dict[str, Any]:
        """Verify signature, issuer, expiry and token kind; return the claims.

        Raises:
            AuthenticationFailed: for any malformed, forged, expired or
                wrong-kind token.
        """
        try:
            parsed = JWT(
                jwt=token,
                key=self._key,
                expected_type="JWS",
                check_claims={"iss": self._issuer, "exp": None, "sub": None, "typ": kind},
            )
        except (JWException, ValueError) as exc:
            raise AuthenticationFailed("Invalid or expired token") from exc
        return json.loads(parsed.claims)
