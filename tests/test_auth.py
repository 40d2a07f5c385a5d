"""Tests for /api/auth/* and bearer-token handling."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from fastapi.testclient import TestClient

from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import User, utcnow
from rabbitmq_admin.security import REFRESH, TokenIssuer, hash_password, verify_password
from rabbitmq_admin.services.state import put_user, users_of
from rabbitmq_admin.store import JsonStore
from tests.conftest import ADMIN_PASSWORD, USER_PASSWORD

# ── Login ─────────────────────────────────────────────────────────────────────


def test_login_returns_token_pair(test_client: TestClient, admin_user: User) -> None:
    resp = test_client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    data = resp.json()
    assert data["tokenType"] == "Bearer"
    assert data["accessToken"] and data["refreshToken"]
    assert data["expiresIn"] > 0
    assert data["user"]["username"] == "admin"
    assert data["user"]["role"] == "ADMINISTRATOR"


def test_login_username_is_case_insensitive(test_client: TestClient, alice: User) -> None:
    resp = test_client.post("/api/auth/login", json={"username": "ALICE", "password": USER_PASSWORD})
    assert resp.status_code == 200


def test_login_unknown_user(test_client: TestClient) -> None:
    resp = test_client.post("/api/auth/login", json={"username": "ghost", "password": "whatever"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid username or password"
    assert resp.headers["www-authenticate"] == "Bearer"


def test_wrong_password_reports_remaining_attempts(test_client: TestClient, alice: User) -> None:
    resp = test_client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["details"]["remainingAttempts"] == 2


def test_account_locks_after_max_failed_attempts(test_client: TestClient, alice: User) -> None:
    for _ in range(2):
        assert test_client.post(
            "/api/auth/login", json={"username": "alice", "password": "nope"}
        ).status_code == 401
    third = test_client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    assert third.status_code == 423

    # Correct password no longer helps.
    resp = test_client.post("/api/auth/login", json={"username": "alice", "password": USER_PASSWORD})
    assert resp.status_code == 423


def test_successful_login_resets_failed_attempts(
    test_client: TestClient, alice: User, state_store: JsonStore
) -> None:
    test_client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    test_client.post("/api/auth/login", json={"username": "alice", "password": USER_PASSWORD})
    stored = users_of(asyncio.run(state_store.load()))[str(alice.id)]
    assert stored.failed_login_attempts == 0


def test_admin_unlock_allows_login_again(
    test_client: TestClient, alice: User, admin_headers: dict[str, str]
) -> None:
    for _ in range(3):
        test_client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    assert test_client.post(f"/api/users/{alice.id}/unlock", headers=admin_headers).status_code == 200
    resp = test_client.post("/api/auth/login", json={"username": "alice", "password": USER_PASSWORD})
    assert resp.status_code == 200


def test_auto_unlock_after_configured_minutes(
    test_client: TestClient, alice: User, state_store: JsonStore, settings: Settings
) -> None:
    settings.lockout_auto_unlock_minutes = 5

    async def lock_long_ago() -> None:
        async with state_store.edit() as data:
            user = users_of(data)[str(alice.id)]
            user.locked = True
            user.failed_login_attempts = 3
            user.locked_at = utcnow() - timedelta(minutes=10)
            put_user(data, user)

    asyncio.run(lock_long_ago())
    resp = test_client.post("/api/auth/login", json={"username": "alice", "password": USER_PASSWORD})
    assert resp.status_code == 200


# ── Tokens ────────────────────────────────────────────────────────────────────


def test_me_requires_token(test_client: TestClient) -> None:
    resp = test_client.get("/api/auth/me")
    assert resp.status_code == 401


def test_me_with_garbage_token(test_client: TestClient) -> None:
    resp = test_client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_me_returns_current_user(test_client: TestClient, alice_headers: dict[str, str]) -> None:
    resp = test_client.get("/api/auth/me", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"
    assert resp.json()["role"] == "USER"


def test_token_signed_with_other_secret_rejected(test_client: TestClient, alice: User) -> None:
    forged = TokenIssuer("another-secret", "rabbitmq-admin", 600, 600).issue(alice)
    resp = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401


def test_expired_token_rejected(test_client: TestClient, alice: User) -> None:
    expired = TokenIssuer("test-secret", "rabbitmq-admin", -120, 600).issue(alice)
    resp = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401


def test_refresh_token_is_not_an_access_token(
    test_client: TestClient, alice: User, token_issuer: TokenIssuer
) -> None:
    refresh = token_issuer.issue(alice, REFRESH)
    resp = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {refresh}"})
    assert resp.status_code == 401


def test_refresh_issues_new_pair(test_client: TestClient, alice: User, token_issuer: TokenIssuer) -> None:
    resp = test_client.post("/api/auth/refresh", json={"refreshToken": token_issuer.issue(alice, REFRESH)})
    assert resp.status_code == 200
    access = resp.json()["accessToken"]
    me = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert me.json()["username"] == "alice"


def test_refresh_rejects_access_token(test_client: TestClient, alice_headers: dict[str, str]) -> None:
    access = alice_headers["Authorization"].split()[1]
    resp = test_client.post("/api/auth/refresh", json={"refreshToken": access})
    assert resp.status_code == 401


def test_validate_reports_expiry(test_client: TestClient, alice_headers: dict[str, str]) -> None:
    resp = test_client.get("/api/auth/validate", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["valid"] is True
    assert resp.json()["expiresIn"] > 0


def test_token_of_deleted_user_rejected(
    test_client: TestClient, bob: User, bob_headers: dict[str, str], admin_headers: dict[str, str]
) -> None:
    assert test_client.delete(f"/api/users/{bob.id}", headers=admin_headers).status_code == 204
    assert test_client.get("/api/auth/me", headers=bob_headers).status_code == 401


def test_logout(test_client: TestClient, alice_headers: dict[str, str]) -> None:
    assert test_client.post("/api/auth/logout", headers=alice_headers).status_code == 204


def test_issuer_from_default_settings_round_trip(alice: User) -> None:
    settings = Settings(_env_file=None)
    issuer = TokenIssuer(
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        access_ttl_seconds=settings.access_token_ttl_minutes * 60,
        refresh_ttl_seconds=settings.refresh_token_ttl_minutes * 60,
    )
    claims = issuer.decode(issuer.issue(alice))
    assert claims["sub"] == str(alice.id)
    assert claims["typ"] == "access"


def test_short_secret_still_signs(alice: User) -> None:
    issuer = TokenIssuer("x", "rabbitmq-admin", 600, 600)
    assert issuer.decode(issuer.issue(alice, REFRESH), REFRESH)["username"] == "alice"


# ── Password hashing ──────────────────────────────────────────────────────────


def test_password_hash_round_trip() -> None:
    hashed = hash_password("Secret123!")
    assert hashed != "Secret123!"
    assert verify_password("Secret123!", hashed)
    assert not verify_password("secret123!", hashed)
