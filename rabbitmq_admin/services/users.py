"""User account management and login-attempt bookkeeping."""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from uuid import UUID

from rabbitmq_admin.entities import ClusterConnection, User, UserRole, utcnow
from rabbitmq_admin.errors import DuplicateResource, UserNotFound, ValidationFailed
from rabbitmq_admin.security import hash_password
from rabbitmq_admin.services.state import clusters_of, put_cluster, put_user, username_taken, users_of
from rabbitmq_admin.store import JsonStore

logger = logging.getLogger(__name__)

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULE_MESSAGE = (
    "Password must be at least 8 characters long and contain an uppercase letter, "
    "a lowercase letter, a digit and one of @$!%*?&"
)


def check_password_strength(password: str) -> None:
    if not _PASSWORD_RULE.match(password):
        raise ValidationFailed(PASSWORD_RULE_MESSAGE)


class UserService:
    def __init__(self, store: JsonStore) -> None:
        self._store = store

    # ── Queries ──────────────────────────────────────────────────────────────

    async def list_users(self) -> list[User]:
        data = await self._store.load()
        return sorted(users_of(data).values(), key=lambda u: u.username.casefold())

    async def get_user(self, user_id: UUID) -> User:
        data = await self._store.load()
        user = users_of(data).get(str(user_id))
        if user is None:
            raise UserNotFound(f"User not found: {user_id}")
        return user

    async def find_by_username(self, username: str) -> User | None:
        wanted = username.casefold()
        for user in await self.list_users():
            if user.username.casefold() == wanted:
                return user
        return None

    async def list_locked_users(self) -> list[User]:
        return [u for u in await self.list_users() if u.locked]

    async def list_users_by_cluster(self, cluster_id: UUID) -> list[User]:
        data = await self._store.load()
        cluster = clusters_of(data).get(str(cluster_id))
        if cluster is None:
            return []
        users = users_of(data)
        return sorted(
            (users[str(uid)] for uid in cluster.assigned_user_ids if str(uid) in users),
            key=lambda u: u.username.casefold(),
        )

    async def list_users_without_clusters(self) -> list[User]:
        data = await self._store.load()
        assigned = {uid for c in clusters_of(data).values() for uid in c.assigned_user_ids}
        return sorted(
            (u for u in users_of(data).values() if u.id not in assigned),
            key=lambda u: u.username.casefold(),
        )

    async def clusters_of_user(self, user_id: UUID) -> list[ClusterConnection]:
        data = await self._store.load()
        return sorted(
            (c for c in clusters_of(data).values() if user_id in c.assigned_user_ids),
            key=lambda c: c.name.casefold(),
        )

    # ── Mutations ────────────────────────────────────────────────────────────

    async def create_user(
        self,
        username: str,
        password: str,
        role: UserRole = UserRole.USER,
        *,
        enforce_password_rule: bool = True,
    ) -> User:
        if enforce_password_rule:
            check_password_strength(password)
        async with self._store.edit() as data:
            if username_taken(data, username):
                raise DuplicateResource(f"Username already exists: {username}")
            user = User(username=username, password_hash=hash_password(password), role=role)
            put_user(data, user)
        logger.info("Created %s user '%s' (%s)", role.value, username, user.id)
        return user

    async def update_user(
        self,
        user_id: UUID,
        *,
        username: str | None = None,
        password: str | None = None,
        role: UserRole | None = None,
    ) -> User:
        if password:
            check_password_strength(password)
        async with self._store.edit() as data:
            user = users_of(data).get(str(user_id))
            if user is None:
                raise UserNotFound(f"User not found: {user_id}")
            if username and username != user.username:
                if username_taken(data, username, exclude=str(user_id)):
                    raise DuplicateResource(f"Username already exists: {username}")
                user.username = username
            if password:
                user.password_hash = hash_password(password)
            if role is not None:
                user.role = role
            put_user(data, user)
        logger.info("Updated user '%s' (%s)", user.username, user.id)
        return user

    async def delete_user(self, user_id: UUID) -> None:
        """Delete the user and drop it from every cluster's assignment set."""
        async with self._store.edit() as data:
            if str(user_id) not in data.get("users", {}):
                raise UserNotFound(f"User not found: {user_id}")
            del data["users"][str(user_id)]
            for cluster in clusters_of(data).values():
                if user_id in cluster.assigned_user_ids:
                    cluster.assigned_user_ids.discard(user_id)
                    put_cluster(data, cluster)
        logger.info("Deleted user %s", user_id)

    async def unlock_user(self, user_id: UUID) -> User:
        async with self._store.edit() as data:
            user = users_of(data).get(str(user_id))
            if user is None:
                raise UserNotFound(f"User not found: {user_id}")
            _reset_lock(user)
            put_user(data, user)
        logger.info("Unlocked user '%s'", user.username)
        return user

    # ── Login bookkeeping ────────────────────────────────────────────────────

    async def release_expired_lock(self, user: User, auto_unlock_minutes: int) -> User:
        """Unlock *user* if its lock is older than *auto_unlock_minutes* (0 = never)."""
        if not user.locked or auto_unlock_minutes <= 0 or user.locked_at is None:
            return user
        if utcnow() - user.locked_at < timedelta(minutes=auto_unlock_minutes):
            return user
        logger.info("Auto-unlocking user '%s' after %d minutes", user.username, auto_unlock_minutes)
        return await self.unlock_user(user.id)

    async def register_failed_login(self, user_id: UUID, max_attempts: int) -> User:
        """Count a failed password; lock the account once *max_attempts* is reached."""
        async with self._store.edit() as data:
            user = users_of(data).get(str(user_id))
            if user is None:
                raise UserNotFound(f"User not found: {user_id}")
            now = utcnow()
            user.failed_login_attempts += 1
            user.last_failed_login_at = now
            if user.failed_login_attempts >= max_attempts and not user.locked:
                user.locked = True
                user.locked_at = now
                logger.warning(
                    "User '%s' locked after %d failed login attempts",
                    user.username,
                    user.failed_login_attempts,
                )
            put_user(data, user)
        return user

    async def register_successful_login(self, user_id: UUID) -> User:
        async with self._store.edit() as data:
            user = users_of(data).get(str(user_id))
            if user is None:
                raise UserNotFound(f"User not found: {user_id}")
            if user.failed_login_attempts or user.locked:
                _reset_lock(user)
                put_user(data, user)
        return user

    async def ensure_bootstrap_admin(self, username: str, password: str) -> User | None:
        """Create the initial administrator when no user exists yet."""
        if await self.list_users():
            return None
        user = await self.create_user(
            username, password, UserRole.ADMINISTRATOR, enforce_password_rule=False
        )
        logger.warning("Created bootstrap administrator '%s'; change its password", username)
        return user


def _reset_lock(user: User) -> None:
    user.locked = False
    user.locked_at = None
    user.failed_login_attempts = 0
    user.last_failed_login_at = None
