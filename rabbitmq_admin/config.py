"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All settings are read from environment variables (case-insensitive)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Persistence ───────────────────────────────────────────────────────────
    # Users, cluster connections and user ↔ cluster assignments.
    state_store_path: str = "/data/state.json"
    # Append-mostly audit trail of write operations against RabbitMQ.
    audit_store_path: str = "/data/audit.json"

    # ── Authentication ────────────────────────────────────────────────────────
    # HS256 signing secret.  MUST be changed in production.
    jwt_secret: str = "change-this-jwt-secret"
    jwt_issuer: str = "rabbitmq-admin"
    access_token_ttl_minutes: int = 60 * 24
    refresh_token_ttl_minutes: int = 60 * 24 * 7

    # ── Login lockout ─────────────────────────────────────────────────────────
    lockout_enabled: bool = True
    lockout_max_failed_attempts: int = 3
    # 0 disables automatic unlocking; an administrator must unlock the account.
    lockout_auto_unlock_minutes: int = 0

    # ── Bootstrap administrator (created only when the user store is empty) ──
    bootstrap_admin_username: str = "admin"
    bootstrap_admin_password: str = "admin123!"

    # ── RabbitMQ Management API ───────────────────────────────────────────────
    rabbitmq_request_timeout: float = 30.0
    rabbitmq_connection_test_timeout: float = 10.0
    # Set to False only for clusters fronted by self-signed certificates.
    rabbitmq_verify_tls: bool = True

    # ── Audit ─────────────────────────────────────────────────────────────────
    audit_write_operations_enabled: bool = True
    audit_retention_enabled: bool = True
    audit_retention_days: int = 90
    audit_retention_interval_hours: float = 24.0

    # ── Cluster health monitoring ─────────────────────────────────────────────
    # Cached health results younger than this are served without a new check.
    health_check_interval_minutes: float = 5.0
    health_check_timeout_seconds: float = 10.0

    # ── HTTP ──────────────────────────────────────────────────────────────────
    # JSON list, e.g. '["https://admin.example.com"]'
    cors_allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    log_level: str = "INFO"
