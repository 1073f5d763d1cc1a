import os
from dataclasses import dataclass

from werkzeug.security import generate_password_hash

from app.triage.constants import (
    CSRF_SWEEP_INTERVAL,
    CSRF_TOKEN_TTL,
    SESSION_SWEEP_INTERVAL,
    SESSION_TTL,
)

DEV_ADMIN_PASSWORD = "123456"


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str
    log_level: str

    admin_username: str
    admin_password: str
    admin_password_hash: str

    csrf_token_ttl: int
    csrf_sweep_interval: int
    session_ttl: int
    session_sweep_interval: int
    sweeper_enabled: bool


def is_production(env: str | None) -> bool:
    return (env or "").strip().lower() in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive (got {value}).")
    return value


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw not in ("0", "false", "off", "no")


def load_settings() -> Settings:
    env = _getenv("ENV", "development").lower()
    production = is_production(env)
    return Settings(
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///feedbacks.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        admin_username=_getenv("ADMIN_USERNAME", "admin"),
        # No default password in production; see the guardrails in create_app().
        admin_password=os.environ.get("ADMIN_PASSWORD") or ("" if production else DEV_ADMIN_PASSWORD),
        admin_password_hash=_getenv("ADMIN_PASSWORD_HASH"),
        csrf_token_ttl=_getenv_int("CSRF_TOKEN_TTL_SECONDS", CSRF_TOKEN_TTL),
        csrf_sweep_interval=_getenv_int("CSRF_SWEEP_INTERVAL_SECONDS", CSRF_SWEEP_INTERVAL),
        session_ttl=_getenv_int("SESSION_TTL_SECONDS", SESSION_TTL),
        session_sweep_interval=_getenv_int("SESSION_SWEEP_INTERVAL_SECONDS", SESSION_SWEEP_INTERVAL),
        sweeper_enabled=_getenv_bool("SWEEPER_ENABLED", env != "test"),
    )


def load_config() -> dict:
    s = load_settings()
    password_hash = s.admin_password_hash
    if not password_hash and s.admin_password:
        password_hash = generate_password_hash(s.admin_password)
    return {
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "ADMIN_USERNAME": s.admin_username,
        "ADMIN_PASSWORD_HASH": password_hash,
        "CSRF_TOKEN_TTL": s.csrf_token_ttl,
        "CSRF_SWEEP_INTERVAL": s.csrf_sweep_interval,
        "SESSION_TTL": s.session_ttl,
        "SESSION_SWEEP_INTERVAL": s.session_sweep_interval,
        "SWEEPER_ENABLED": s.sweeper_enabled,
        # security defaults
        "AUTH_COOKIE_SECURE": is_production(s.env),  # Require HTTPS in production
        # form posts only; no uploads
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
