import os
from dataclasses import dataclass

from app.menfem.errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    database_url: str
    direct_url: str
    secret_key: str
    env: str

    session_lifetime_days: int
    email_token_ttl_hours: int
    password_reset_ttl_hours: int

    # Lower-cased emails allowed into the /admin endpoints.
    admin_emails: frozenset[str] = frozenset()

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")

    @property
    def migration_url(self) -> str:
        # Migrations bypass the pooler when a direct URL is configured.
        return self.direct_url or self.database_url


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}.") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}.")
    return value


def _getlist(name: str) -> frozenset[str]:
    return frozenset(item.strip().lower() for item in _getenv(name).split(",") if item.strip())


def load_settings() -> Settings:
    database_url = _getenv("DATABASE_URL")
    if not database_url:
        raise ConfigurationError("DATABASE_URL is required.")
    return Settings(
        database_url=database_url,
        direct_url=_getenv("DIRECT_URL"),
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        session_lifetime_days=_getint("SESSION_LIFETIME_DAYS", 30),
        email_token_ttl_hours=_getint("EMAIL_TOKEN_TTL_HOURS", 24),
        password_reset_ttl_hours=_getint("PASSWORD_RESET_TTL_HOURS", 1),
        admin_emails=_getlist("ADMIN_EMAILS"),
    )


def load_config(settings: Settings | None = None) -> dict:
    s = settings or load_settings()
    return {
        "SETTINGS": s,
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "DIRECT_URL": s.direct_url,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": s.is_production,  # Require HTTPS in production
        "JSON_SORT_KEYS": False,
    }
