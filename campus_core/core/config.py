from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Unset and blank-after-strip both fall back to the default.
    return os.environ.get(name, default).strip()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    org_stats_refresh_seconds: int = 300
    impersonation_enabled: bool = True
    expiring_soon_days: int = 30
    jwt_issuer: str = "campus-identity"
    jwt_audience: str = "campus-core"
    # PEM; None means an ephemeral dev key (see services/token_service.py).
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    log_json = _parse_bool("LOG_JSON", _getenv("LOG_JSON", "false"))

    # Impersonation is a support tool; production has to opt in explicitly.
    impersonation_default = "false" if app_env_raw == "prod" else "true"
    impersonation_enabled = _parse_bool(
        "IMPERSONATION_ENABLED",
        _getenv("IMPERSONATION_ENABLED", impersonation_default),
    )

    org_stats_refresh_seconds = _parse_positive_int(
        "ORG_STATS_REFRESH_SECONDS", _getenv("ORG_STATS_REFRESH_SECONDS", "300")
    )
    expiring_soon_days = _parse_positive_int(
        "EXPIRING_SOON_DAYS", _getenv("EXPIRING_SOON_DAYS", "30")
    )

    # Container env files usually carry the PEM on one line with literal \n.
    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "").replace("\\n", "\n") or None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        org_stats_refresh_seconds=org_stats_refresh_seconds,
        impersonation_enabled=impersonation_enabled,
        expiring_soon_days=expiring_soon_days,
        jwt_issuer=_getenv("JWT_ISSUER", "campus-identity"),
        jwt_audience=_getenv("JWT_AUDIENCE", "campus-core"),
        jwt_public_key=jwt_public_key,
    )


# Read once at import; tests swap fields with dataclasses.replace.
SETTINGS = load_settings()
