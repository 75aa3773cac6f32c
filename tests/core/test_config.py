from __future__ import annotations

import dataclasses

import pytest

from campus_core.core.config import Settings, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("APP_ENV", "LOG_LEVEL", "LOG_JSON", "PORT"):
        monkeypatch.delenv(name, raising=False)


# ---- APP_ENV / LOG_LEVEL ----


def test_defaults_are_dev_and_info() -> None:
    settings = load_settings()
    assert (settings.app_env, settings.log_level, settings.port) == ("dev", "info", 8000)
    assert settings.log_json is False


@pytest.mark.parametrize(
    ("app_env", "log_level", "expected"),
    [
        ("prod", "error", ("prod", "error")),
        ("PROD", "DEBUG", ("prod", "debug")),
        ("  test  ", "  warning  ", ("test", "warning")),
    ],
)
def test_env_values_are_normalized(
    monkeypatch: pytest.MonkeyPatch, app_env: str, log_level: str, expected: tuple[str, str]
) -> None:
    monkeypatch.setenv("APP_ENV", app_env)
    monkeypatch.setenv("LOG_LEVEL", log_level)
    settings = load_settings()
    assert (settings.app_env, settings.log_level) == expected


@pytest.mark.parametrize(
    ("name", "raw", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be dev"),
        ("APP_ENV", "", "APP_ENV must be dev"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug"),
        ("PORT", "http", "PORT must be an integer"),
    ],
)
def test_invalid_values_fail_at_startup(
    monkeypatch: pytest.MonkeyPatch, name: str, raw: str, message: str
) -> None:
    monkeypatch.setenv(name, raw)
    with pytest.raises(ValueError, match=message):
        load_settings()


def test_environment_flags() -> None:
    settings = load_settings()
    prod = dataclasses.replace(settings, app_env="prod")

    assert (settings.is_dev, settings.is_test, settings.is_prod) == (True, False, False)
    assert (prod.is_dev, prod.is_test, prod.is_prod) == (False, False, True)


def test_settings_are_frozen() -> None:
    settings: Settings = load_settings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.impersonation_enabled = False  # type: ignore[misc]


# ---- service settings ----


def test_service_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    for name in ("ORG_STATS_REFRESH_SECONDS", "EXPIRING_SOON_DAYS", "IMPERSONATION_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.org_stats_refresh_seconds == 300
    assert settings.expiring_soon_days == 30
    assert settings.impersonation_enabled is True


def test_impersonation_is_off_by_default_in_prod(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.delenv("IMPERSONATION_ENABLED", raising=False)
    assert load_settings().impersonation_enabled is False

    monkeypatch.setenv("IMPERSONATION_ENABLED", "yes")
    assert load_settings().impersonation_enabled is True


def test_load_settings_rejects_non_boolean_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


@pytest.mark.parametrize("raw", ["0", "-5", "soon"])
def test_load_settings_rejects_bad_refresh_interval(
    monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv("ORG_STATS_REFRESH_SECONDS", raw)
    with pytest.raises(ValueError, match="ORG_STATS_REFRESH_SECONDS must be"):
        load_settings()


def test_empty_urls_mean_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "  ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


def test_jwt_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_ISSUER", "https://idp.example.com/")
    monkeypatch.setenv("JWT_PUBLIC_KEY", "-----BEGIN PUBLIC KEY-----\\nabc\\n-----END PUBLIC KEY-----")
    settings = load_settings()
    assert settings.jwt_issuer == "https://idp.example.com/"
    assert settings.jwt_audience == "campus-core"
    assert settings.jwt_public_key == "-----BEGIN PUBLIC KEY-----\nabc\n-----END PUBLIC KEY-----"
