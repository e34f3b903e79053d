import pytest
from pydantic import ValidationError

from cloudledger.shared.core.config import Settings, get_settings, reload_settings_from_environment


def test_gcp_project_ids_accept_comma_separated_env(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT_IDS", "proj-a, proj-b,,proj-c ")
    settings = Settings()
    assert settings.GCP_PROJECT_IDS == ["proj-a", "proj-b", "proj-c"]


def test_defaults_match_orchestration_policy():
    settings = Settings()
    assert settings.RETRY_INITIAL_INTERVAL_SECONDS == 1.0
    assert settings.RETRY_BACKOFF_COEFFICIENT == 2.0
    assert settings.RETRY_MAX_INTERVAL_SECONDS == 60.0
    assert settings.RETRY_MAX_ATTEMPTS == 3
    assert settings.UNIT_TIMEOUT_SECONDS == 3600.0


def test_production_rejects_sqlite():
    with pytest.raises(ValidationError, match="server database"):
        Settings(ENVIRONMENT="production", TESTING=False, DATABASE_URL="sqlite+aiosqlite:///./x.sqlite")


def test_production_accepts_postgres():
    settings = Settings(
        ENVIRONMENT="production",
        TESTING=False,
        DATABASE_URL="postgresql+asyncpg://user:pw@db/cloudledger",
    )
    assert settings.is_production


def test_testing_flag_rejected_in_production():
    with pytest.raises(ValidationError, match="TESTING must be false"):
        Settings(ENVIRONMENT="production", TESTING=True, DATABASE_URL="postgresql+asyncpg://db/x")


@pytest.mark.parametrize(
    "overrides",
    [
        {"DO_PAGE_SIZE": 0},
        {"FETCH_MAX_PAGES": -1},
        {"RETRY_MAX_ATTEMPTS": 0},
        {"RETRY_INITIAL_INTERVAL_SECONDS": 10, "RETRY_MAX_INTERVAL_SECONDS": 5},
        {"UNIT_TIMEOUT_SECONDS": 10, "UNIT_HEARTBEAT_TIMEOUT_SECONDS": 20},
        {"DO_RATE_LIMIT_PER_SECOND": 0},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_reload_settings_replaces_cached_instance(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("DO_PAGE_SIZE", "50")
    refreshed = reload_settings_from_environment()
    assert refreshed is not first
    assert refreshed.DO_PAGE_SIZE == 50
    assert get_settings() is refreshed
