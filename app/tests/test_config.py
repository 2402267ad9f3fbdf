"""
Tests for configuration validation
"""
import pytest
from pydantic import ValidationError
from app.core.config import Settings


def _settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "postgresql://test", "JWT_SECRET_KEY": "test-key"}
    values.update(overrides)
    return Settings(**values)


def test_prod_settings_rejects_wildcard_origins():
    """Production settings reject wildcard origins"""
    settings = _settings(JWT_SECRET_KEY="a" * 32, APP_ENV="prod", ALLOWED_ORIGINS="*")

    with pytest.raises(ValueError, match="ALLOWED_ORIGINS"):
        settings.validate_production()


def test_prod_settings_rejects_short_jwt_secret():
    """Production settings reject short JWT secret"""
    settings = _settings(JWT_SECRET_KEY="short", APP_ENV="prod", ALLOWED_ORIGINS="https://example.com")

    with pytest.raises(ValueError, match="JWT_SECRET_KEY"):
        settings.validate_production()


def test_local_settings_allows_wildcard_origins():
    """Local settings allow wildcard origins"""
    settings = _settings(APP_ENV="local", ALLOWED_ORIGINS="*")

    settings.validate_production()
    assert settings.get_allowed_origins_list() == ["*"]


def test_get_allowed_origins_list():
    """Test parsing of ALLOWED_ORIGINS"""
    settings = _settings(ALLOWED_ORIGINS="https://example.com, https://app.example.com")
    origins = settings.get_allowed_origins_list()
    assert origins == ["https://example.com", "https://app.example.com"]


def test_attendance_defaults():
    settings = _settings()
    assert settings.ATTENDANCE_TZ == "Asia/Kolkata"
    assert settings.REGULARIZATION_MAX_DAYS_BACK == 30
    assert settings.REGULARIZATION_REASON_MIN_LENGTH == 10
    assert settings.REGULARIZATION_REASON_MAX_LENGTH == 500
    assert settings.TRANSACTION_MAX_RETRIES == 3
    assert settings.get_machine_status_overrides() == {}


def test_invalid_attendance_timezone_rejected():
    with pytest.raises(ValidationError, match="ATTENDANCE_TZ"):
        _settings(ATTENDANCE_TZ="Mars/Olympus_Mons")


def test_non_positive_retry_count_rejected():
    with pytest.raises(ValidationError):
        _settings(TRANSACTION_MAX_RETRIES=0)


def test_machine_status_overrides_parsed_and_normalised():
    settings = _settings(MACHINE_STATUS_OVERRIDES='{"ZKTeco": {"15": "in", "CheckOut": "out"}}')
    assert settings.get_machine_status_overrides() == {"zkteco": {"15": "in", "checkout": "out"}}


def test_machine_status_overrides_must_be_json_object():
    with pytest.raises(ValidationError, match="MACHINE_STATUS_OVERRIDES"):
        _settings(MACHINE_STATUS_OVERRIDES="not-json")
    with pytest.raises(ValidationError, match="MACHINE_STATUS_OVERRIDES"):
        _settings(MACHINE_STATUS_OVERRIDES='["zkteco"]')
