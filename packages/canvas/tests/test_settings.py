"""Tests for configuration settings."""

import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from fincanvas.config.settings import get_settings

    # Clear the cache to force reload
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.metrics_api_key.get_secret_value() == "metrics-test-key"
    assert settings.anthropic_api_key.get_secret_value() == "sk-ant-test"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from fincanvas.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.metrics_api_url == "http://localhost:8000"
    assert settings.metrics_timeout == 30.0
    assert settings.metrics_max_retries == 3
    assert settings.claude_model == "claude-haiku-4-5"
    assert settings.tool_call_timeout_seconds == 45.0
    assert settings.artifact_stall_timeout_seconds == 45.0
    assert settings.base_currency == "USD"
    assert settings.fiscal_year_start_month == 1
    assert settings.ws_port == 8765


def test_settings_override_from_env(monkeypatch):
    """Test environment variables override defaults."""
    from fincanvas.config.settings import get_settings

    monkeypatch.setenv("TOOL_CALL_TIMEOUT_SECONDS", "10")
    monkeypatch.setenv("BASE_CURRENCY", "EUR")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.tool_call_timeout_seconds == 10.0
        assert settings.base_currency == "EUR"
    finally:
        get_settings.cache_clear()


def test_fiscal_year_start_month_validated(monkeypatch):
    """Test the fiscal year start month must be a calendar month."""
    from pydantic import ValidationError

    from fincanvas.config.settings import FlatSettings

    monkeypatch.setenv("FISCAL_YEAR_START_MONTH", "13")
    with pytest.raises(ValidationError):
        FlatSettings()


def test_base_currency_normalized(monkeypatch):
    """Test currency codes are upper-cased and validated."""
    from pydantic import ValidationError

    from fincanvas.config.settings import FlatSettings

    monkeypatch.setenv("BASE_CURRENCY", " eur ")
    assert FlatSettings().base_currency == "EUR"

    monkeypatch.setenv("BASE_CURRENCY", "EURO")
    with pytest.raises(ValidationError):
        FlatSettings()


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from fincanvas.config.settings import get_settings

    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2
