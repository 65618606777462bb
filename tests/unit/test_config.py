"""Tests for application configuration."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from accurate_exchange.config import (
    AccurateConfig,
    AppConfig,
    DatabaseConfig,
    DispatcherConfig,
    ExportConfig,
    LoggingConfig,
    get_config,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


class TestEnvironment:
    def test_accurate_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCURATE_CLIENT_ID", "env-client")
        monkeypatch.setenv("ACCURATE_APP_KEY", "env-key")
        monkeypatch.setenv("ACCURATE_ACCOUNT_URL", "https://account.example.test/")

        config = AccurateConfig()

        assert config.client_id == "env-client"
        assert config.app_key == "env-key"
        assert config.account_url == "https://account.example.test"

    def test_missing_identity_is_none(self, monkeypatch):
        monkeypatch.delenv("ACCURATE_SIGNATURE_SECRET", raising=False)
        assert AccurateConfig().signature_secret is None

    def test_dispatcher_limits_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCURATE_REQUESTS_PER_SECOND", "3")
        monkeypatch.setenv("ACCURATE_TIMEOUT_SECONDS", "12")

        config = DispatcherConfig()

        assert config.requests_per_second == 3
        assert config.timeout_seconds == 12.0
        assert config.max_concurrent == 8

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert LoggingConfig().level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(PydanticValidationError):
            LoggingConfig(level="LOUD")


class TestDefaults:
    def test_scopes_cover_inventory_adjustments(self):
        scope = AccurateConfig().scope.split()
        assert "item_adjustment_view" in scope
        assert "item_adjustment_save" in scope

    def test_export_defaults(self):
        config = ExportConfig()
        assert (config.preview_limit, config.page_size) == (20, 100)

    @pytest.mark.parametrize("field", ["preview_limit", "page_size", "detail_workers"])
    def test_export_limits_must_be_positive(self, field):
        with pytest.raises(PydanticValidationError):
            ExportConfig(**{field: 0})

    def test_password_masked_in_repr(self):
        config = DatabaseConfig(connection_string="postgresql://app:hunter2@db:5432/exchange")
        assert "hunter2" not in repr(config)
        assert "app:***@db:5432/exchange" in repr(config)


class TestGlobalConfig:
    def test_singleton(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = AppConfig(custom={"feature": True})
        set_config(custom)

        assert get_config() is custom
        assert get_config().get_custom("feature") is True
        assert get_config().get_custom("missing", "fallback") == "fallback"

        reset_config()
        assert get_config() is not custom
