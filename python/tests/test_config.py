"""Tests for settings loading and validation."""

import pytest
from pydantic import ValidationError

from devcollab.config import Environment, Settings, clear_settings_cache, get_settings


class TestSettings:
    def test_loads_from_environment(self):
        settings = get_settings()

        assert settings.devcollab_env == Environment.TEST
        assert settings.database_url.startswith(("sqlite", "postgresql"))
        assert settings.log_json is False

    def test_missing_jwt_secret_fails(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("JWT_SECRET")
        clear_settings_cache()

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_short_secret_rejected_in_prod(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DEVCOLLAB_ENV", "prod")
        monkeypatch.setenv("JWT_SECRET", "too-short")

        with pytest.raises(ValidationError, match="at least 32 characters"):
            Settings(_env_file=None)

    def test_short_secret_allowed_locally(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DEVCOLLAB_ENV", "local")
        monkeypatch.setenv("JWT_SECRET", "dev")

        assert Settings(_env_file=None).jwt_secret == "dev"

    def test_cors_origin_list_parses_commas(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,,")

        settings = Settings(_env_file=None)

        assert settings.cors_origin_list == ["http://a.test", "http://b.test"]

    def test_upload_limit_default_is_25_mib(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("MAX_UPLOAD_BYTES", raising=False)

        assert Settings(_env_file=None).max_upload_bytes == 25 * 1024 * 1024

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
