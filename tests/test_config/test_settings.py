"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from grantsync.config.settings import Settings, get_settings
from grantsync.matching.config import MatchingConfig
from grantsync.sync.config import SyncConfig


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        settings = Settings(_env_file=None)

        assert settings.cron_secret is None
        assert settings.rate_limit_enabled is False
        assert settings.max_http_retries == 3
        assert settings.kocca_pims_configured is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        monkeypatch.setenv("BIZINFO_API_KEY", "biz")

        settings = get_settings()

        assert settings.cron_secret == "s3cret"
        assert settings.bizinfo_configured is True

    def test_registry_needs_key_and_url(self, monkeypatch):
        monkeypatch.setenv("KOCCA_PIMS_API_KEY", "k")
        monkeypatch.delenv("KOCCA_PIMS_API_BASE_URL", raising=False)

        assert Settings(_env_file=None).kocca_pims_configured is False

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_rejects_out_of_range_retries(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_http_retries=50)


class TestSyncConfig:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SYNC_CONCURRENCY", "4")
        monkeypatch.setenv("SYNC_INCREMENTAL", "true")

        config = SyncConfig()

        assert config.concurrency == 4
        assert config.incremental is True

    def test_concurrency_bounds(self):
        with pytest.raises(ValidationError):
            SyncConfig(concurrency=0)


class TestMatchingConfig:
    def test_defaults(self):
        config = MatchingConfig()

        assert (config.industry_weight, config.location_weight, config.keyword_max) == (30, 30, 40)
        assert (config.default_min_score, config.default_max_results) == (30, 50)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MATCHING_DEFAULT_MIN_SCORE", "50")

        assert MatchingConfig().default_min_score == 50
