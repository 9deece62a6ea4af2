# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for station configuration.
"""

import pytest

from pdao.config import StationConfig, SyncSettings


class TestSyncSettings:
    """Test sync timing options."""

    def test_defaults(self):
        """Lists live ten minutes, identity thirty, attendance polls every five seconds."""
        settings = SyncSettings()

        assert settings.list_ttl_ms == 600_000
        assert settings.identity_ttl_ms == 1_800_000
        assert settings.attendance_poll_ms == 5_000

    def test_from_mapping_accepts_camel_case(self):
        """Option names from the station profile are accepted."""
        settings = SyncSettings.from_mapping({"listTtlMs": 1000, "attendance_poll_ms": "250"})

        assert settings.list_ttl_ms == 1000
        assert settings.attendance_poll_ms == 250

    def test_unknown_option(self):
        """Typos are reported rather than ignored."""
        with pytest.raises(ValueError):
            SyncSettings.from_mapping({"listTTL": 1000})

    def test_non_positive_rejected(self):
        """Zero intervals would poll continuously."""
        with pytest.raises(ValueError):
            SyncSettings(list_poll_ms=0)

    def test_from_env(self, monkeypatch):
        """Environment overrides the defaults."""
        monkeypatch.setenv("PDAO_LIST_POLL_MS", "60000")
        monkeypatch.setenv("PDAO_IDENTITY_TTL_MS", "")

        settings = SyncSettings.from_env()

        assert settings.list_poll_ms == 60_000
        assert settings.identity_ttl_ms == 1_800_000

    def test_from_env_rejects_garbage(self, monkeypatch):
        """Non-numeric values fail at start-up."""
        monkeypatch.setenv("PDAO_LIST_TTL_MS", "ten minutes")

        with pytest.raises(ValueError):
            SyncSettings.from_env()


class TestStationConfig:
    """Test the top-level configuration."""

    def test_from_env(self, monkeypatch):
        """Backend and cache settings come from the environment."""
        monkeypatch.setenv("PDAO_API_URL", "https://pdao.example/api")
        monkeypatch.setenv("PDAO_API_TOKEN", "abc")
        monkeypatch.setenv("PDAO_CACHE_BACKEND", "Redis")
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.delenv("DOCS_ENABLED", raising=False)

        config = StationConfig.from_env()

        assert config.backend.url == "https://pdao.example/api"
        assert config.backend.token == "abc"
        assert config.cache_backend == "redis"
        assert config.docs_enabled is False

    def test_unknown_cache_backend(self):
        """Only memory and redis stores exist."""
        with pytest.raises(ValueError):
            StationConfig(cache_backend="sqlite")

    def test_fractional_request_timeout(self, monkeypatch):
        """Request timeouts may be given in fractions of a second."""
        monkeypatch.setenv("PDAO_REQUEST_TIMEOUT", "2.5")

        assert StationConfig.from_env().backend.timeout == 2.5

    def test_request_timeout_rejects_garbage(self, monkeypatch):
        """Non-numeric timeouts fail at start-up."""
        monkeypatch.setenv("PDAO_REQUEST_TIMEOUT", "soon")

        with pytest.raises(ValueError):
            StationConfig.from_env()
