"""Unit tests for configuration defaults and environment overrides."""
import logging

import pytest

from media_catalog.logging_setup import setup_logging
from media_catalog.settings import CircuitBreakerSettings, MongoSettings, Settings


class TestSettings:
    """Test suite for Settings."""

    @pytest.mark.parametrize("env,strict", [("dev", True), ("test", True), ("staging", True), ("prod", False)])
    def test_strict_queries_follow_env(self, env, strict):
        assert Settings(env=env).strict_queries is strict

    def test_explicit_strict_flag_wins(self):
        assert Settings(env="prod", strict_query_engine=True).strict_queries is True

    def test_circuit_breaker_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CIRCUIT_ENABLED", "false")
        monkeypatch.setenv("CIRCUIT_WINDOW_SIZE", "20")
        settings = CircuitBreakerSettings()
        assert settings.enabled is False
        assert settings.window_size == 20

    def test_mongo_uri_is_secret(self, monkeypatch):
        monkeypatch.setenv("MONGO_URI", "mongodb://user:pw@localhost/db")
        settings = MongoSettings()
        assert "pw" not in repr(settings)
        assert settings.uri.get_secret_value() == "mongodb://user:pw@localhost/db"


class TestLoggingSetup:
    def test_driver_logger_is_quieter_than_app(self):
        setup_logging("DEBUG")
        assert logging.getLogger("pymongo").level == logging.WARNING
