"""Unit tests for config.py - Configuration module."""

import pytest

from config import APIConfig, Config, ControllerConfig, DatabaseConfig, WebhookConfig


class TestDatabaseConfig:
    """Tests for DatabaseConfig."""

    def test_default_values(self):
        config = DatabaseConfig()
        assert config.host == "localhost"
        assert config.port == 5432
        assert config.database == "debezium_operator"
        assert config.min_pool_size == 2
        assert config.max_pool_size == 10

    def test_password_not_in_repr(self):
        config = DatabaseConfig(password="secret")
        assert "secret" not in repr(config)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.example.com")
        monkeypatch.setenv("DB_PORT", "5433")
        monkeypatch.setenv("DB_NAME", "mydb")
        monkeypatch.setenv("DB_USER", "myuser")
        monkeypatch.setenv("DB_PASSWORD", "mypassword")
        monkeypatch.setenv("DB_MAX_POOL_SIZE", "20")

        config = DatabaseConfig.from_env()

        assert config.host == "db.example.com"
        assert config.port == 5433
        assert config.database == "mydb"
        assert config.user == "myuser"
        assert config.password == "mypassword"
        assert config.max_pool_size == 20

    def test_from_env_requires_password(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        with pytest.raises(ValueError, match="DB_PASSWORD"):
            DatabaseConfig.from_env()


class TestControllerConfig:
    """Tests for ControllerConfig."""

    def test_default_values(self):
        config = ControllerConfig()
        assert config.reconcile_interval == 60
        assert config.poll_interval == 5
        assert config.max_concurrent_reconciles == 5
        assert config.request_timeout == 10.0
        assert config.backoff_base_delay == 5
        assert config.backoff_max_delay == 300
        assert config.backoff_jitter_factor == 0.1

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RECONCILE_INTERVAL", "30")
        monkeypatch.setenv("MAX_CONCURRENT_RECONCILES", "2")
        monkeypatch.setenv("CONNECT_REQUEST_TIMEOUT", "2.5")

        config = ControllerConfig.from_env()

        assert config.reconcile_interval == 30
        assert config.max_concurrent_reconciles == 2
        assert config.request_timeout == 2.5
        assert config.poll_interval == 5


class TestAPIConfig:
    """Tests for APIConfig."""

    def test_from_env_upper_cases_log_level(self, monkeypatch):
        monkeypatch.setenv("API_PORT", "9443")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = APIConfig.from_env()

        assert config.port == 9443
        assert config.log_level == "DEBUG"


class TestWebhookConfig:
    """Tests for WebhookConfig."""

    def test_default_common_name(self):
        config = WebhookConfig()
        assert config.common_name == "debezium-operator.debezium-operator-ns.svc"
        assert config.tls_enabled is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_SERVICE_NAME", "dbz-op")
        monkeypatch.setenv("POD_NAMESPACE", "infra")
        monkeypatch.setenv("WEBHOOK_TLS_ENABLED", "false")

        config = WebhookConfig.from_env()

        assert config.common_name == "dbz-op.infra.svc"
        assert config.tls_enabled is False

    def test_empty_env_falls_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_SERVICE_NAME", "")
        monkeypatch.setenv("POD_NAMESPACE", "")

        config = WebhookConfig.from_env()

        assert config.service_name == "debezium-operator"
        assert config.namespace == "debezium-operator-ns"


class TestConfig:
    """Tests for the main Config."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "pw")
        monkeypatch.setenv("POLL_INTERVAL", "1")

        config = Config.from_env()

        assert config.database.password == "pw"
        assert config.controller.poll_interval == 1
