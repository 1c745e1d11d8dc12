"""
Configuration module for the Debezium connector operator.

Loads configuration from environment variables. The resulting Config is
built once at startup and handed to the components that need it.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """PostgreSQL record store configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "debezium_operator"
    user: str = "operator"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 2
    max_pool_size: int = 10

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        password = os.getenv("DB_PASSWORD", "")
        if not password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set. "
                "Database password cannot be empty."
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "debezium_operator"),
            user=os.getenv("DB_USER", "operator"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "2")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "10")),
        )


@dataclass
class ControllerConfig:
    """Reconciliation loop configuration."""

    reconcile_interval: int = 60  # periodic drift resync, seconds
    poll_interval: int = 5  # how often due records are polled, seconds
    max_concurrent_reconciles: int = 5
    request_timeout: float = 10.0  # per Kafka Connect call, seconds

    # Exponential backoff for failed passes
    backoff_base_delay: int = 5
    backoff_max_delay: int = 300
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            poll_interval=int(os.getenv("POLL_INTERVAL", "5")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            request_timeout=float(os.getenv("CONNECT_REQUEST_TIMEOUT", "10")),
            backoff_base_delay=int(os.getenv("BACKOFF_BASE_DELAY", "5")),
            backoff_max_delay=int(os.getenv("BACKOFF_MAX_DELAY", "300")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
        )


@dataclass
class APIConfig:
    """HTTP API and webhook server configuration."""

    host: str = "0.0.0.0"
    port: int = 8443
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8443")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@dataclass
class WebhookConfig:
    """Validating webhook TLS bootstrap configuration."""

    service_name: str = "debezium-operator"
    namespace: str = "debezium-operator-ns"
    cert_dir: str = "/tmp/certs"
    secret_name: str = "debezium-operator-tls"
    webhook_name: str = "vdebeziumconnector.api.debezium.io"
    configuration_name: str = "debeziumconnectors-validating-webhook"
    tls_enabled: bool = True

    @property
    def common_name(self) -> str:
        """DNS name the webhook certificate is issued for."""
        return f"{self.service_name}.{self.namespace}.svc"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            service_name=os.getenv("WEBHOOK_SERVICE_NAME") or "debezium-operator",
            namespace=os.getenv("POD_NAMESPACE") or "debezium-operator-ns",
            cert_dir=os.getenv("WEBHOOK_CERT_DIR", "/tmp/certs"),
            secret_name=os.getenv("WEBHOOK_SECRET_NAME", "debezium-operator-tls"),
            webhook_name=os.getenv(
                "WEBHOOK_NAME", "vdebeziumconnector.api.debezium.io"
            ),
            configuration_name=os.getenv(
                "WEBHOOK_CONFIGURATION_NAME", "debeziumconnectors-validating-webhook"
            ),
            tls_enabled=_env_bool("WEBHOOK_TLS_ENABLED", "true"),
        )


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig
    controller: ControllerConfig
    api: APIConfig
    webhook: WebhookConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
            api=APIConfig.from_env(),
            webhook=WebhookConfig.from_env(),
        )
