"""Unit tests for main.py - application wiring."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from api import HTTPAPI
from config import APIConfig, Config, ControllerConfig, DatabaseConfig, WebhookConfig
from controller import Controller
from main import Application


@pytest.fixture
def config():
    config = Config(
        database=DatabaseConfig(),
        controller=ControllerConfig(),
        api=APIConfig(),
        webhook=WebhookConfig(),
    )
    config.controller.reconcile_interval = 30
    config.controller.request_timeout = 2.0
    return config


@pytest.mark.asyncio
class TestApplication:
    """Tests for Application."""

    async def test_initialize_without_tls(self, config):
        config.webhook.tls_enabled = False

        with patch("main.DatabaseManager") as mock_db_cls:
            mock_db_cls.return_value = AsyncMock()
            app = Application(config)
            await app.initialize()

        mock_db_cls.return_value.connect.assert_awaited_once()
        mock_db_cls.return_value.initialize_schema.assert_awaited_once()
        assert isinstance(app.controller, Controller)
        assert isinstance(app.api, HTTPAPI)
        assert app.api.ssl_certfile is None
        assert app.controller.engine.resync_interval == 30
        assert app.controller.engine.client.timeout == 2.0

    async def test_bootstrap_certificates(self, config):
        app = Application(config)
        app.db = AsyncMock()

        with patch(
            "main.load_or_generate_cert",
            AsyncMock(return_value=(Path("/certs/tls.crt"), Path("/certs/tls.key"))),
        ) as mock_load, patch("main.publish_ca_bundle", AsyncMock()) as mock_publish:
            certfile, keyfile = await app._bootstrap_certificates()

        assert (certfile, keyfile) == ("/certs/tls.crt", "/certs/tls.key")
        assert mock_load.call_args[0][-1] == "debezium-operator.debezium-operator-ns.svc"
        assert mock_publish.call_args[1]["url"] == (
            "https://debezium-operator.debezium-operator-ns.svc:8443/validate-dbc"
        )

    async def test_stop_closes_database_once(self, config):
        app = Application(config)
        db = AsyncMock()
        app.db = db

        await app.stop()
        await app.stop()

        db.close.assert_awaited_once()

    async def test_stop(self, config):
        app = Application(config)
        app.running = True
        app.controller = AsyncMock()
        app.api = AsyncMock()
        db = AsyncMock()
        app.db = db

        await app.stop()

        app.controller.stop.assert_awaited_once()
        app.api.stop.assert_awaited_once()
        db.close.assert_awaited_once()
        assert app.running is False
