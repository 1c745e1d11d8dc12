"""Unit tests for connect_client.py - Kafka Connect REST client."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from connect_client import ConnectorControlClient, iter_validation_errors
from errors import UpstreamError

HOST = "http://dbz:8083"


def mock_session(status=200, body="", side_effect=None):
    """Build a mocked aiohttp.ClientSession context manager."""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)

    request_cm = MagicMock()
    request_cm.__aenter__ = AsyncMock(return_value=response)
    request_cm.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    if side_effect is not None:
        session.request = MagicMock(side_effect=side_effect)
    else:
        session.request = MagicMock(return_value=request_cm)

    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    return session_cm, session


@pytest.fixture
def client():
    return ConnectorControlClient(timeout=3)


class TestUrl:
    """Tests for URL construction."""

    def test_strips_trailing_slash(self):
        assert (
            ConnectorControlClient._url("http://dbz:8083/", "connectors", "c1")
            == "http://dbz:8083/connectors/c1"
        )

    def test_quotes_segments(self):
        url = ConnectorControlClient._url(HOST, "connectors", "a b/c")
        assert url == "http://dbz:8083/connectors/a%20b%2Fc"


@pytest.mark.asyncio
class TestConnectorControlClient:
    """Tests for the REST calls."""

    async def test_exists_true(self, client):
        session_cm, session = mock_session(200, "{}")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            assert await client.exists(HOST, "c1") is True
        session.request.assert_called_once()
        args = session.request.call_args[0]
        assert args == ("GET", f"{HOST}/connectors/c1")

    async def test_exists_false_on_404(self, client):
        session_cm, _ = mock_session(404, '{"error_code":404}')
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            assert await client.exists(HOST, "c1") is False

    async def test_exists_raises_on_500(self, client):
        session_cm, _ = mock_session(500, "internal error")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError) as exc_info:
                await client.exists(HOST, "c1")
        assert exc_info.value.status == 500
        assert exc_info.value.body == "internal error"
        assert exc_info.value.method == "GET"

    async def test_get_config(self, client):
        config = {"name": "c1", "tasks.max": "1"}
        session_cm, session = mock_session(200, json.dumps(config))
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            assert await client.get_config(HOST, "c1") == config
        assert session.request.call_args[0][1] == f"{HOST}/connectors/c1/config"

    async def test_get_config_invalid_json(self, client):
        session_cm, _ = mock_session(200, "not json")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError, match="invalid JSON"):
                await client.get_config(HOST, "c1")

    async def test_get_config_non_object(self, client):
        session_cm, _ = mock_session(200, "[1, 2]")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError, match="non-object"):
                await client.get_config(HOST, "c1")

    async def test_get_status(self, client):
        body = {"name": "c1", "connector": {"state": "RUNNING"}, "tasks": []}
        session_cm, session = mock_session(200, json.dumps(body))
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            assert await client.get_status(HOST, "c1") == body
        assert session.request.call_args[0][1] == f"{HOST}/connectors/c1/status"

    async def test_create_posts_name_and_config(self, client):
        config = {"name": "c1", "connector.class": "X"}
        session_cm, session = mock_session(201, "{}")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            await client.create(HOST, config)

        args, kwargs = session.request.call_args
        assert args == ("POST", f"{HOST}/connectors")
        assert kwargs["json"] == {"name": "c1", "config": config}

    async def test_create_conflict_raises(self, client):
        session_cm, _ = mock_session(409, "already exists")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError) as exc_info:
                await client.create(HOST, {"name": "c1"})
        assert exc_info.value.status == 409

    async def test_update_puts_full_config(self, client):
        config = {"name": "c1", "tasks.max": "2"}
        session_cm, session = mock_session(200, "{}")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            await client.update(HOST, "c1", config)

        args, kwargs = session.request.call_args
        assert args == ("PUT", f"{HOST}/connectors/c1/config")
        assert kwargs["json"] == config

    async def test_delete_accepts_204(self, client):
        session_cm, session = mock_session(204, "")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            await client.delete(HOST, "c1")
        assert session.request.call_args[0] == ("DELETE", f"{HOST}/connectors/c1")

    async def test_delete_404_is_raised(self, client):
        session_cm, _ = mock_session(404, "not found")
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError) as exc_info:
                await client.delete(HOST, "c1")
        assert exc_info.value.is_not_found

    async def test_validate_config(self, client):
        body = {"name": "X", "error_count": 0, "configs": []}
        session_cm, session = mock_session(200, json.dumps(body))
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            result = await client.validate_config(
                HOST, "io.debezium.connector.mysql.MySqlConnector", {"name": "c1"}
            )
        assert result == body
        args = session.request.call_args[0]
        assert args == (
            "PUT",
            f"{HOST}/connector-plugins/io.debezium.connector.mysql.MySqlConnector"
            "/config/validate",
        )

    async def test_timeout_becomes_upstream_error(self, client):
        session_cm, _ = mock_session(side_effect=asyncio.TimeoutError())
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError, match="timed out after 3s") as exc_info:
                await client.exists(HOST, "c1")
        assert exc_info.value.status is None

    async def test_connection_error_becomes_upstream_error(self, client):
        session_cm, _ = mock_session(
            side_effect=aiohttp.ClientConnectionError("connection refused")
        )
        with patch("connect_client.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(UpstreamError, match="connection refused"):
                await client.get_config(HOST, "c1")

    async def test_session_uses_timeout(self, client):
        session_cm, _ = mock_session(200, "{}")
        with patch(
            "connect_client.aiohttp.ClientSession", return_value=session_cm
        ) as mock_cls:
            await client.exists(HOST, "c1")
        timeout = mock_cls.call_args[1]["timeout"]
        assert timeout.total == 3


class TestIterValidationErrors:
    """Tests for iter_validation_errors."""

    def test_yields_errors_per_key(self):
        result = {
            "error_count": 2,
            "configs": [
                {"value": {"name": "tasks.max", "value": "x", "errors": ["bad int"]}},
                {"value": {"name": "database.hostname", "value": None, "errors": []}},
                {
                    "value": {
                        "name": "database.port",
                        "value": "0",
                        "errors": ["too low"],
                    }
                },
            ],
        }
        assert list(iter_validation_errors(result)) == [
            ("tasks.max", "bad int", "x"),
            ("database.port", "too low", "0"),
        ]

    def test_empty_result(self):
        assert list(iter_validation_errors({})) == []
