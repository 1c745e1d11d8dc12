"""
Kafka Connect REST client.

Stateless adapter over the connector-management API of a Kafka Connect
cluster. Every call opens its own session with a bounded timeout so a
stalled worker cannot block the controller.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import quote

import aiohttp

from errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class ConnectorControlClient:
    """
    Client for the Kafka Connect connector endpoints.

    Holds no state between calls apart from its timeout; the Connect
    cluster is always the source of truth.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def exists(self, host: str, name: str) -> bool:
        """
        Check whether a connector exists.

        Returns:
            True on 200, False on 404.

        Raises:
            UpstreamError: On any other status or transport failure.
        """
        url = self._url(host, "connectors", name)
        status, body = await self._request("GET", url)
        if status == 200:
            return True
        if status == 404:
            return False
        raise self._unexpected("GET", url, status, body)

    async def get_config(self, host: str, name: str) -> Dict[str, str]:
        """Fetch the active configuration of a connector."""
        url = self._url(host, "connectors", name, "config")
        status, body = await self._request("GET", url)
        if status != 200:
            raise self._unexpected("GET", url, status, body)
        return self._decode_object("GET", url, status, body)

    async def get_status(self, host: str, name: str) -> Dict[str, Any]:
        """Fetch the runtime status (connector state and task states)."""
        url = self._url(host, "connectors", name, "status")
        status, body = await self._request("GET", url)
        if status != 200:
            raise self._unexpected("GET", url, status, body)
        return self._decode_object("GET", url, status, body)

    async def create(self, host: str, config: Dict[str, str]) -> None:
        """Create a connector from a full configuration map."""
        url = self._url(host, "connectors")
        payload = {"name": config.get("name"), "config": config}
        status, body = await self._request("POST", url, payload)
        if status not in (200, 201):
            raise self._unexpected("POST", url, status, body)
        logger.debug(f"Created connector {config.get('name')} on {host}")

    async def update(self, host: str, name: str, config: Dict[str, str]) -> None:
        """Replace the configuration of a connector (not a merge)."""
        url = self._url(host, "connectors", name, "config")
        status, body = await self._request("PUT", url, config)
        if status != 200:
            raise self._unexpected("PUT", url, status, body)
        logger.debug(f"Updated connector {name} on {host}")

    async def delete(self, host: str, name: str) -> None:
        """
        Delete a connector.

        A 404 is raised as UpstreamError like any other failure; whether
        an absent connector counts as deleted is decided by the caller.
        """
        url = self._url(host, "connectors", name)
        status, body = await self._request("DELETE", url)
        if status not in (200, 204):
            raise self._unexpected("DELETE", url, status, body)
        logger.debug(f"Deleted connector {name} on {host}")

    async def validate_config(
        self, host: str, connector_class: str, config: Dict[str, str]
    ) -> Dict[str, Any]:
        """Run the connector plugin's config validation."""
        url = self._url(host, "connector-plugins", connector_class, "config", "validate")
        status, body = await self._request("PUT", url, config)
        if status != 200:
            raise self._unexpected("PUT", url, status, body)
        return self._decode_object("PUT", url, status, body)

    # Private helpers

    @staticmethod
    def _url(host: str, *segments: str) -> str:
        path = "/".join(quote(s, safe="") for s in segments)
        return f"{host.rstrip('/')}/{path}"

    @staticmethod
    def _headers() -> Dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    async def _request(
        self, method: str, url: str, payload: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, str]:
        """Perform a request and return (status, body text)."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, json=payload, headers=self._headers()
                ) as response:
                    return response.status, await response.text()
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"{method} {url} timed out after {self.timeout}s",
                method=method,
                url=url,
            ) from e
        except aiohttp.ClientError as e:
            raise UpstreamError(
                f"{method} {url} failed: {e}", method=method, url=url
            ) from e

    @staticmethod
    def _unexpected(method: str, url: str, status: int, body: str) -> UpstreamError:
        return UpstreamError(
            f"{method} {url} returned status {status}: {body}",
            status=status,
            body=body,
            method=method,
            url=url,
        )

    @staticmethod
    def _decode_object(method: str, url: str, status: int, body: str) -> Dict[str, Any]:
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise UpstreamError(
                f"{method} {url} returned invalid JSON: {e}",
                status=status,
                body=body,
                method=method,
                url=url,
            ) from e
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{method} {url} returned a non-object body",
                status=status,
                body=body,
                method=method,
                url=url,
            )
        return data


def iter_validation_errors(result: Dict[str, Any]) -> Iterable[Tuple[str, str, Any]]:
    """
    Yield (key, message, value) for every error in a validate response.

    The response lists one entry per config key under ``configs``, each
    with ``value.errors``.
    """
    for entry in result.get("configs") or []:
        value = entry.get("value") or {}
        for message in value.get("errors") or []:
            yield value.get("name", ""), message, value.get("value")
