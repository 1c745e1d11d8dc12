"""Pytest configuration and fixtures."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from errors import UpstreamError
from models import FINALIZER_NAME

HOST = "http://dbz:8083"


class FakeStore:
    """In-memory stand-in for the record-store operations the engine uses."""

    def __init__(self):
        self.finalizers: Dict[int, List[str]] = {}
        self.statuses: List[Dict[str, Any]] = []
        self.fail_status_writes = False

    async def add_finalizer(self, connector_id: int, finalizer: str) -> None:
        current = self.finalizers.setdefault(connector_id, [])
        if finalizer not in current:
            current.append(finalizer)

    async def remove_finalizer(self, connector_id: int, finalizer: str) -> None:
        current = self.finalizers.get(connector_id, [])
        self.finalizers[connector_id] = [f for f in current if f != finalizer]

    async def get_finalizers(self, connector_id: int) -> List[str]:
        return list(self.finalizers.get(connector_id, []))

    async def update_connector_status(
        self, connector_id: int, phase: str, conditions: List[Dict[str, Any]]
    ) -> None:
        if self.fail_status_writes:
            raise ConnectionError("status store unavailable")
        self.statuses.append(
            {"id": connector_id, "phase": phase, "conditions": conditions}
        )


class FakeConnectCluster:
    """
    In-memory Kafka Connect cluster exposing the ConnectorControlClient API.

    Every call is recorded in ``calls`` as (method, name).
    """

    def __init__(self):
        self.connectors: Dict[str, Dict[str, str]] = {}
        self.states: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail: Optional[UpstreamError] = None
        self.fail_on: set = set()

    def _check(self, method: str, name: Optional[str]) -> None:
        self.calls.append((method, name))
        if self.fail is not None and (not self.fail_on or method in self.fail_on):
            raise self.fail

    @property
    def mutating_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("create", "update", "delete")]

    async def exists(self, host: str, name: str) -> bool:
        self._check("exists", name)
        return name in self.connectors

    async def get_config(self, host: str, name: str) -> Dict[str, str]:
        self._check("get_config", name)
        if name not in self.connectors:
            raise UpstreamError("not found", status=404)
        return dict(self.connectors[name])

    async def get_status(self, host: str, name: str) -> Dict[str, Any]:
        self._check("get_status", name)
        return self.states.get(
            name,
            {
                "name": name,
                "connector": {"state": "RUNNING"},
                "tasks": [{"id": 0, "state": "RUNNING"}],
            },
        )

    async def create(self, host: str, config: Dict[str, str]) -> None:
        name = config["name"]
        self._check("create", name)
        if name in self.connectors:
            raise UpstreamError("already exists", status=409)
        self.connectors[name] = dict(config)

    async def update(self, host: str, name: str, config: Dict[str, str]) -> None:
        self._check("update", name)
        self.connectors[name] = dict(config)

    async def delete(self, host: str, name: str) -> None:
        self._check("delete", name)
        if name not in self.connectors:
            raise UpstreamError("not found", status=404)
        del self.connectors[name]


@pytest.fixture
def connector_config():
    """Desired connector configuration."""
    return {
        "name": "c1",
        "connector.class": "io.debezium.connector.mysql.MySqlConnector",
        "tasks.max": "1",
    }


@pytest.fixture
def sample_connector_row(connector_config):
    """Sample parsed connectors row."""
    now = datetime(2026, 1, 1, 12, 0, 0)
    return {
        "id": 1,
        "namespace": "default",
        "name": "inventory",
        "host": HOST,
        "config": dict(connector_config),
        "generation": 1,
        "observed_generation": 0,
        "finalizers": [],
        "phase": "UNKNOWN",
        "conditions": [],
        "last_error": None,
        "retry_count": 0,
        "last_reconcile_time": None,
        "next_reconcile_time": None,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def finalized_row(sample_connector_row):
    """Sample row that already carries the operator's finalizer."""
    row = dict(sample_connector_row)
    row["finalizers"] = [FINALIZER_NAME]
    return row


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_cluster():
    return FakeConnectCluster()
