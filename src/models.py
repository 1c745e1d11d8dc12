"""
Value objects shared by the reconciliation engine and the record store.

A ConnectorResource is built fresh from the store at the start of every
reconcile pass and never mutated; steps that change it return a new copy
via dataclasses.replace().
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

FINALIZER_NAME = "debeziumconnector.finalizers.api.debezium"


class ConnectorPhase(Enum):
    """Externally observed phase of a connector."""

    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    TASK_FAILED = "TASK_FAILED"
    UNKNOWN = "UNKNOWN"


class ReconcileAction(Enum):
    """Corrective action decided by a reconcile pass."""

    NO_ACTION = "NO_ACTION"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Condition:
    """A status condition, Kubernetes style."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        return cls(
            type=data["type"],
            status=data["status"],
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=data.get("lastTransitionTime"),
        )


@dataclass(frozen=True)
class ConnectorResource:
    """Desired-state record for one Debezium connector."""

    namespace: str
    name: str
    host: str
    config: Dict[str, str]
    id: Optional[int] = None
    generation: int = 1
    finalizers: Tuple[str, ...] = ()
    deletion_timestamp: Optional[datetime] = None
    phase: ConnectorPhase = ConnectorPhase.UNKNOWN
    conditions: Tuple[Condition, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def connector_name(self) -> Optional[str]:
        """Name of the connector on the Connect cluster (``config["name"]``)."""
        return self.config.get("name")

    @property
    def deletion_requested(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def finalizer_present(self) -> bool:
        return FINALIZER_NAME in self.finalizers

    def with_finalizer(self) -> "ConnectorResource":
        if self.finalizer_present:
            return self
        return replace(self, finalizers=self.finalizers + (FINALIZER_NAME,))

    def without_finalizer(self) -> "ConnectorResource":
        return replace(
            self, finalizers=tuple(f for f in self.finalizers if f != FINALIZER_NAME)
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ConnectorResource":
        """Build a resource from a parsed ``connectors`` row."""
        phase = row.get("phase") or ConnectorPhase.UNKNOWN.value
        try:
            parsed_phase = ConnectorPhase(phase)
        except ValueError:
            parsed_phase = ConnectorPhase.UNKNOWN

        return cls(
            id=row.get("id"),
            namespace=row["namespace"],
            name=row["name"],
            host=row.get("host") or "",
            config=dict(row.get("config") or {}),
            generation=row.get("generation", 1),
            finalizers=tuple(row.get("finalizers") or ()),
            deletion_timestamp=row.get("deleted_at"),
            phase=parsed_phase,
            conditions=tuple(
                Condition.from_dict(c) for c in row.get("conditions") or ()
            ),
        )


@dataclass(frozen=True)
class ExternalConnectorState:
    """Snapshot of a connector as reported by Kafka Connect for one pass."""

    exists: bool
    config: Optional[Dict[str, str]] = None
    runtime_status: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ReconcileOutcome:
    """Decision and result of one reconcile pass."""

    action: ReconcileAction = ReconcileAction.NO_ACTION
    requeue_after: Optional[int] = None
    error: Optional[Exception] = field(default=None, compare=False)
    phase: Optional[ConnectorPhase] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        return self.action.value
