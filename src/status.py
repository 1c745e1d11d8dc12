"""
Status reporting - maps Kafka Connect runtime status onto the record.

Writes are last-write-wins and never fail a reconcile pass: a failed
write is logged and dropped.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import Condition, ConnectorPhase, ConnectorResource, ReconcileAction

logger = logging.getLogger(__name__)

READY = "Ready"
SYNCED = "Synced"

_READY_BY_PHASE = {
    ConnectorPhase.RUNNING: ("True", "ConnectorRunning", "Connector is running"),
    ConnectorPhase.PAUSED: ("False", "ConnectorPaused", "Connector is paused"),
    ConnectorPhase.TASK_FAILED: (
        "False",
        "TaskFailed",
        "Connector or one of its tasks has failed",
    ),
    ConnectorPhase.UNKNOWN: ("Unknown", "StatusUnknown", "Connector state not observed"),
}

_SYNCED_BY_ACTION = {
    ReconcileAction.CREATE: ("Created", "Connector created on Kafka Connect"),
    ReconcileAction.UPDATE: ("Updated", "Connector configuration updated"),
    ReconcileAction.NO_ACTION: ("InSync", "Connector configuration matches"),
}


def map_phase(runtime_status: Optional[Dict[str, Any]]) -> ConnectorPhase:
    """
    Map a ``/connectors/{name}/status`` body to a phase.

    Unrecognized or missing states map to UNKNOWN.
    """
    if not runtime_status:
        return ConnectorPhase.UNKNOWN

    connector = runtime_status.get("connector") or {}
    state = str(connector.get("state", "")).upper()
    task_states = {
        str(task.get("state", "")).upper() for task in runtime_status.get("tasks") or []
    }

    if state == "FAILED":
        return ConnectorPhase.TASK_FAILED
    if state == "RUNNING":
        if "FAILED" in task_states:
            return ConnectorPhase.TASK_FAILED
        return ConnectorPhase.RUNNING
    if state == "PAUSED":
        return ConnectorPhase.PAUSED
    return ConnectorPhase.UNKNOWN


def set_condition(
    conditions: Iterable[Condition],
    type_: str,
    status: str,
    reason: str,
    message: str,
    now: Optional[str] = None,
) -> Tuple[Condition, ...]:
    """
    Return conditions with ``type_`` set, preserving order.

    ``lastTransitionTime`` only moves when the status value changes.
    """
    now = now or _utcnow()
    result: List[Condition] = []
    found = False

    for condition in conditions:
        if condition.type != type_:
            result.append(condition)
            continue
        found = True
        transition = condition.last_transition_time
        if condition.status != status or transition is None:
            transition = now
        result.append(Condition(type_, status, reason, message, transition))

    if not found:
        result.append(Condition(type_, status, reason, message, now))

    return tuple(result)


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StatusReporter:
    """Persists phase and conditions for a record."""

    def __init__(self, store: Any):
        self.store = store

    async def report(
        self,
        resource: ConnectorResource,
        phase: ConnectorPhase,
        action: ReconcileAction,
    ) -> None:
        """Record the phase observed after a successful pass."""
        ready_status, ready_reason, ready_message = _READY_BY_PHASE[phase]
        conditions = set_condition(
            resource.conditions, READY, ready_status, ready_reason, ready_message
        )
        synced_reason, synced_message = _SYNCED_BY_ACTION.get(
            action, ("InSync", "Connector configuration matches")
        )
        conditions = set_condition(
            conditions, SYNCED, "True", synced_reason, synced_message
        )

        try:
            await self.store.update_connector_status(
                resource.id,
                phase=phase.value,
                conditions=[c.to_dict() for c in conditions],
            )
        except Exception as e:
            logger.warning(
                f"Failed to write status for {resource.namespace}/{resource.name}: {e}"
            )
