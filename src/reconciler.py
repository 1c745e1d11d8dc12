"""
Connector reconciler - converges a Debezium connector to its record.

Similar to a Kubernetes controller's Reconcile(): each pass reads the
actual state from Kafka Connect, decides on one corrective action and
executes it. State is derived from the record on every pass:

    Deleting  - deletion requested
    Adopting  - no finalizer yet
    Synced    - finalizer registered

The finalizer is always persisted before anything is created remotely,
and only released once the remote delete is confirmed.
"""

import logging
from dataclasses import replace
from typing import Optional

from comparator import configs_equal
from connect_client import ConnectorControlClient
from errors import UpstreamError
from finalizers import FinalizerLifecycle
from models import (
    ConnectorPhase,
    ConnectorResource,
    ExternalConnectorState,
    ReconcileAction,
    ReconcileOutcome,
)
from status import StatusReporter, map_phase

logger = logging.getLogger(__name__)

DEFAULT_RESYNC_INTERVAL = 60  # seconds


def decide(resource: ConnectorResource, state: ExternalConnectorState) -> ReconcileAction:
    """Pick the corrective action for a non-deleting record."""
    if not state.exists:
        return ReconcileAction.CREATE
    if configs_equal(resource.config, state.config or {}):
        return ReconcileAction.NO_ACTION
    return ReconcileAction.UPDATE


class ReconcileEngine:
    """
    Runs one reconcile pass for one record.

    Holds no per-resource state, so a single engine can serve many keys
    concurrently as long as each key has at most one pass in flight.
    """

    def __init__(
        self,
        client: ConnectorControlClient,
        finalizers: FinalizerLifecycle,
        status_reporter: StatusReporter,
        resync_interval: int = DEFAULT_RESYNC_INTERVAL,
    ):
        self.client = client
        self.finalizers = finalizers
        self.status_reporter = status_reporter
        self.resync_interval = resync_interval

    async def reconcile(self, resource: ConnectorResource) -> ReconcileOutcome:
        """
        Reconcile a single record.

        Upstream failures are returned as a failed outcome rather than
        raised; the caller decides when to retry.
        """
        if resource.deletion_requested:
            return await self._reconcile_deletion(resource)

        if not resource.finalizer_present:
            resource = await self.finalizers.ensure_registered(resource)

        return await self._reconcile_synced(resource)

    async def _reconcile_deletion(self, resource: ConnectorResource) -> ReconcileOutcome:
        if not resource.finalizer_present:
            logger.debug(
                f"{resource.namespace}/{resource.name} has no finalizer, "
                f"nothing to clean up"
            )
            return ReconcileOutcome(action=ReconcileAction.NO_ACTION)

        name = resource.connector_name
        try:
            await self.client.delete(resource.host, name)
            logger.info(f"Deleted connector {name} from {resource.host}")
        except UpstreamError as e:
            if not e.is_not_found:
                logger.error(f"Failed to delete connector {name}: {e}")
                return ReconcileOutcome(action=ReconcileAction.DELETE, error=e)
            logger.info(f"Connector {name} already absent from {resource.host}")

        await self.finalizers.release(resource, external_deleted=True)
        return ReconcileOutcome(action=ReconcileAction.DELETE)

    async def _reconcile_synced(self, resource: ConnectorResource) -> ReconcileOutcome:
        name = resource.connector_name
        host = resource.host
        action: Optional[ReconcileAction] = None

        try:
            state = await self._observe(resource)
            action = decide(resource, state)

            if action is ReconcileAction.CREATE:
                await self.client.create(host, dict(resource.config))
                logger.info(f"Debezium connector created: {name}")
            elif action is ReconcileAction.UPDATE:
                await self.client.update(host, name, dict(resource.config))
                logger.info(f"Debezium connector updated to match record: {name}")
            else:
                logger.debug(f"Connector {name} is in sync")

        except UpstreamError as e:
            logger.error(
                f"Failed to reconcile connector {name} "
                f"({(action or ReconcileAction.NO_ACTION).value}): {e}"
            )
            return ReconcileOutcome(
                action=action or ReconcileAction.NO_ACTION, error=e
            )

        if action is ReconcileAction.CREATE:
            phase = ConnectorPhase.UNKNOWN
        else:
            state = await self._observe_runtime_status(state, host, name)
            phase = map_phase(state.runtime_status)

        await self.status_reporter.report(resource, phase, action)
        return ReconcileOutcome(
            action=action, requeue_after=self.resync_interval, phase=phase
        )

    async def _observe(self, resource: ConnectorResource) -> ExternalConnectorState:
        name = resource.connector_name
        if not await self.client.exists(resource.host, name):
            return ExternalConnectorState(exists=False)
        config = await self.client.get_config(resource.host, name)
        return ExternalConnectorState(exists=True, config=config)

    async def _observe_runtime_status(
        self, state: ExternalConnectorState, host: str, name: str
    ) -> ExternalConnectorState:
        try:
            runtime_status = await self.client.get_status(host, name)
        except UpstreamError as e:
            logger.warning(f"Could not read status of connector {name}: {e}")
            return state
        return replace(state, runtime_status=runtime_status)
