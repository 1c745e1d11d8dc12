"""
Finalizer lifecycle - the deletion guard for connector records.

The guard token is stored on the record itself (its ``finalizers`` list),
so it survives operator restarts. The record store refuses to hard-delete
a record while the token is present.
"""

import logging
from typing import Any

from errors import FinalizerConsistencyError
from models import FINALIZER_NAME, ConnectorResource

logger = logging.getLogger(__name__)


class FinalizerLifecycle:
    """Registers and releases this operator's finalizer on a record."""

    def __init__(self, store: Any, finalizer: str = FINALIZER_NAME):
        self.store = store
        self.finalizer = finalizer

    async def ensure_registered(self, resource: ConnectorResource) -> ConnectorResource:
        """
        Add the finalizer if missing and persist it.

        Returns:
            The resource with the finalizer present. Idempotent.
        """
        if self.finalizer in resource.finalizers:
            return resource

        await self.store.add_finalizer(resource.id, self.finalizer)
        logger.info(
            f"Registered finalizer on {resource.namespace}/{resource.name}"
        )
        return resource.with_finalizer()

    async def release(
        self, resource: ConnectorResource, external_deleted: bool
    ) -> ConnectorResource:
        """
        Remove the finalizer and persist it.

        Args:
            resource: The record being finalized.
            external_deleted: Whether the external connector is confirmed
                gone (deleted now or already absent).

        Raises:
            FinalizerConsistencyError: If called without confirmation.
        """
        if not external_deleted:
            raise FinalizerConsistencyError(
                f"Refusing to release finalizer on {resource.namespace}/"
                f"{resource.name}: external deletion not confirmed"
            )

        if self.finalizer not in resource.finalizers:
            return resource

        await self.store.remove_finalizer(resource.id, self.finalizer)
        logger.info(f"Released finalizer on {resource.namespace}/{resource.name}")
        return resource.without_finalizer()
