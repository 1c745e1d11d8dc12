"""
Operator Controller - dispatches reconcile passes for connector records.

Polls the record store for records that are due, runs the reconcile
engine for each one on a bounded pool of asyncio tasks, and turns each
outcome into the record's next schedule: a periodic resync on success,
an exponential backoff on failure, or removal once a deleted record has
no finalizers left.

At most one pass per (namespace, name) key is ever in flight; a key that
comes due again while its pass is running is skipped until it returns.
"""

import asyncio
import logging
import random
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple

from config import ControllerConfig
from db import DatabaseManager
from models import ConnectorResource, ReconcileOutcome
from reconciler import ReconcileEngine

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


def compute_backoff(
    retry_count: int,
    base_delay: float,
    max_delay: float,
    jitter_factor: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retrying a failed pass.

    ``min(base * 2**retry_count, max)`` with ±jitter_factor jitter; the
    exponent is capped at 10.
    """
    delay = min(base_delay * (2 ** min(retry_count, 10)), max_delay)
    return delay * (1 + (rand() * 2 - 1) * jitter_factor)


class Controller:
    """
    Main controller that runs the reconciliation loop.

    Watches the record store for due connector records and hands each one
    to the ReconcileEngine.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        engine: ReconcileEngine,
        config: Optional[ControllerConfig] = None,
    ):
        self.db = db_manager
        self.engine = engine
        self.config = config or ControllerConfig()
        self.poll_interval = self.config.poll_interval
        self.max_concurrent_reconciles = self.config.max_concurrent_reconciles
        self.semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        self.running = False

        self._in_flight: Set[Key] = set()
        self._tasks: Set[asyncio.Task] = set()

    async def start(self):
        """Start the reconciliation loop; returns once stop() is called."""
        logger.info("Starting connector controller")
        self.running = True
        await self._reconciliation_loop()

    async def stop(self):
        """Stop polling and cancel in-flight passes."""
        logger.info("Stopping connector controller")
        self.running = False

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _reconciliation_loop(self):
        """Poll for due records until stopped."""
        while self.running:
            try:
                dispatched = await self.poll_once()
                if dispatched:
                    logger.info(f"Dispatched {dispatched} connector reconciliation(s)")
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> int:
        """
        Dispatch a pass for every due record not already in flight.

        Returns:
            Number of passes dispatched.
        """
        rows = await self.db.get_connectors_due(
            limit=self.max_concurrent_reconciles * 2
        )

        dispatched = 0
        for row in rows:
            key = (row["namespace"], row["name"])
            if key in self._in_flight:
                logger.debug(f"Skipping {key[0]}/{key[1]}: reconcile already running")
                continue

            self._in_flight.add(key)
            task = asyncio.create_task(self._run_pass(key))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched += 1

        return dispatched

    def is_in_flight(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self._in_flight

    async def _run_pass(self, key: Key) -> None:
        try:
            async with self.semaphore:
                await self.reconcile(*key)
        except asyncio.CancelledError:
            logger.info(f"Reconcile of {key[0]}/{key[1]} cancelled")
            raise
        except Exception as e:
            logger.error(f"Error reconciling {key[0]}/{key[1]}: {e}", exc_info=True)
        finally:
            self._in_flight.discard(key)

    async def reconcile(self, namespace: str, name: str) -> Optional[ReconcileOutcome]:
        """
        Run one pass for a key and record its outcome.

        Returns:
            The outcome, or None if the record no longer exists.
        """
        row = await self.db.get_connector_by_key(namespace, name)
        if row is None:
            logger.info(
                f"Connector record {namespace}/{name} not found; "
                f"it may have been deleted"
            )
            return None

        resource = ConnectorResource.from_row(row)
        start_time = time.monotonic()

        try:
            outcome = await self.engine.reconcile(resource)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Reconcile of {namespace}/{name} raised: {e}", exc_info=True
            )
            outcome = ReconcileOutcome(error=e)

        duration = time.monotonic() - start_time
        logger.debug(
            f"Reconciled {namespace}/{name} in {duration:.3f}s: {outcome.message}"
        )

        await self._record_outcome(row, resource, outcome)
        return outcome

    async def _record_outcome(
        self,
        row: Dict[str, Any],
        resource: ConnectorResource,
        outcome: ReconcileOutcome,
    ) -> None:
        if not outcome.success:
            delay = compute_backoff(
                row.get("retry_count") or 0,
                self.config.backoff_base_delay,
                self.config.backoff_max_delay,
                self.config.backoff_jitter_factor,
            )
            await self.db.record_reconcile_failure(
                resource.id, str(outcome.error), delay, resource.generation
            )
            logger.warning(
                f"Reconcile of {resource.namespace}/{resource.name} failed, "
                f"retrying in {delay:.0f}s: {outcome.error}"
            )
            return

        if resource.deletion_requested:
            if await self.db.hard_delete_connector(resource.id):
                logger.info(f"Deleted connector record {resource.namespace}/{resource.name}")
                return
            remaining = await self.db.get_finalizers(resource.id)
            logger.info(
                f"Connector record {resource.namespace}/{resource.name} "
                f"waiting on finalizers: {remaining}"
            )
            await self.db.schedule_reconcile(
                resource.id, self.config.reconcile_interval, resource.generation
            )
            return

        await self.db.schedule_reconcile(
            resource.id,
            outcome.requeue_after or self.config.reconcile_interval,
            resource.generation,
        )
