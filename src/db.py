"""
Database Manager - PostgreSQL record store.

Stores connector records (desired spec, finalizers, status), the secret
holding the webhook TLS pair, and the webhook trust bundle.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from migrate import run_migrations

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages PostgreSQL operations for the operator."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Apply database migrations to bring schema up to date."""
        self._ensure_connected()
        await run_migrations(self.pool)
        logger.info("Database schema initialized")

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        if self.pool is None:
            return False
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    # ==================== Connector records ====================

    async def create_connector(
        self,
        namespace: str,
        name: str,
        host: str,
        config: Dict[str, str],
    ) -> int:
        """
        Create a connector record, scheduled for immediate reconciliation.

        Raises:
            asyncpg.UniqueViolationError: If namespace/name is taken.
        """
        async with self.pool.acquire() as conn:
            connector_id = await conn.fetchval(
                """
                INSERT INTO connectors (namespace, name, host, config,
                                        next_reconcile_time)
                VALUES ($1, $2, $3, $4, NOW())
                RETURNING id
                """,
                namespace,
                name,
                host,
                json.dumps(config),
            )
            logger.info(f"Created connector record {namespace}/{name} ({connector_id})")
            return connector_id

    async def update_connector_spec(
        self,
        namespace: str,
        name: str,
        host: str,
        config: Dict[str, str],
    ) -> Optional[int]:
        """
        Replace the spec of a live record.

        The generation only moves when the spec actually changes.

        Returns:
            The new generation, or None if no live record matched.
        """
        async with self.pool.acquire() as conn:
            generation = await conn.fetchval(
                """
                UPDATE connectors
                SET generation = CASE
                        WHEN host IS DISTINCT FROM $3 OR config <> $4::jsonb
                        THEN generation + 1
                        ELSE generation
                    END,
                    host = $3,
                    config = $4::jsonb,
                    next_reconcile_time = NOW(),
                    updated_at = NOW()
                WHERE namespace = $1 AND name = $2 AND deleted_at IS NULL
                RETURNING generation
                """,
                namespace,
                name,
                host,
                json.dumps(config),
            )
            if generation is not None:
                logger.info(
                    f"Updated connector record {namespace}/{name} "
                    f"to generation {generation}"
                )
            return generation

    async def get_connector_by_key(
        self, namespace: str, name: str
    ) -> Optional[Dict[str, Any]]:
        """Get a connector record by namespace/name, including ones being deleted."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM connectors WHERE namespace = $1 AND name = $2",
                namespace,
                name,
            )
            return self._parse_connector_row(row) if row else None

    async def list_connectors(
        self, namespace: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """List connector records, optionally within one namespace."""
        async with self.pool.acquire() as conn:
            query = "SELECT * FROM connectors WHERE 1=1"
            params: List[Any] = []

            if namespace:
                params.append(namespace)
                query += f" AND namespace = ${len(params)}"

            params.append(limit)
            query += f" ORDER BY namespace, name LIMIT ${len(params)}"

            rows = await conn.fetch(query, *params)
            return [self._parse_connector_row(row) for row in rows]

    async def mark_connector_deleted(self, namespace: str, name: str) -> bool:
        """
        Request deletion of a record (soft delete).

        The record stays until every finalizer is removed. The first request
        bumps the generation so a pass already in flight does not push the
        deletion back.
        """
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                """
                UPDATE connectors
                SET generation = CASE
                        WHEN deleted_at IS NULL THEN generation + 1
                        ELSE generation
                    END,
                    deleted_at = COALESCE(deleted_at, NOW()),
                    next_reconcile_time = NOW(),
                    updated_at = NOW()
                WHERE namespace = $1 AND name = $2
                RETURNING id
                """,
                namespace,
                name,
            )
            if result:
                logger.info(f"Marked connector record {namespace}/{name} for deletion")
            return result is not None

    async def hard_delete_connector(self, connector_id: int) -> bool:
        """
        Permanently delete a record.

        Only succeeds once deletion was requested and no finalizers remain.
        """
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                """
                DELETE FROM connectors
                WHERE id = $1
                  AND deleted_at IS NOT NULL
                  AND finalizers = '[]'::jsonb
                RETURNING id
                """,
                connector_id,
            )
            if result:
                logger.info(f"Hard-deleted connector record {connector_id}")
                return True
            return False

    async def get_connectors_due(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get records whose next reconciliation is due.

        Deletions go first, then the longest-waiting records.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT *
                FROM connectors
                WHERE next_reconcile_time IS NULL
                   OR next_reconcile_time <= NOW()
                ORDER BY
                    CASE WHEN deleted_at IS NOT NULL THEN 0 ELSE 1 END,
                    next_reconcile_time ASC NULLS FIRST
                LIMIT $1
                """,
                limit,
            )
            return [self._parse_connector_row(row) for row in rows]

    async def mark_for_reconciliation(self, namespace: str, name: str) -> bool:
        """Schedule a record for immediate reconciliation."""
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                """
                UPDATE connectors
                SET next_reconcile_time = NOW()
                WHERE namespace = $1 AND name = $2
                RETURNING id
                """,
                namespace,
                name,
            )
            return result is not None

    async def schedule_reconcile(
        self, connector_id: int, delay_seconds: float, generation: int
    ) -> None:
        """
        Record a successful pass and schedule the next one.

        Args:
            connector_id: The record's ID
            delay_seconds: Delay before the next pass
            generation: Generation the pass worked from. If the record moved
                past it during the pass, the next pass stays due now.
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE connectors
                SET next_reconcile_time = CASE
                        WHEN generation > $3 THEN NOW()
                        ELSE NOW() + INTERVAL '1 second' * $2
                    END,
                    last_reconcile_time = NOW(),
                    observed_generation = $3,
                    retry_count = 0,
                    last_error = NULL
                WHERE id = $1
                """,
                connector_id,
                delay_seconds,
                generation,
            )

    async def record_reconcile_failure(
        self,
        connector_id: int,
        message: str,
        delay_seconds: float,
        generation: int,
    ) -> None:
        """
        Record a failed pass and schedule a retry after the backoff delay.

        A record that moved past ``generation`` during the pass is retried
        immediately instead.
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE connectors
                SET next_reconcile_time = CASE
                        WHEN generation > $4 THEN NOW()
                        ELSE NOW() + INTERVAL '1 second' * $3
                    END,
                    last_reconcile_time = NOW(),
                    retry_count = retry_count + 1,
                    last_error = $2
                WHERE id = $1
                """,
                connector_id,
                message,
                delay_seconds,
                generation,
            )

    async def update_connector_status(
        self,
        connector_id: int,
        phase: str,
        conditions: List[Dict[str, Any]],
    ) -> None:
        """Overwrite the status sub-object of a record."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE connectors
                SET phase = $2, conditions = $3::jsonb, updated_at = NOW()
                WHERE id = $1
                """,
                connector_id,
                phase,
                json.dumps(conditions),
            )

    # ==================== Finalizers ====================

    async def add_finalizer(self, connector_id: int, finalizer: str) -> None:
        """Add a finalizer to a record. No-op if already present."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE connectors
                SET finalizers = CASE
                        WHEN NOT finalizers @> to_jsonb($2::text)
                        THEN finalizers || to_jsonb($2::text)
                        ELSE finalizers
                    END,
                    updated_at = NOW()
                WHERE id = $1
                """,
                connector_id,
                finalizer,
            )

    async def remove_finalizer(self, connector_id: int, finalizer: str) -> None:
        """Remove a finalizer from a record."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE connectors
                SET finalizers = COALESCE(
                        (SELECT jsonb_agg(elem)
                         FROM jsonb_array_elements(finalizers) AS elem
                         WHERE elem #>> '{}' != $2),
                        '[]'::jsonb
                    ),
                    updated_at = NOW()
                WHERE id = $1
                """,
                connector_id,
                finalizer,
            )

    async def get_finalizers(self, connector_id: int) -> List[str]:
        """Get the finalizers of a record, or [] if it doesn't exist."""
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                "SELECT finalizers FROM connectors WHERE id = $1",
                connector_id,
            )
            if result is None:
                return []
            return json.loads(result) if isinstance(result, str) else result

    # ==================== Secrets and trust bundle ====================

    async def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Get a secret; ``data`` is returned as a dict."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM secrets WHERE namespace = $1 AND name = $2",
                namespace,
                name,
            )
            if not row:
                return None
            result = dict(row)
            result["data"] = self._load_json(result.get("data"), {})
            return result

    async def create_secret(
        self,
        namespace: str,
        name: str,
        data: Dict[str, str],
        secret_type: str = "Opaque",
    ) -> None:
        """Create a secret. Fails if it already exists."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO secrets (namespace, name, type, data)
                VALUES ($1, $2, $3, $4)
                """,
                namespace,
                name,
                secret_type,
                json.dumps(data),
            )
            logger.info(f"Created secret {namespace}/{name}")

    async def upsert_webhook_ca_bundle(
        self, configuration_name: str, name: str, url: str, ca_bundle: str
    ) -> None:
        """Publish the CA bundle callers use to trust the validating webhook."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO validating_webhooks (configuration_name, name, url, ca_bundle)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (configuration_name, name)
                DO UPDATE SET url = EXCLUDED.url,
                              ca_bundle = EXCLUDED.ca_bundle,
                              updated_at = NOW()
                """,
                configuration_name,
                name,
                url,
                ca_bundle,
            )
            logger.info(f"Published CA bundle for webhook {configuration_name}/{name}")

    # ==================== Helpers ====================

    @staticmethod
    def _load_json(value: Any, default: Any) -> Any:
        if value is None:
            return default
        if isinstance(value, str):
            return json.loads(value) if value else default
        return value

    def _parse_connector_row(self, row: asyncpg.Record) -> Dict[str, Any]:
        """
        Convert a connectors row to a dict, decoding the JSONB columns.

        Args:
            row: An asyncpg.Record from a query on ``connectors``

        Returns:
            A dictionary with config, finalizers and conditions parsed
        """
        result = dict(row)
        result["config"] = self._load_json(result.get("config"), {})
        result["finalizers"] = self._load_json(result.get("finalizers"), []) or []
        result["conditions"] = self._load_json(result.get("conditions"), []) or []
        return result
