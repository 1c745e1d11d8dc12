"""
Database migration runner for asyncpg.

Applies forward-only SQL migrations from the migrations/ directory.
Runners in several operator replicas serialize on a Postgres advisory
lock; each migration runs in its own transaction.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Set, Tuple

import asyncpg

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_PATTERN = re.compile(r"^(\d{3})_.+\.sql$")

# Arbitrary constant shared by every replica of the operator
ADVISORY_LOCK_ID = 0x64627A6F


async def ensure_migration_table(conn: asyncpg.Connection) -> None:
    """Create the schema_migrations tracking table if it doesn't exist."""
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version VARCHAR(16) PRIMARY KEY,
            filename VARCHAR(255) NOT NULL,
            applied_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
        """)


def discover_migrations(
    migrations_dir: Optional[Path] = None,
) -> List[Tuple[str, str, Path]]:
    """
    List migration files as sorted (version, filename, path) tuples.

    Raises:
        FileNotFoundError: If the migrations directory doesn't exist.
        ValueError: If two files share a version number.
    """
    directory = migrations_dir or MIGRATIONS_DIR
    if not directory.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {directory}")

    migrations = []
    seen: Set[str] = set()
    for entry in sorted(directory.iterdir()):
        match = MIGRATION_PATTERN.match(entry.name)
        if not (match and entry.is_file()):
            continue
        version = match.group(1)
        if version in seen:
            raise ValueError(f"Duplicate migration version {version}")
        seen.add(version)
        migrations.append((version, entry.name, entry))

    return migrations


async def get_applied_versions(conn: asyncpg.Connection) -> Set[str]:
    """Get the set of already-applied migration versions."""
    rows = await conn.fetch("SELECT version FROM schema_migrations")
    return {row["version"] for row in rows}


async def apply_migration(
    conn: asyncpg.Connection, version: str, filename: str, path: Path
) -> None:
    """Apply a single migration and record it, in one transaction."""
    sql = path.read_text(encoding="utf-8")

    async with conn.transaction():
        await conn.execute(sql)
        await conn.execute(
            "INSERT INTO schema_migrations (version, filename) VALUES ($1, $2)",
            version,
            filename,
        )

    logger.info(f"Applied migration {filename}")


async def run_migrations(
    pool: asyncpg.Pool, migrations_dir: Optional[Path] = None
) -> int:
    """
    Apply all pending migrations in order.

    Returns:
        Number of migrations applied.

    Raises:
        FileNotFoundError: If the migrations directory is missing.
        asyncpg.PostgresError: If a migration fails (it is rolled back;
            previously applied migrations remain).
    """
    all_migrations = discover_migrations(migrations_dir)

    async with pool.acquire() as conn:
        await conn.execute("SELECT pg_advisory_lock($1)", ADVISORY_LOCK_ID)
        try:
            await ensure_migration_table(conn)
            applied = await get_applied_versions(conn)
            pending = [m for m in all_migrations if m[0] not in applied]

            if not pending:
                logger.info("Database schema is up to date")
                return 0

            logger.info(f"Applying {len(pending)} pending migration(s)")
            for version, filename, path in pending:
                await apply_migration(conn, version, filename, path)
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", ADVISORY_LOCK_ID)

    logger.info(f"Successfully applied {len(pending)} migration(s)")
    return len(pending)
