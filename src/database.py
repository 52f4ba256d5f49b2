"""Postgres pool for user and refresh-token storage, plus schema migrations."""

from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from src.config import Settings, get_settings
from src.services.errors import DependencyError

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"
POOL_MIN_SIZE = 2
POOL_MAX_SIZE = 10

_pool: Optional[asyncpg.Pool] = None

MIGRATION_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


async def get_pool() -> asyncpg.Pool:
    """Pool shared by UserService and TokenService.

    Raises:
        DependencyError: If init_database() has not succeeded
    """
    if _pool is None:
        raise DependencyError("Database pool is not initialized")
    return _pool


def _pool_options(settings: Settings) -> dict:
    # Bounded acquire and statement time: an unresponsive database fails the
    # request with 503 instead of hanging it.
    return {
        "min_size": POOL_MIN_SIZE,
        "max_size": POOL_MAX_SIZE,
        "timeout": settings.db_command_timeout,
        "command_timeout": settings.db_command_timeout,
    }


async def init_database() -> asyncpg.Pool:
    """Create the connection pool. Startup aborts if this raises."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()
    options = _pool_options(settings)
    try:
        _pool = await asyncpg.create_pool(settings.postgres_url, **options)
    except (OSError, TimeoutError, asyncpg.PostgresError) as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info("database_pool_created", **options)
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


def pending_migrations(applied: set, migrations_dir: Path = MIGRATIONS_DIR) -> list:
    """SQL files in filename order that are not yet recorded as applied."""
    if not migrations_dir.is_dir():
        return []
    return [p for p in sorted(migrations_dir.glob("*.sql")) if p.name not in applied]


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list:
    """Apply pending migrations, each in its own transaction.

    Applied filenames are recorded in schema_migrations so a restart only
    runs files added since the last deploy.

    Returns:
        Names of the files applied by this call
    """
    pool = await get_pool()
    applied_now = []

    async with pool.acquire() as conn:
        await conn.execute(MIGRATION_LEDGER_DDL)
        rows = await conn.fetch("SELECT filename FROM schema_migrations")
        applied = {row["filename"] for row in rows}

        for path in pending_migrations(applied, migrations_dir):
            try:
                async with conn.transaction():
                    await conn.execute(path.read_text())
                    await conn.execute(
                        "INSERT INTO schema_migrations (filename) VALUES ($1)", path.name
                    )
            except asyncpg.PostgresError as e:
                logger.error("migration_failed", file=path.name, error=str(e))
                raise
            logger.info("migration_applied", file=path.name)
            applied_now.append(path.name)

    if not applied_now:
        logger.info("schema_up_to_date", applied=len(applied))
    return applied_now


async def health_check() -> bool:
    """True if the pool exists and answers SELECT 1."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except (
        DependencyError, OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError
    ) as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
