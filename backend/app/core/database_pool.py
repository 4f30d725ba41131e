"""
Async PostgreSQL connection pool using asyncpg.

The trending aggregate is read-only, so it goes to the read replica when one
is configured (DB_READ_REPLICA_URL) and to the primary otherwise. The view
counter update always uses the primary.

Pool settings:
- Primary: 5-20 connections, replica: 5-10 connections
- Command timeout: 30 seconds
- Idle connection lifetime: 1 hour
"""
import os
from typing import Optional

import asyncpg

from app.core.logging import get_logger

logger = get_logger(__name__)

_primary_pool: Optional[asyncpg.Pool] = None
_read_pool: Optional[asyncpg.Pool] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    host = os.getenv("DB_HOST", "postgres")
    port = int(os.getenv("DB_PORT", "5432"))
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "postgres")
    database = os.getenv("DB_NAME", "postgres")

    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def get_read_replica_url() -> Optional[str]:
    return os.getenv("DB_READ_REPLICA_URL") or None


async def initialize_database_pool() -> bool:
    """
    Initialize database connection pools.

    Returns:
        True if initialization successful, False otherwise
    """
    global _primary_pool, _read_pool

    try:
        primary_url = get_database_url()
        logger.info("db_pool_initializing", type="primary", url_prefix=primary_url[:30])

        _primary_pool = await asyncpg.create_pool(
            primary_url,
            min_size=5,
            max_size=20,
            max_inactive_connection_lifetime=3600,
            command_timeout=30,
        )
        logger.info("db_pool_initialized", type="primary")

        replica_url = get_read_replica_url()
        if replica_url:
            logger.info("db_pool_initializing", type="replica", url_prefix=replica_url[:30])
            _read_pool = await asyncpg.create_pool(
                replica_url,
                min_size=5,
                max_size=10,
                max_inactive_connection_lifetime=3600,
                command_timeout=30,
            )
            logger.info("db_pool_initialized", type="replica")

        return True

    except Exception as e:
        logger.error(
            "db_pool_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        _primary_pool = None
        _read_pool = None
        return False


async def close_database_pools() -> None:
    """Close all database connection pools."""
    global _primary_pool, _read_pool

    for pool_type, pool in (("primary", _primary_pool), ("replica", _read_pool)):
        if pool is None:
            continue
        try:
            await pool.close()
            logger.info("db_pool_closed", type=pool_type)
        except Exception as e:
            logger.error("db_pool_close_failed", type=pool_type, error=str(e))

    _primary_pool = None
    _read_pool = None


def get_primary_pool() -> Optional[asyncpg.Pool]:
    """Get primary database connection pool."""
    return _primary_pool


def get_read_pool() -> Optional[asyncpg.Pool]:
    """Get the read pool (replica if available, otherwise primary)."""
    return _read_pool or _primary_pool
