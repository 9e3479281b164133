"""
asyncpg pool for the PostgreSQL item and assist-task stores.

Only used when DATABASE_URL is set; otherwise api.main wires the in-memory
stores and nothing here is ever initialized. JSONB columns are decoded to
dict/list on every pooled connection, so stores never see JSON text.
"""

import json
import logging
import os
import pathlib
from contextlib import asynccontextmanager
from typing import Any, List, Optional

import asyncpg

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "2"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

SCHEMA_PATH = pathlib.Path(__file__).with_name("schema.sql")

_pool: Optional[asyncpg.Pool] = None


def is_configured() -> bool:
    return bool(DATABASE_URL)


async def _register_codecs(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=lambda value: json.dumps(value, ensure_ascii=False),
        decoder=json.loads,
        schema="pg_catalog",
    )


async def init_db_pool(dsn: Optional[str] = None) -> asyncpg.Pool:
    """Create the shared pool once; later calls return the existing one."""
    global _pool
    if _pool is not None:
        return _pool

    logger.info(f"Connecting to PostgreSQL (pool {DB_POOL_MIN_SIZE}-{DB_POOL_MAX_SIZE})")
    try:
        _pool = await asyncpg.create_pool(
            dsn or DATABASE_URL,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            command_timeout=60.0,
            init=_register_codecs,
        )
    except Exception as e:
        logger.error(f"Could not create database pool: {e}")
        raise
    return _pool


async def close_db_pool() -> None:
    global _pool
    if _pool is None:
        return
    await _pool.close()
    _pool = None
    logger.info("Database pool closed")


@asynccontextmanager
async def get_connection():
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
    async with _pool.acquire() as conn:
        yield conn


async def execute(query: str, *args) -> str:
    async with get_connection() as conn:
        return await conn.execute(query, *args)


async def fetch(query: str, *args) -> List[asyncpg.Record]:
    async with get_connection() as conn:
        return await conn.fetch(query, *args)


async def fetchrow(query: str, *args) -> Optional[asyncpg.Record]:
    async with get_connection() as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(query: str, *args) -> Any:
    async with get_connection() as conn:
        return await conn.fetchval(query, *args)


def affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as "DELETE 3"."""
    try:
        return int(status.split()[-1])
    except (AttributeError, ValueError, IndexError):
        return 0


async def init_schema() -> None:
    """Apply schema.sql; every statement in it is IF NOT EXISTS."""
    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")
    async with get_connection() as conn:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    logger.info("Database schema is up to date")


async def health_check() -> dict:
    try:
        await fetchval("SELECT 1")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
    return {
        "status": "healthy",
        "database": "connected",
        "pool_size": _pool.get_size() if _pool else 0,
        "pool_free": _pool.get_idle_size() if _pool else 0,
    }
