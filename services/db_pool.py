"""
asyncpg pool for the bot and the API.

Created once per process on first use; both the Telegram handlers and the
FastAPI routes share it through PostgresStorage.
"""
import asyncio
import logging
import os

import asyncpg

logger = logging.getLogger(__name__)

# A single process serves both surfaces; a handful of connections is enough
POOL_MIN = int(os.getenv("POOL_MIN", "1"))
POOL_MAX = int(os.getenv("POOL_MAX", "5"))
POOL_MAX_LIFETIME = int(os.getenv("POOL_MAX_LIFETIME_SEC", "120"))
COMMAND_TIMEOUT = 30

_pool = None
_pool_lock = asyncio.Lock()


async def get_pool(dsn: str = None) -> asyncpg.Pool:
    global _pool
    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is None:
            dsn = dsn or os.getenv("DATABASE_URL")
            if not dsn:
                raise RuntimeError("DATABASE_URL is not set")
            _pool = await asyncpg.create_pool(
                dsn=dsn,
                min_size=POOL_MIN,
                max_size=POOL_MAX,
                max_inactive_connection_lifetime=POOL_MAX_LIFETIME,
                command_timeout=COMMAND_TIMEOUT,
            )
            logger.info(f"Database pool ready ({POOL_MIN}-{POOL_MAX} connections)")
    return _pool


async def get_pool_stats() -> dict:
    """Numbers for /healthz"""
    if _pool is None:
        return {"status": "not_initialized"}

    size = _pool.get_size()
    idle = _pool.get_idle_size()
    return {"size": size, "idle": idle, "in_use": size - idle, "max_size": _pool.get_max_size()}


async def close_pool():
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")
