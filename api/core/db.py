"""
Store bootstrap and async database access (raw SQL) using asyncpg.

`bootstrap()` is the only place a `StoreConnection` is created. FastAPI calls
it once from the lifespan in `api/main.py`, keeps the result on `app.state`
and closes it on shutdown. Request handlers receive it through `get_store`.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable

import asyncpg
from fastapi import HTTPException, Request, status

from .config import IngestSettings, RetryPolicy, StoreSettings

logger = logging.getLogger(__name__)

# Failures that mean "the backend did not answer properly".
BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)

LOCATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_locations (
    id SERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    latitude DOUBLE PRECISION NOT NULL,
    longitude DOUBLE PRECISION NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
)
"""


class BootstrapErrorKind(str, enum.Enum):
    CONNECTION_EXHAUSTED = "connection_exhausted"
    SCHEMA_SETUP_FAILED = "schema_setup_failed"


class BootstrapError(RuntimeError):
    def __init__(self, kind: BootstrapErrorKind, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts


class StoreConnection:
    """
    Process-wide handle on the database.

    Wraps an asyncpg pool; concurrent requests each borrow a pooled
    connection, so no locking happens here.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def fetch_one(self, sql: str, *args: Any, timeout: float | None = None) -> dict[str, Any] | None:
        row = await self._pool.fetchrow(sql, *args, timeout=timeout)
        return dict(row) if row is not None else None

    async def fetch_value(self, sql: str, *args: Any, timeout: float | None = None) -> Any:
        return await self._pool.fetchval(sql, *args, timeout=timeout)

    async def execute(self, sql: str, *args: Any, timeout: float | None = None) -> str:
        return await self._pool.execute(sql, *args, timeout=timeout)

    async def close(self) -> None:
        await self._pool.close()


async def _create_pool(settings: StoreSettings) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=settings.dsn(),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        command_timeout=settings.command_timeout_s,
        timeout=settings.connect_timeout_s,
    )


async def ensure_schema(store: StoreConnection) -> None:
    await store.execute(LOCATIONS_TABLE_SQL)


async def connect_with_retry(
    settings: StoreSettings,
    policy: RetryPolicy,
    *,
    connect: Callable[[StoreSettings], Awaitable[Any]] | None = None,
) -> StoreConnection:
    """
    Open the pool, retrying on connection failures, then make sure the
    `user_locations` table exists.

    Raises `BootstrapError` when every attempt failed or when the schema
    cannot be created (the freshly opened pool is closed first).
    """
    connect = connect or _create_pool
    target = settings.redacted_target()

    pool = None
    attempt = 0
    while attempt < policy.max_attempts:
        attempt += 1
        try:
            pool = await connect(settings)
            break
        except BACKEND_ERRORS as exc:
            logger.warning(
                "db_connect_failed attempt=%s max_attempts=%s target=%s error=%r",
                attempt,
                policy.max_attempts,
                target,
                exc,
            )
            if attempt < policy.max_attempts:
                await policy.sleep(policy.backoff_s)

    if pool is None:
        raise BootstrapError(
            BootstrapErrorKind.CONNECTION_EXHAUSTED,
            f"Could not connect to PostgreSQL at {target} after {attempt} attempts.",
            attempts=attempt,
        )

    store = StoreConnection(pool)
    logger.info("db_connected target=%s attempt=%s", target, attempt)

    try:
        await ensure_schema(store)
    except Exception as exc:
        logger.error("db_schema_failed table=user_locations error=%r", exc)
        await store.close()
        raise BootstrapError(
            BootstrapErrorKind.SCHEMA_SETUP_FAILED,
            "Could not create or verify table user_locations.",
            attempts=attempt,
        ) from exc
    except BaseException:
        # Cancelled mid-DDL: do not leak the freshly opened pool.
        await store.close()
        raise

    logger.info("db_schema_ready table=user_locations")
    return store


async def bootstrap(
    settings: StoreSettings | None = None,
    policy: RetryPolicy | None = None,
    *,
    connect: Callable[[StoreSettings], Awaitable[Any]] | None = None,
) -> StoreConnection:
    """
    Startup entry point. Reads settings from env when not given.
    """
    return await connect_with_retry(
        settings or StoreSettings.from_env(),
        policy or RetryPolicy.from_env(),
        connect=connect,
    )


async def ping(store: StoreConnection, timeout: float) -> bool:
    """
    True when the database answers `SELECT 1` within `timeout` seconds.
    """
    try:
        value = await asyncio.wait_for(store.fetch_value("SELECT 1"), timeout=timeout)
    except BACKEND_ERRORS as exc:
        logger.warning("db_ping_failed error=%r", exc)
        return False
    return value == 1


def get_store(request: Request) -> StoreConnection:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection is not initialized.",
        )
    return store


def get_ingest_settings(request: Request) -> IngestSettings:
    settings = getattr(request.app.state, "ingest_settings", None)
    if settings is None:
        # Lifespan not run (e.g. app mounted without startup): read env once.
        settings = IngestSettings.from_env()
        request.app.state.ingest_settings = settings
    return settings
