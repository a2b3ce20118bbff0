"""Pytest configuration for the location API test suite."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

API_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(API_ROOT))

from core.db import StoreConnection  # noqa: E402

_ENV_VARS = (
    "DATABASE_URL",
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
    "DB_CONNECT_MAX_ATTEMPTS",
    "DB_CONNECT_BACKOFF_S",
    "LOCATION_INSERT_TIMEOUT_S",
    "LOCATION_REJECT_ZERO_COORDINATES",
)


class FakePool:
    """In-memory stand-in for asyncpg.Pool recording every statement."""

    def __init__(
        self,
        *,
        insert_error: BaseException | None = None,
        execute_error: BaseException | None = None,
        ping_error: BaseException | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.insert_error = insert_error
        self.execute_error = execute_error
        self.ping_error = ping_error
        self.delay_s = delay_s
        self.rows: list[dict[str, Any]] = []
        self.executed: list[str] = []
        self.cancelled = False
        self.closed = False

    async def fetchrow(self, sql: str, *args: Any, timeout: float | None = None) -> dict[str, Any] | None:
        if self.delay_s:
            try:
                await asyncio.sleep(self.delay_s)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.insert_error is not None:
            raise self.insert_error
        user_id, latitude, longitude = args
        row = {
            "id": len(self.rows) + 1,
            "user_id": user_id,
            "latitude": latitude,
            "longitude": longitude,
            "created_at": datetime.now(timezone.utc),
        }
        self.rows.append(row)
        return {"id": row["id"], "created_at": row["created_at"]}

    async def fetchval(self, sql: str, *args: Any, timeout: float | None = None) -> Any:
        if self.ping_error is not None:
            raise self.ping_error
        return 1

    async def execute(self, sql: str, *args: Any, timeout: float | None = None) -> str:
        if self.execute_error is not None:
            raise self.execute_error
        self.executed.append(sql)
        return "CREATE TABLE"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


@pytest.fixture
def store(pool: FakePool) -> StoreConnection:
    return StoreConnection(pool)
