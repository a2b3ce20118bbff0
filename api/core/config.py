"""
Environment-driven settings.

Defaults match the docker-compose stack (`db` service, `geochat` database).
Bad numeric values fall back to the default instead of failing startup.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

DEFAULT_DB_HOST = "db"
DEFAULT_DB_PORT = 5432
DEFAULT_DB_USER = "postgres"
DEFAULT_DB_PASSWORD = "postgres"
DEFAULT_DB_NAME = "geochat"


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def _sanitize_database_url(url: str) -> str:
    # asyncpg rejects some libpq-only params (sslmode) in the DSN query.
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass(frozen=True)
class StoreSettings:
    host: str = DEFAULT_DB_HOST
    port: int = DEFAULT_DB_PORT
    user: str = DEFAULT_DB_USER
    password: str = DEFAULT_DB_PASSWORD
    database: str = DEFAULT_DB_NAME
    url: str | None = None
    connect_timeout_s: float = 5.0
    pool_min_size: int = 1
    pool_max_size: int = 5
    command_timeout_s: float = 30.0

    @classmethod
    def from_env(cls) -> StoreSettings:
        url = os.environ.get("DATABASE_URL", "").strip()
        return cls(
            host=_env_str("DB_HOST", DEFAULT_DB_HOST),
            port=_env_int("DB_PORT", DEFAULT_DB_PORT),
            user=_env_str("DB_USER", DEFAULT_DB_USER),
            password=_env_str("DB_PASSWORD", DEFAULT_DB_PASSWORD),
            database=_env_str("DB_NAME", DEFAULT_DB_NAME),
            url=_sanitize_database_url(url) if url else None,
            connect_timeout_s=_env_float("DB_CONNECT_TIMEOUT_S", 5.0),
            pool_min_size=_env_int("DB_POOL_MIN_SIZE", 1),
            pool_max_size=_env_int("DB_POOL_MAX_SIZE", 5),
            command_timeout_s=_env_float("DB_COMMAND_TIMEOUT_S", 30.0),
        )

    def dsn(self) -> str:
        if self.url:
            return self.url
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{self.database}"

    def redacted_target(self) -> str:
        """
        host:port/db for log lines (never includes credentials).
        """
        if self.url:
            parts = urlsplit(self.url)
            return f"{parts.hostname}:{parts.port or DEFAULT_DB_PORT}{parts.path}"
        return f"{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded connect retry with a fixed pause between attempts.

    `sleep` is injectable so tests can run the loop without real delays.
    """

    max_attempts: int = 5
    backoff_s: float = 3.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    @classmethod
    def from_env(cls) -> RetryPolicy:
        max_attempts = _env_int("DB_CONNECT_MAX_ATTEMPTS", 5)
        backoff_s = _env_float("DB_CONNECT_BACKOFF_S", 3.0)
        return cls(
            max_attempts=max_attempts if max_attempts > 0 else 5,
            backoff_s=backoff_s if backoff_s >= 0 else 3.0,
        )


@dataclass(frozen=True)
class IngestSettings:
    insert_timeout_s: float = 5.0
    # Treat 0.0 as "missing" (original client contract). Turn off to accept
    # points on the equator / prime meridian.
    reject_zero_coordinates: bool = True

    @classmethod
    def from_env(cls) -> IngestSettings:
        timeout_s = _env_float("LOCATION_INSERT_TIMEOUT_S", 5.0)
        return cls(
            insert_timeout_s=timeout_s if timeout_s > 0 else 5.0,
            reject_zero_coordinates=_env_bool("LOCATION_REJECT_ZERO_COORDINATES", True),
        )


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()
