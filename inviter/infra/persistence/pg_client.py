# =============================================================================
# File: inviter/infra/persistence/pg_client.py
# =============================================================================
# AsyncPG pool helper for the item store, with retry on transient
# connection failures and a ContextVar-scoped transaction connection.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, List, Optional

import asyncpg
from asyncpg.exceptions import CannotConnectNowError, ConnectionDoesNotExistError, TooManyConnectionsError
from dotenv import load_dotenv

from inviter.config.pg_client_config import get_postgres_config, PostgresConfig
from inviter.config.reliability_config import ReliabilityConfigs, RetryConfig
from inviter.infra.reliability.retry import retry_async

load_dotenv()

log = logging.getLogger("inviter.infra.pg_client")

# Connection of the transaction opened by transaction() in the current task
_current_transaction_connection: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
    'transaction_connection', default=None
)

_POOL: Optional[asyncpg.Pool] = None
_POOL_LOCK = asyncio.Lock()
_CONFIG: Optional[PostgresConfig] = None

_TRANSIENT_ERRORS = (
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
    ConnectionDoesNotExistError,
    CannotConnectNowError,
    TooManyConnectionsError,
)


def get_config() -> PostgresConfig:
    """Get current database configuration"""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = get_postgres_config()
    return _CONFIG


def _retry_config() -> RetryConfig:
    base = ReliabilityConfigs.postgres_retry()
    return base.model_copy(update={
        "max_attempts": get_config().connection_retry_attempts,
        "initial_delay_ms": get_config().connection_retry_delay_ms,
        "retry_condition": lambda e: isinstance(e, _TRANSIENT_ERRORS),
    })


# =============================================================================
# Pool lifecycle
# =============================================================================

async def init_db_pool(dsn: Optional[str] = None) -> asyncpg.Pool:
    """Initialize the global asyncpg pool. Idempotent."""
    global _POOL

    config = get_config()

    async with _POOL_LOCK:
        if _POOL is not None and not _POOL.is_closing():
            return _POOL

        dsn = dsn or config.get_dsn()
        if not dsn:
            raise RuntimeError("PostgreSQL DSN is not configured (set PG_DSN)")

        async def init_connection(conn):
            """JSONB codec for automatic dict<->JSONB conversion"""
            await conn.set_type_codec(
                'jsonb',
                encoder=json.dumps,
                decoder=json.loads,
                schema='pg_catalog'
            )
            for command in config.init_commands:
                await conn.execute(command)

        async def create_pool():
            pool = await asyncpg.create_pool(dsn=dsn, init=init_connection, **config.pool_kwargs())
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return pool

        log.info(f"Initializing PostgreSQL pool (hidden DSN): {dsn.split('@')[-1]}")

        try:
            _POOL = await retry_async(
                create_pool,
                retry_config=_retry_config(),
                context="PostgreSQL pool initialization"
            )
        except Exception as e:
            log.critical(f"Failed to init PostgreSQL pool: {e}", exc_info=True)
            _POOL = None
            raise RuntimeError(f"PostgreSQL pool init error: {e}") from e

        log.info(f"PostgreSQL pool ready. Min/Max size: {config.pool_min_size}/{config.pool_max_size}")

    if config.run_schemas_on_startup:
        await run_schema_from_file(config.schema_file)

    return _POOL


async def get_pool(ensure_initialized: bool = True) -> asyncpg.Pool:
    """Get the global pool, init if needed (default)."""
    if _POOL is None or _POOL.is_closing():
        if not ensure_initialized:
            raise RuntimeError("PostgreSQL pool not available")
        return await init_db_pool()
    return _POOL


async def close_db_pool() -> None:
    """Close the global pool gracefully."""
    global _POOL

    async with _POOL_LOCK:
        pool, _POOL = _POOL, None
        if pool and not pool.is_closing():
            log.info("Closing PostgreSQL pool...")
            await pool.close()
            log.info("PostgreSQL pool closed.")


@asynccontextmanager
async def acquire_connection() -> AsyncIterator[asyncpg.Connection]:
    """Acquire a connection from the pool (or reuse the current transaction's)."""
    transaction_conn = _current_transaction_connection.get()
    if transaction_conn is not None:
        yield transaction_conn
        return

    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


# =============================================================================
# Query helpers
# =============================================================================

async def _run(method: str, query: str, *args: Any, timeout: Optional[float] = None) -> Any:
    started = time.monotonic()

    async def _operation():
        async with acquire_connection() as conn:
            return await getattr(conn, method)(query, *args, timeout=timeout)

    if _current_transaction_connection.get() is not None:
        # No retry inside a transaction: the transaction itself must be retried
        result = await _operation()
    else:
        result = await retry_async(_operation, retry_config=_retry_config(), context=f"{method.upper()} {query[:50]}...")

    elapsed_ms = (time.monotonic() - started) * 1000
    if elapsed_ms > get_config().slow_query_threshold_ms:
        log.warning(f"[SLOW QUERY] {method.upper()} took {elapsed_ms:.1f}ms: {query[:150]}...")
    return result


async def fetch(query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
    """Execute the query and return all rows."""
    return await _run("fetch", query, *args, timeout=timeout)


async def fetchrow(query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
    """Execute the query and return the first row."""
    return await _run("fetchrow", query, *args, timeout=timeout)


async def fetchval(query: str, *args: Any, timeout: Optional[float] = None) -> Any:
    """Execute the query and return a single value."""
    return await _run("fetchval", query, *args, timeout=timeout)


async def execute(query: str, *args: Any, timeout: Optional[float] = None) -> str:
    """Execute the statement and return its status string."""
    return await _run("execute", query, *args, timeout=timeout)


@asynccontextmanager
async def transaction(timeout: Optional[float] = None) -> AsyncIterator[asyncpg.Connection]:
    """
    Transaction context manager.

    Commits on successful exit and rolls back on exception. While open, the
    module-level helpers above run on the transaction's connection.

    Usage:
        async with transaction() as conn:
            await conn.execute("INSERT INTO ...")
    """
    pool = await get_pool()
    conn = await retry_async(
        pool.acquire,
        timeout=timeout,
        retry_config=_retry_config(),
        context="transaction connection acquisition"
    )
    token = _current_transaction_connection.set(conn)
    try:
        async with conn.transaction():
            yield conn
    finally:
        _current_transaction_connection.reset(token)
        await pool.release(conn)


async def run_schema_from_file(file_path_str: str) -> None:
    """Execute DDL statements from a SQL file."""
    path = pathlib.Path(file_path_str)
    if not path.is_file():
        raise FileNotFoundError(f"Schema file not found: {file_path_str}")

    sql = path.read_text(encoding="utf-8").strip()
    if not sql:
        log.warning(f"Schema file {file_path_str} is empty")
        return

    await execute(sql)
    log.info(f"Schema from {file_path_str} applied successfully")

