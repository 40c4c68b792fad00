# =============================================================================
# File: inviter/infra/persistence/pg_item_store.py
# Description: ItemStorePort implementation on a single PostgreSQL table
# =============================================================================
"""
PostgreSQL-backed item store.

Rows live in one table keyed by ``(pk, sk)`` with the item body in a JSONB
column. The version column is authoritative; window bounds and entity id
are denormalised into columns so time-window queries run on keyset
indexes (see ``inviter/database/inviter_items.sql``).

Conditional writes lock the target row with ``SELECT ... FOR UPDATE``
inside a transaction; creating writes use ``INSERT ... ON CONFLICT DO
NOTHING`` so two concurrent creators cannot both succeed. Multi-item
transactions lock every key in sorted order, evaluate all conditions, and
only then apply the intents, so a failing condition rolls back everything.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import asyncpg

from inviter.common.exceptions.exceptions import RepositoryError
from inviter.common.exceptions.projection_exceptions import (
    ConditionalCheckFailedError,
    ItemNotFoundError,
    TransactionCanceledError,
    TransactionTooLargeError,
)
from inviter.config.logging_config import get_logger
from inviter.config.pg_client_config import get_postgres_config
from inviter.config.projection_config import get_projection_config
from inviter.hangout.ports.item_store_port import (
    ConditionCheckIntent,
    ContinuationKey,
    CounterIntent,
    DeleteIntent,
    ItemPage,
    PutIntent,
    TimeWindow,
    WriteCondition,
    WriteIntent,
    window_bounds,
)
from inviter.infra.persistence import pg_client

log = get_logger("inviter.infra.pg_item_store")


def _row_to_item(row: asyncpg.Record) -> Dict[str, Any]:
    item = dict(row["data"])
    item["version"] = row["version"]
    return item


def _type_filter(item_types: Sequence[str]) -> Optional[List[str]]:
    return [getattr(t, "value", t) for t in item_types] or None


class PgItemStore:
    """
    Item store over asyncpg.

    All module-level pg_client helpers are used, so an outer
    ``pg_client.transaction()`` is honoured by single-item calls.
    """

    def __init__(self, table: Optional[str] = None, max_transaction_items: Optional[int] = None):
        self._table = table or get_postgres_config().items_table
        self._max_transaction_items = max_transaction_items or get_projection_config().transaction_item_limit

    @property
    def max_transaction_items(self) -> int:
        return self._max_transaction_items

    # =========================================================================
    # Internals
    # =========================================================================

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except asyncpg.PostgresError as e:
            log.error(f"Item store {operation} failed: {e}")
            raise RepositoryError(f"Item store {operation} failed: {e}") from e

    async def _lock_row(self, conn: asyncpg.Connection, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        row = await conn.fetchrow(
            f"SELECT data, version FROM {self._table} WHERE pk = $1 AND sk = $2 FOR UPDATE",
            pk, sk,
        )
        return _row_to_item(row) if row else None

    async def _insert_row(self, conn: asyncpg.Connection, item: Dict[str, Any]) -> bool:
        """Insert a new row; False when the key already exists."""
        version = item.get("version") or 1
        start, end = window_bounds(item)
        status = await conn.execute(
            f"""
            INSERT INTO {self._table} (pk, sk, item_type, entity_id, start_ts, end_ts, version, data, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, now())
            ON CONFLICT (pk, sk) DO NOTHING
            """,
            item["pk"], item["sk"], item["item_type"], str(item.get("entity_id") or item["sk"]),
            start, end, version, {**item, "version": version},
        )
        return status.endswith(" 1")

    async def _replace_row(self, conn: asyncpg.Connection, item: Dict[str, Any], version: int) -> None:
        start, end = window_bounds(item)
        await conn.execute(
            f"""
            UPDATE {self._table}
               SET item_type = $3, entity_id = $4, start_ts = $5, end_ts = $6,
                   version = $7, data = $8, updated_at = now()
             WHERE pk = $1 AND sk = $2
            """,
            item["pk"], item["sk"], item["item_type"], str(item.get("entity_id") or item["sk"]),
            start, end, version, {**item, "version": version},
        )

    async def _write(
            self,
            conn: asyncpg.Connection,
            item: Dict[str, Any],
            stored: Optional[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        """Write ``item`` over ``stored``; None if a concurrent creator won."""
        if stored is None:
            written = {**item, "version": item.get("version") or 1}
            return written if await self._insert_row(conn, written) else None
        version = stored["version"] + 1
        await self._replace_row(conn, item, version)
        return {**item, "version": version}

    async def _add(self, conn: asyncpg.Connection, pk: str, sk: str, field: str, delta: int) -> Optional[int]:
        return await conn.fetchval(
            f"""
            UPDATE {self._table}
               SET data = jsonb_set(data, ARRAY[$3::text],
                                    to_jsonb(COALESCE((data ->> $3)::bigint, 0) + $4::bigint)),
                   version = version + 1,
                   updated_at = now()
             WHERE pk = $1 AND sk = $2
            RETURNING (data ->> $3)::bigint
            """,
            pk, sk, field, delta,
        )

    # =========================================================================
    # Point operations
    # =========================================================================

    async def get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        async with self._translate_errors("get_item"):
            row = await pg_client.fetchrow(
                f"SELECT data, version FROM {self._table} WHERE pk = $1 AND sk = $2",
                pk, sk,
            )
        return _row_to_item(row) if row else None

    async def put_item(self, item: Dict[str, Any], condition: Optional[WriteCondition] = None) -> Dict[str, Any]:
        pk, sk = item["pk"], item["sk"]
        async with self._translate_errors("put_item"):
            async with pg_client.transaction() as conn:
                stored = await self._lock_row(conn, pk, sk)
                reason = condition.check(stored) if condition else None
                if reason:
                    raise ConditionalCheckFailedError(pk, sk, reason)
                written = await self._write(conn, item, stored)
                if written is None:
                    raise ConditionalCheckFailedError(pk, sk, "item created concurrently")
                return written

    async def delete_item(self, pk: str, sk: str, condition: Optional[WriteCondition] = None) -> None:
        async with self._translate_errors("delete_item"):
            async with pg_client.transaction() as conn:
                if condition:
                    stored = await self._lock_row(conn, pk, sk)
                    reason = condition.check(stored)
                    if reason:
                        raise ConditionalCheckFailedError(pk, sk, reason)
                await conn.execute(f"DELETE FROM {self._table} WHERE pk = $1 AND sk = $2", pk, sk)

    async def add_to_counter(self, pk: str, sk: str, field: str, delta: int) -> int:
        async with self._translate_errors("add_to_counter"):
            async with pg_client.acquire_connection() as conn:
                value = await self._add(conn, pk, sk, field, delta)
        if value is None:
            raise ItemNotFoundError(pk, sk)
        return value

    async def set_fields(self, pk: str, sk: str, fields: Dict[str, Any]) -> None:
        async with self._translate_errors("set_fields"):
            async with pg_client.transaction() as conn:
                stored = await self._lock_row(conn, pk, sk)
                if stored is None:
                    raise ItemNotFoundError(pk, sk)
                await self._write(conn, {**stored, **fields}, stored)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def transact_write(self, intents: Sequence[WriteIntent]) -> None:
        if not intents:
            return
        if len(intents) > self._max_transaction_items:
            raise TransactionTooLargeError(len(intents), self._max_transaction_items)

        async with self._translate_errors("transact_write"):
            async with pg_client.transaction() as conn:
                stored: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}
                for key in sorted({intent.key for intent in intents}):
                    stored[key] = await self._lock_row(conn, *key)

                reasons: List[Optional[str]] = [self._precheck(intent, stored[intent.key]) for intent in intents]
                if any(reasons):
                    raise TransactionCanceledError(reasons)

                for index, intent in enumerate(intents):
                    reason = await self._apply(conn, intent, stored[intent.key])
                    if reason:
                        reasons[index] = reason
                        raise TransactionCanceledError(reasons)

    @staticmethod
    def _precheck(intent: WriteIntent, stored: Optional[Dict[str, Any]]) -> Optional[str]:
        if isinstance(intent, CounterIntent):
            return "item does not exist" if stored is None else None
        if intent.condition is None:
            return None
        return intent.condition.check(stored)

    async def _apply(
            self,
            conn: asyncpg.Connection,
            intent: WriteIntent,
            stored: Optional[Dict[str, Any]],
    ) -> Optional[str]:
        if isinstance(intent, PutIntent):
            if await self._write(conn, intent.item, stored) is None:
                return "item created concurrently"
        elif isinstance(intent, DeleteIntent):
            await conn.execute(f"DELETE FROM {self._table} WHERE pk = $1 AND sk = $2", intent.pk, intent.sk)
        elif isinstance(intent, CounterIntent):
            await self._add(conn, intent.pk, intent.sk, intent.field, intent.delta)
        elif isinstance(intent, ConditionCheckIntent):
            pass
        else:
            raise TypeError(f"Unsupported write intent: {intent!r}")
        return None

    # =========================================================================
    # Queries
    # =========================================================================

    async def query_partition(self, pk: str, sk_prefix: str = "") -> List[Dict[str, Any]]:
        async with self._translate_errors("query_partition"):
            rows = await pg_client.fetch(
                f"""
                SELECT data, version FROM {self._table}
                 WHERE pk = $1 AND starts_with(sk, $2)
                 ORDER BY sk
                """,
                pk, sk_prefix,
            )
        return [_row_to_item(r) for r in rows]

    async def query_time_window(
            self,
            pk: str,
            window: TimeWindow,
            anchor: int,
            limit: int,
            after: Optional[ContinuationKey] = None,
            item_types: Sequence[str] = (),
    ) -> ItemPage:
        params: List[Any] = [pk, anchor, _type_filter(item_types)]
        clauses = ["pk = $1", "($3::text[] IS NULL OR item_type = ANY($3::text[]))"]

        if window is TimeWindow.FUTURE:
            clauses.append("start_ts > $2")
            position, order = "(start_ts, entity_id) > ($4, $5)", "start_ts ASC, entity_id ASC"
        elif window is TimeWindow.IN_PROGRESS:
            clauses.append("start_ts <= $2 AND end_ts >= $2")
            position, order = "(start_ts, entity_id) > ($4, $5)", "start_ts ASC, entity_id ASC"
        else:
            clauses.append("end_ts < $2")
            position, order = "(end_ts, entity_id) < ($4, $5)", "end_ts DESC, entity_id DESC"

        if after is not None:
            clauses.append(position)
            params.extend([after.timestamp, after.entity_id])

        params.append(limit + 1)
        query = (
            f"SELECT data, version, start_ts, end_ts, entity_id FROM {self._table} "
            f"WHERE {' AND '.join(clauses)} ORDER BY {order} LIMIT ${len(params)}"
        )

        async with self._translate_errors("query_time_window"):
            rows = await pg_client.fetch(query, *params)

        next_key = None
        if len(rows) > limit:
            rows = rows[:limit]
            last = rows[-1]
            timestamp = last["end_ts"] if window is TimeWindow.PAST else last["start_ts"]
            next_key = ContinuationKey(partition_key=pk, timestamp=timestamp, entity_id=last["entity_id"])

        return ItemPage(items=[_row_to_item(r) for r in rows], next_key=next_key)

    async def query_unscheduled(
            self,
            pk: str,
            item_types: Sequence[str] = (),
            limit: int = 100,
            after: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        async with self._translate_errors("query_unscheduled"):
            rows = await pg_client.fetch(
                f"""
                SELECT data, version FROM {self._table}
                 WHERE pk = $1 AND start_ts IS NULL
                   AND ($2::text[] IS NULL OR item_type = ANY($2::text[]))
                   AND ($4::text IS NULL OR entity_id > $4::text)
                 ORDER BY entity_id
                 LIMIT $3
                """,
                pk, _type_filter(item_types), limit, after,
            )
        return [_row_to_item(r) for r in rows]
