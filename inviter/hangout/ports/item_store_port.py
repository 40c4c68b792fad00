# =============================================================================
# File: inviter/hangout/ports/item_store_port.py
# Description: Port interface for the partitioned item store
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable


class TimeWindow(str, Enum):
    """Time-windowed query shapes over a partition"""
    FUTURE = "future"            # start > anchor, ascending by start
    IN_PROGRESS = "in_progress"  # start <= anchor <= end, ascending by start
    PAST = "past"                # end < anchor, descending by end


@dataclass(frozen=True)
class WriteCondition:
    """
    Precondition attached to a write.

    ``expected_version`` requires the stored row to exist with exactly that
    version. ``must_exist`` / ``must_not_exist`` check presence only.
    """
    expected_version: Optional[int] = None
    must_exist: bool = False
    must_not_exist: bool = False

    @classmethod
    def versioned(cls, version: int) -> "WriteCondition":
        return cls(expected_version=version)

    @classmethod
    def new(cls) -> "WriteCondition":
        return cls(must_not_exist=True)

    @classmethod
    def existing(cls) -> "WriteCondition":
        return cls(must_exist=True)

    def check(self, stored: Optional[Dict[str, Any]]) -> Optional[str]:
        """Return a failure reason for ``stored`` (None means the condition holds)."""
        if self.must_not_exist and stored is not None:
            return "item already exists"
        if (self.must_exist or self.expected_version is not None) and stored is None:
            return "item does not exist"
        if self.expected_version is not None and stored.get("version") != self.expected_version:
            return f"version mismatch (expected {self.expected_version}, found {stored.get('version')})"
        return None


@dataclass(frozen=True)
class PutIntent:
    item: Dict[str, Any]
    condition: Optional[WriteCondition] = None

    @property
    def key(self) -> Tuple[str, str]:
        return self.item["pk"], self.item["sk"]


@dataclass(frozen=True)
class DeleteIntent:
    pk: str
    sk: str
    condition: Optional[WriteCondition] = None

    @property
    def key(self) -> Tuple[str, str]:
        return self.pk, self.sk


@dataclass(frozen=True)
class CounterIntent:
    pk: str
    sk: str
    field: str
    delta: int

    @property
    def key(self) -> Tuple[str, str]:
        return self.pk, self.sk


@dataclass(frozen=True)
class ConditionCheckIntent:
    pk: str
    sk: str
    condition: WriteCondition

    @property
    def key(self) -> Tuple[str, str]:
        return self.pk, self.sk


WriteIntent = Union[PutIntent, DeleteIntent, CounterIntent, ConditionCheckIntent]


@dataclass(frozen=True)
class ContinuationKey:
    """Position inside a time-windowed query: the last row already returned."""
    partition_key: str
    timestamp: int
    entity_id: str


@dataclass
class ItemPage:
    items: List[Dict[str, Any]]
    next_key: Optional[ContinuationKey] = None

    @property
    def has_more(self) -> bool:
        return self.next_key is not None


def window_bounds(item: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """
    Start and end used for windowing a row.

    A row without an end timestamp ends when it starts.
    """
    start = item.get("start_timestamp")
    end = item.get("end_timestamp")
    if end is None:
        end = start
    return start, end


@runtime_checkable
class ItemStorePort(Protocol):
    """
    Port: Partitioned Item Store

    Defined by: Hangout Domain
    Implemented by: PgItemStore (inviter/infra/persistence/pg_item_store.py)

    Holds canonical records, per-group projections and child records in one
    keyed table. Rows are plain JSON-compatible dicts carrying ``pk``, ``sk``,
    ``item_type`` and ``version``.

    Version rule: a successful write to an existing row stores
    ``stored version + 1``; a write that creates a row keeps the row's own
    version (1 for new rows).

    Categories:
    - Point reads and conditional writes (5 methods)
    - Transactions (1 method)
    - Queries (3 methods)
    """

    # =========================================================================
    # Point operations
    # =========================================================================

    async def get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        """Strongly consistent point read. None when absent."""
        ...

    async def put_item(self, item: Dict[str, Any], condition: Optional[WriteCondition] = None) -> Dict[str, Any]:
        """
        Write a full row.

        Raises:
            ConditionalCheckFailedError: ``condition`` does not hold.

        Returns:
            The row as stored (with its resulting version).
        """
        ...

    async def delete_item(self, pk: str, sk: str, condition: Optional[WriteCondition] = None) -> None:
        """Delete a row. Deleting an absent row without a condition is a no-op."""
        ...

    async def add_to_counter(self, pk: str, sk: str, field: str, delta: int) -> int:
        """
        Atomically ``field = coalesce(field, 0) + delta`` without a read step.

        Also advances the row version so concurrent read-modify-write cycles
        notice the change.

        Raises:
            ItemNotFoundError: the row does not exist.

        Returns:
            The new counter value.
        """
        ...

    async def set_fields(self, pk: str, sk: str, fields: Dict[str, Any]) -> None:
        """
        Unconditionally overwrite top-level fields of an existing row.

        Raises:
            ItemNotFoundError: the row does not exist.
        """
        ...

    # =========================================================================
    # Transactions
    # =========================================================================

    async def transact_write(self, intents: Sequence[WriteIntent]) -> None:
        """
        Apply all intents atomically.

        Raises:
            TransactionTooLargeError: more intents than ``max_transaction_items``.
            TransactionCanceledError: any condition failed; nothing persisted.
        """
        ...

    @property
    def max_transaction_items(self) -> int:
        ...

    # =========================================================================
    # Queries
    # =========================================================================

    async def query_partition(self, pk: str, sk_prefix: str = "") -> List[Dict[str, Any]]:
        """All rows of a partition whose sort key starts with ``sk_prefix``, by sort key."""
        ...

    async def query_time_window(
            self,
            pk: str,
            window: TimeWindow,
            anchor: int,
            limit: int,
            after: Optional[ContinuationKey] = None,
            item_types: Sequence[str] = (),
    ) -> ItemPage:
        """
        One page of a time window, in the window's native order.

        Rows are ordered by ``(start, entity_id)`` ascending for FUTURE and
        IN_PROGRESS, and ``(end, entity_id)`` descending for PAST, with
        bounds taken from :func:`window_bounds`. ``after`` continues strictly
        past the given position. ``next_key`` is set only when more rows exist.
        """
        ...

    async def query_unscheduled(
            self,
            pk: str,
            item_types: Sequence[str] = (),
            limit: int = 100,
            after: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Rows of a partition without a start timestamp, by entity id.

        ``after`` continues strictly past the given entity id. Callers that
        need to know whether rows remain ask for one more than they show.
        """
        ...
