# =============================================================================
# File: inviter/infra/projections/transaction_batch.py
# Description: Builder for all-or-nothing multi-item writes
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from inviter.common.exceptions.exceptions import InfrastructureError
from inviter.common.exceptions.projection_exceptions import (
    DuplicateIntentError,
    PartialBulkWriteError,
    TransactionCanceledError,
    TransactionTooLargeError,
)
from inviter.config.logging_config import get_logger
from inviter.hangout.items import BaseItem, dump_item
from inviter.hangout.ports.item_store_port import (
    ConditionCheckIntent,
    CounterIntent,
    DeleteIntent,
    ItemStorePort,
    PutIntent,
    WriteCondition,
    WriteIntent,
)

log = get_logger("inviter.projections.transactions")


@dataclass
class ChunkedSubmitReport:
    """Outcome of a chunked bulk write"""
    description: str
    total_intents: int
    chunk_size: int
    chunks_applied: int = 0
    items_applied: int = 0

    @property
    def total_chunks(self) -> int:
        if self.total_intents == 0:
            return 0
        return (self.total_intents + self.chunk_size - 1) // self.chunk_size


class TransactionBatch:
    """
    Accumulates typed write intents and submits them as one transaction.

    Each key may appear once per batch. ``submit`` is atomic and refuses
    batches above the store's item limit; ``submit_chunked`` splits a bulk
    write into independently atomic sub-batches.

    Usage:
        batch = TransactionBatch("promote to series")
        batch.put_new(series).put_versioned(hangout, observed_version)
        await batch.submit(store)
    """

    def __init__(self, description: str = "transaction"):
        self.description = description
        self._intents: List[WriteIntent] = []
        self._keys: Set[Tuple[str, str]] = set()

    def __len__(self) -> int:
        return len(self._intents)

    @property
    def intents(self) -> List[WriteIntent]:
        return list(self._intents)

    def _add(self, intent: WriteIntent) -> "TransactionBatch":
        if intent.key in self._keys:
            raise DuplicateIntentError(*intent.key)
        self._keys.add(intent.key)
        self._intents.append(intent)
        return self

    # =========================================================================
    # Intents
    # =========================================================================

    def put(self, item: Union[BaseItem, Dict[str, Any]], condition: Optional[WriteCondition] = None) -> "TransactionBatch":
        if isinstance(item, BaseItem):
            item.touch()
            item = dump_item(item)
        return self._add(PutIntent(item=item, condition=condition))

    def put_new(self, item: BaseItem) -> "TransactionBatch":
        """Create ``item``; cancels the batch if the key already exists."""
        return self.put(item, WriteCondition.new())

    def put_versioned(self, item: BaseItem, expected_version: int) -> "TransactionBatch":
        """Replace ``item``; cancels the batch unless the stored version is ``expected_version``."""
        return self.put(item, WriteCondition.versioned(expected_version))

    def delete(self, pk: str, sk: str, expected_version: Optional[int] = None) -> "TransactionBatch":
        condition = WriteCondition.versioned(expected_version) if expected_version is not None else None
        return self._add(DeleteIntent(pk=pk, sk=sk, condition=condition))

    def delete_item(self, item: BaseItem, versioned: bool = True) -> "TransactionBatch":
        """Delete ``item``, by default only if it is still at the version read."""
        return self.delete(item.pk, item.sk, item.version if versioned else None)

    def adjust(self, pk: str, sk: str, field: str, delta: int) -> "TransactionBatch":
        return self._add(CounterIntent(pk=pk, sk=sk, field=field, delta=delta))

    def check(self, pk: str, sk: str, condition: WriteCondition) -> "TransactionBatch":
        return self._add(ConditionCheckIntent(pk=pk, sk=sk, condition=condition))

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(self, store: ItemStorePort) -> None:
        """
        Commit every intent or none.

        Raises:
            TransactionTooLargeError: the batch exceeds the store's limit.
            TransactionCanceledError: a precondition failed; rebuild from fresh reads.
        """
        if not self._intents:
            return
        if len(self._intents) > store.max_transaction_items:
            raise TransactionTooLargeError(len(self._intents), store.max_transaction_items)

        try:
            await store.transact_write(self._intents)
        except TransactionCanceledError as e:
            e.description = self.description
            log.info(f"{self.description} cancelled ({len(self._intents)} items): {e}")
            raise

        log.info(f"{self.description} committed ({len(self._intents)} items)")

    async def submit_chunked(self, store: ItemStorePort, chunk_size: int) -> ChunkedSubmitReport:
        """
        Commit the intents in sequential sub-batches of ``chunk_size``.

        Each chunk is atomic on its own. If a chunk fails, earlier chunks
        stay committed and :class:`PartialBulkWriteError` reports how far the
        write got; the caller re-runs the bulk operation to resume.
        """
        chunk_size = min(chunk_size, store.max_transaction_items)
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        report = ChunkedSubmitReport(
            description=self.description,
            total_intents=len(self._intents),
            chunk_size=chunk_size,
        )

        for start in range(0, len(self._intents), chunk_size):
            chunk = self._intents[start:start + chunk_size]
            try:
                await store.transact_write(chunk)
            except (TransactionCanceledError, InfrastructureError) as e:
                log.warning(
                    f"{self.description}: chunk {report.chunks_applied + 1}/{report.total_chunks} failed "
                    f"after {report.items_applied} items applied: {e}"
                )
                raise PartialBulkWriteError(
                    chunks_applied=report.chunks_applied,
                    total_chunks=report.total_chunks,
                    items_applied=report.items_applied,
                    cause=e,
                ) from e
            report.chunks_applied += 1
            report.items_applied += len(chunk)

        log.info(
            f"{self.description} committed in {report.chunks_applied} chunks ({report.items_applied} items)"
        )
        return report
