# =============================================================================
# File: inviter/common/exceptions/projection_exceptions.py
# Description: Exceptions raised by the item store and projection machinery
# =============================================================================

from __future__ import annotations

from typing import List, Optional

from inviter.common.exceptions.exceptions import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)


class ItemNotFoundError(NotFoundError):
    """Raised when a keyed record does not exist in the store."""

    def __init__(self, pk: str, sk: str, message: Optional[str] = None):
        self.pk = pk
        self.sk = sk
        super().__init__(message or f"Item not found: {pk} / {sk}")


class PointerNotFoundError(NotFoundError):
    """
    Raised when a projection is synced before it was created.

    The sync path never creates projections: the association must have
    been written by a structural operation first.
    """

    def __init__(self, group_id: str, entity_id: str, item_type: str):
        self.group_id = group_id
        self.entity_id = entity_id
        self.item_type = item_type
        super().__init__(f"{item_type} for {entity_id} not found in group {group_id}")


class ConditionalCheckFailedError(ConflictError):
    """Raised when a conditional single-item write is rejected."""

    def __init__(self, pk: str, sk: str, reason: str):
        self.pk = pk
        self.sk = sk
        self.reason = reason
        super().__init__(f"Condition failed for {pk} / {sk}: {reason}")


class TransactionCanceledError(ConflictError):
    """
    Raised when a multi-item transaction is rejected.

    ``reasons`` holds one entry per submitted intent, in submission order;
    ``None`` marks intents that were not the cause. Nothing was persisted.
    """

    def __init__(self, reasons: List[Optional[str]], description: str = "transaction"):
        self.reasons = reasons
        self.description = description
        failed = [f"#{i}: {r}" for i, r in enumerate(reasons) if r]
        super().__init__(f"{description} cancelled ({', '.join(failed) or 'unknown reason'})")

    @property
    def failed_indexes(self) -> List[int]:
        return [i for i, r in enumerate(self.reasons) if r]


class ConcurrencyExhaustedError(ConflictError):
    """Raised when a version-checked retry loop runs out of attempts."""

    def __init__(self, target: str, attempts: int, reason: str = ""):
        self.target = target
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Gave up on {target} after {attempts} attempts ({reason})")


class TransactionTooLargeError(InfrastructureError):
    """Raised when a batch exceeds the transactional item limit."""

    def __init__(self, item_count: int, limit: int):
        self.item_count = item_count
        self.limit = limit
        super().__init__(f"Transaction has {item_count} items, limit is {limit}")


class PartialBulkWriteError(InfrastructureError):
    """
    Raised when a chunked bulk write fails part way through.

    Chunks before ``chunks_applied`` are committed; the failing chunk and
    everything after it are not. Re-running the bulk operation is safe.
    """

    def __init__(self, chunks_applied: int, total_chunks: int, items_applied: int, cause: Exception):
        self.chunks_applied = chunks_applied
        self.total_chunks = total_chunks
        self.items_applied = items_applied
        self.cause = cause
        super().__init__(
            f"Bulk write stopped after {chunks_applied}/{total_chunks} chunks "
            f"({items_applied} items applied): {cause}"
        )


class DuplicateIntentError(ValidationError):
    """Raised when the same key is written twice in one transaction batch."""

    def __init__(self, pk: str, sk: str):
        self.pk = pk
        self.sk = sk
        super().__init__(f"Key {pk} / {sk} already present in batch")


class InvalidPaginationTokenError(ValidationError):
    """Raised when a feed cursor cannot be decoded or does not fit the request."""
    pass
