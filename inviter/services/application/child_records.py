# =============================================================================
# File: inviter/services/application/child_records.py
# Description: Chunked cleanup of child records left by deleted hangouts
# =============================================================================

from __future__ import annotations

from typing import Iterable, Optional

from inviter.common.exceptions.projection_exceptions import PartialBulkWriteError
from inviter.config.logging_config import get_logger
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.transaction_batch import ChunkedSubmitReport, TransactionBatch
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo

log = get_logger("inviter.services.child_records")


async def purge_child_records(
        store: ItemStorePort,
        hangout_ids: Iterable[str],
        chunk_size: int,
        read_repo: Optional[HangoutReadRepo] = None,
) -> Optional[ChunkedSubmitReport]:
    """
    Delete interest levels, polls, attributes, offers and participations of
    already deleted hangouts.

    Deletes are unconditional, so re-running after a partial failure only
    removes what is left. A failed chunk is logged and the report of what
    was applied is returned.
    """
    hangout_ids = list(hangout_ids)
    repo = read_repo or HangoutReadRepo(store)
    children = await repo.list_child_records(hangout_ids)
    if not children:
        return None

    batch = TransactionBatch(f"purge child records of {len(hangout_ids)} hangouts")
    for child in children:
        batch.delete_item(child, versioned=False)

    try:
        return await batch.submit_chunked(store, chunk_size)
    except PartialBulkWriteError as e:
        log.warning(f"Child record purge incomplete for hangouts {hangout_ids}: {e}; re-run to finish")
        return ChunkedSubmitReport(
            description=batch.description,
            total_intents=len(batch),
            chunk_size=chunk_size,
            chunks_applied=e.chunks_applied,
            items_applied=e.items_applied,
        )
