# =============================================================================
# File: inviter/services/infrastructure/group_timestamp_signaler.py
# Description: ChangeSignalPort that bumps each group's cache-invalidation marker
# =============================================================================

from __future__ import annotations

from typing import Iterable

from inviter.common.exceptions.projection_exceptions import ItemNotFoundError
from inviter.config.logging_config import get_logger
from inviter.hangout import keys
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.utils.datetime_utils import epoch_millis

log = get_logger("inviter.services.change_signals")


class GroupTimestampSignaler:
    """
    Sets ``last_hangout_modified`` (epoch ms) on the group canonical record.

    Clients compare the marker with their cached copy to decide whether to
    refetch the feed. Missing groups are skipped.
    """

    def __init__(self, store: ItemStorePort):
        self._store = store

    async def partitions_changed(self, group_ids: Iterable[str], reason: str) -> None:
        marker = epoch_millis()
        for group_id in sorted(set(group_ids)):
            try:
                await self._store.set_fields(
                    keys.group_pk(group_id), keys.metadata_sk(), {"last_hangout_modified": marker}
                )
            except ItemNotFoundError:
                log.warning(f"Group {group_id} not found while signalling change ({reason})")
                continue
            log.debug(f"Group {group_id} marked modified at {marker} ({reason})")
