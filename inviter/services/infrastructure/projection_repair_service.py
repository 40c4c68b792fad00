# =============================================================================
# File: inviter/services/infrastructure/projection_repair_service.py
# Description: Recompute group projections from canonical data (drift repair)
# =============================================================================
"""
Projection Repair Service.

Projections are caches: each one can be rebuilt from the canonical hangout
(or series) plus the hangout's child records. Repair does exactly that and
overwrites the stored projection without a version condition; the store
still advances the version, so concurrent sync cycles that read the old
row are rejected and retry against the repaired one.

Used by reconciliation jobs and after a best-effort sync gave up.
"""

from __future__ import annotations

from typing import List, Optional

from inviter.config.logging_config import get_logger
from inviter.hangout import keys
from inviter.hangout.items import HangoutPointer, SeriesPointer, dump_item, parse_as
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.pointer_factory import (
    attribute_entries,
    build_hangout_pointer,
    build_series_pointer,
    interest_entries,
    participant_count,
    participation_summary,
    poll_summaries,
)
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo

log = get_logger("inviter.services.projection_repair")


class ProjectionRepairService:
    """Unconditional recomputation of hangout and series pointers."""

    def __init__(self, store: ItemStorePort, read_repo: Optional[HangoutReadRepo] = None):
        self._store = store
        self._repo = read_repo or HangoutReadRepo(store)

    async def resync_hangout_pointer(self, group_id: str, hangout_id: str) -> Optional[HangoutPointer]:
        """
        Rebuild the pointer of ``hangout_id`` in ``group_id``.

        A pointer left behind in a group the hangout is no longer associated
        with is deleted and None is returned. When the hangout belongs to a
        series the group's series pointer is rebuilt afterwards.
        """
        hangout = await self._repo.get_hangout(hangout_id)
        previous = await self._repo.find_hangout_pointer(group_id, hangout_id)

        if group_id not in hangout.associated_groups:
            if previous is not None:
                log.info(f"Removing stale pointer of hangout {hangout_id} from group {group_id}")
                await self._store.delete_item(previous.pk, previous.sk)
            return None

        levels = await self._repo.list_interest_levels(hangout_id)
        poll_records = await self._repo.list_poll_records(hangout_id)
        attributes = await self._repo.list_attributes(hangout_id)
        participations = await self._repo.list_participations(hangout_id)
        offers = await self._repo.list_reservation_offers(hangout_id)

        pointer = build_hangout_pointer(hangout, group_id, previous)
        pointer.interest_levels = interest_entries(levels)
        pointer.participant_count = participant_count(levels)
        pointer.polls = poll_summaries(poll_records)
        pointer.attributes = attribute_entries(attributes)
        pointer.participation_summary = participation_summary(participations, offers, levels)
        if previous is not None:
            pointer.created_at = previous.created_at

        stored = parse_as(await self._store.put_item(dump_item(pointer)), HangoutPointer)

        before = previous.participant_count if previous else None
        if before != stored.participant_count:
            log.info(
                f"Repaired hangout {hangout_id} in group {group_id}: participant_count "
                f"{before} -> {stored.participant_count}, {len(stored.interest_levels)} interest levels, "
                f"{len(stored.polls)} polls"
            )
        else:
            log.debug(f"Resynced hangout {hangout_id} in group {group_id} (v{stored.version}), no count drift")

        if hangout.series_id:
            await self.resync_series_pointer(group_id, hangout.series_id)
        return stored

    async def resync_series_pointer(self, group_id: str, series_id: str) -> Optional[SeriesPointer]:
        """
        Rebuild the series pointer of ``group_id`` from the members' current
        pointers in that group. With no member pointers left the series
        pointer is deleted.
        """
        series = await self._repo.get_series(series_id)
        previous = await self._repo.find_series_pointer(group_id, series_id)

        parts: List[HangoutPointer] = []
        for hangout_id in series.hangout_ids:
            part = await self._repo.find_hangout_pointer(group_id, hangout_id)
            if part is not None:
                parts.append(part)

        if not parts:
            if previous is not None:
                log.info(f"Series {series_id} has no members in group {group_id}; removing its pointer")
                await self._store.delete_item(keys.group_pk(group_id), keys.series_pointer_sk(series_id))
            return None

        pointer = build_series_pointer(series, group_id, parts)
        if previous is not None:
            pointer.created_at = previous.created_at
        stored = parse_as(await self._store.put_item(dump_item(pointer)), SeriesPointer)

        before = previous.part_ids() if previous else []
        if before != stored.part_ids():
            log.info(f"Repaired series {series_id} in group {group_id}: parts {len(before)} -> {len(stored.parts)}")
        return stored

    async def resync_hangout_everywhere(self, hangout_id: str) -> List[str]:
        """Rebuild the hangout's pointer in every associated group; returns the groups written."""
        hangout = await self._repo.get_hangout(hangout_id)
        repaired = []
        for group_id in hangout.associated_groups:
            if await self.resync_hangout_pointer(group_id, hangout_id) is not None:
                repaired.append(group_id)
        return repaired
