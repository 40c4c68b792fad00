# =============================================================================
# File: inviter/infra/projections/series_transactions.py
# Description: Atomic structural operations on hangouts and event series
# =============================================================================
"""
Structural Transaction Coordinator.

Each operation turns snapshots read by the caller into one
:class:`TransactionBatch` touching the canonical records, their group
pointers and the series pointers together. Preconditions pin every record
to the state it was built from:

* new records must not exist yet;
* rewritten and deleted records must still be at the version read.

A stale snapshot therefore cancels the whole batch and nothing is
persisted. The caller rebuilds the snapshots and tries again.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from inviter.config.logging_config import get_logger
from inviter.hangout.exceptions import HangoutAlreadyInSeriesError, HangoutNotInSeriesError
from inviter.hangout.items import BaseItem, EventSeries, Hangout, HangoutPointer, SeriesPointer
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.pointer_factory import (
    apply_hangout_fields,
    apply_series_fields,
    build_hangout_pointer,
    build_series_pointer,
    remove_part,
    replace_part,
    series_bounds,
)
from inviter.infra.projections.transaction_batch import TransactionBatch

log = get_logger("inviter.projections.transactions")


@dataclass
class HangoutSnapshot:
    """A hangout canonical record and its pointers, keyed by group id"""
    hangout: Hangout
    pointers: Dict[str, HangoutPointer] = field(default_factory=dict)


@dataclass
class SeriesSnapshot:
    """A series canonical record, its pointers by group and its member hangouts"""
    series: EventSeries
    pointers: Dict[str, SeriesPointer] = field(default_factory=dict)
    members: Dict[str, Hangout] = field(default_factory=dict)


def _next_version(item: BaseItem, previous: BaseItem) -> None:
    # Embedded copies carry the version the store will assign
    item.version = previous.version + 1


class SeriesTransactionCoordinator:
    """Fixed catalogue of all-or-nothing hangout and series lifecycle writes."""

    def __init__(self, store: ItemStorePort):
        self._store = store

    # =========================================================================
    # Standalone hangouts
    # =========================================================================

    async def create_standalone_hangout(self, hangout: Hangout) -> List[HangoutPointer]:
        """Hangout canonical record plus one pointer per associated group."""
        batch = TransactionBatch(f"create hangout {hangout.hangout_id}")
        batch.put_new(hangout)
        pointers = [build_hangout_pointer(hangout, group_id) for group_id in hangout.associated_groups]
        for pointer in pointers:
            batch.put_new(pointer)
        await batch.submit(self._store)
        return pointers

    async def delete_standalone_hangout(self, snapshot: HangoutSnapshot) -> None:
        """Hangout canonical record and all of its pointers."""
        batch = TransactionBatch(f"delete hangout {snapshot.hangout.hangout_id}")
        batch.delete_item(snapshot.hangout)
        for pointer in snapshot.pointers.values():
            batch.delete_item(pointer)
        await batch.submit(self._store)

    # =========================================================================
    # Series membership
    # =========================================================================

    async def promote_to_series(
            self,
            series: EventSeries,
            existing: HangoutSnapshot,
            new_member: Hangout,
    ) -> EventSeries:
        """
        Turn a standalone hangout into a two-part series.

        Writes the new series record, the new member and its pointers, the
        existing hangout and its pointers with the series attached, and one
        series pointer per group holding that group's member pointers.
        """
        if existing.hangout.series_id:
            raise HangoutAlreadyInSeriesError(existing.hangout.hangout_id, existing.hangout.series_id)

        series = series.model_copy(deep=True)
        batch = TransactionBatch(f"promote hangout {existing.hangout.hangout_id} to series {series.series_id}")
        parts: Dict[str, List[HangoutPointer]] = defaultdict(list)

        anchor = existing.hangout.model_copy(deep=True)
        anchor.series_id = series.series_id
        batch.put_versioned(anchor, existing.hangout.version)
        for group_id in anchor.associated_groups:
            previous = existing.pointers.get(group_id)
            pointer = build_hangout_pointer(anchor, group_id, previous)
            if previous is not None:
                _next_version(pointer, previous)
                batch.put_versioned(pointer, previous.version)
            else:
                batch.put_new(pointer)
            parts[group_id].append(pointer)

        member = new_member.model_copy(deep=True)
        member.series_id = series.series_id
        batch.put_new(member)
        for group_id in member.associated_groups:
            pointer = build_hangout_pointer(member, group_id)
            batch.put_new(pointer)
            parts[group_id].append(pointer)

        series.hangout_ids = [anchor.hangout_id, member.hangout_id]
        series.primary_event_id = series.primary_event_id or anchor.hangout_id
        series.group_id = series.group_id or (anchor.associated_groups[0] if anchor.associated_groups else None)
        series.start_timestamp, series.end_timestamp = series_bounds([anchor, member])
        batch.put_new(series)

        for group_id, group_parts in parts.items():
            batch.put_new(build_series_pointer(series, group_id, group_parts))

        await batch.submit(self._store)
        return series

    async def add_member_to_series(self, snapshot: SeriesSnapshot, new_member: Hangout) -> EventSeries:
        """New member record and pointers plus the extended series record and pointers."""
        series = snapshot.series.model_copy(deep=True)
        batch = TransactionBatch(f"add hangout {new_member.hangout_id} to series {series.series_id}")

        member = new_member.model_copy(deep=True)
        member.series_id = series.series_id
        batch.put_new(member)
        new_pointers: Dict[str, HangoutPointer] = {}
        for group_id in member.associated_groups:
            new_pointers[group_id] = build_hangout_pointer(member, group_id)
            batch.put_new(new_pointers[group_id])

        series.hangout_ids = [*series.hangout_ids, member.hangout_id]
        series.start_timestamp, series.end_timestamp = series_bounds([*snapshot.members.values(), member])
        batch.put_versioned(series, snapshot.series.version)

        for group_id, pointer in new_pointers.items():
            previous = snapshot.pointers.get(group_id)
            if previous is None:
                batch.put_new(build_series_pointer(series, group_id, [pointer]))
                continue
            series_pointer = apply_series_fields(previous.model_copy(deep=True), series)
            replace_part(series_pointer, pointer)
            _next_version(series_pointer, previous)
            batch.put_versioned(series_pointer, previous.version)

        await batch.submit(self._store)
        return series

    async def unlink_member(self, snapshot: SeriesSnapshot, member: HangoutSnapshot) -> Optional[EventSeries]:
        """
        Detach a hangout from its series and keep it as a standalone hangout.

        When it was the last member the series record and pointers are
        deleted instead of leaving an empty series. Returns the updated
        series, or None when it was removed.
        """
        hangout_id = member.hangout.hangout_id
        batch = TransactionBatch(f"unlink hangout {hangout_id} from series {snapshot.series.series_id}")
        updated = self._plan_member_exit(batch, snapshot, hangout_id)

        standalone = member.hangout.model_copy(deep=True)
        standalone.series_id = None
        batch.put_versioned(standalone, member.hangout.version)
        for pointer in member.pointers.values():
            detached = pointer.model_copy(deep=True)
            detached.series_id = None
            _next_version(detached, pointer)
            batch.put_versioned(detached, pointer.version)

        await batch.submit(self._store)
        return updated

    async def remove_member(self, snapshot: SeriesSnapshot, member: HangoutSnapshot) -> Optional[EventSeries]:
        """
        Delete a member hangout together with its pointers.

        Removing the last member also deletes the series record and its
        pointers, in the same transaction.
        """
        hangout_id = member.hangout.hangout_id
        batch = TransactionBatch(f"remove hangout {hangout_id} from series {snapshot.series.series_id}")
        updated = self._plan_member_exit(batch, snapshot, hangout_id)

        batch.delete_item(member.hangout)
        for pointer in member.pointers.values():
            batch.delete_item(pointer)

        await batch.submit(self._store)
        return updated

    async def delete_entire_series(self, snapshot: SeriesSnapshot, members: List[HangoutSnapshot]) -> None:
        """Series record and pointers plus every member record and pointer, atomically."""
        batch = TransactionBatch(f"delete series {snapshot.series.series_id}")
        batch.delete_item(snapshot.series)
        for series_pointer in snapshot.pointers.values():
            batch.delete_item(series_pointer)
        for member in members:
            batch.delete_item(member.hangout)
            for pointer in member.pointers.values():
                batch.delete_item(pointer)
        await batch.submit(self._store)

    async def update_member(
            self,
            snapshot: SeriesSnapshot,
            previous: HangoutSnapshot,
            updated_hangout: Hangout,
    ) -> EventSeries:
        """
        Rewrite a member hangout whose schedule changed, with its pointers,
        the series bounds and the embedded parts, in one transaction.
        """
        hangout_id = updated_hangout.hangout_id
        if hangout_id not in snapshot.series.hangout_ids:
            raise HangoutNotInSeriesError(hangout_id, snapshot.series.series_id)

        batch = TransactionBatch(f"update hangout {hangout_id} in series {snapshot.series.series_id}")
        batch.put_versioned(updated_hangout, previous.hangout.version)

        new_pointers: Dict[str, HangoutPointer] = {}
        for group_id, pointer in previous.pointers.items():
            refreshed = apply_hangout_fields(pointer.model_copy(deep=True), updated_hangout)
            _next_version(refreshed, pointer)
            batch.put_versioned(refreshed, pointer.version)
            new_pointers[group_id] = refreshed

        series = snapshot.series.model_copy(deep=True)
        members = {**snapshot.members, hangout_id: updated_hangout}
        series.start_timestamp, series.end_timestamp = series_bounds(members.values())
        batch.put_versioned(series, snapshot.series.version)

        for group_id, series_pointer in snapshot.pointers.items():
            if group_id not in new_pointers:
                continue
            refreshed_series = series_pointer.model_copy(deep=True)
            replace_part(refreshed_series, new_pointers[group_id])
            _next_version(refreshed_series, series_pointer)
            batch.put_versioned(refreshed_series, series_pointer.version)

        await batch.submit(self._store)
        return series

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _plan_member_exit(batch: TransactionBatch, snapshot: SeriesSnapshot, hangout_id: str) -> Optional[EventSeries]:
        series = snapshot.series
        if hangout_id not in series.hangout_ids:
            raise HangoutNotInSeriesError(hangout_id, series.series_id)

        remaining = [h for h in series.hangout_ids if h != hangout_id]
        if not remaining:
            log.info(f"Hangout {hangout_id} is the last member of series {series.series_id}; deleting series")
            batch.delete_item(series)
            for series_pointer in snapshot.pointers.values():
                batch.delete_item(series_pointer)
            return None

        updated = series.model_copy(deep=True)
        updated.hangout_ids = remaining
        if updated.primary_event_id == hangout_id:
            updated.primary_event_id = remaining[0]
        updated.start_timestamp, updated.end_timestamp = series_bounds(
            m for member_id, m in snapshot.members.items() if member_id in remaining
        )
        batch.put_versioned(updated, series.version)

        for series_pointer in snapshot.pointers.values():
            if hangout_id not in series_pointer.part_ids():
                continue
            shrunk = remove_part(series_pointer.model_copy(deep=True), hangout_id)
            if not shrunk.parts:
                batch.delete_item(series_pointer)
                continue
            apply_series_fields(shrunk, updated)
            _next_version(shrunk, series_pointer)
            batch.put_versioned(shrunk, series_pointer.version)

        return updated
