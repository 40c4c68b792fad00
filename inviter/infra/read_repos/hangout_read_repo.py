# =============================================================================
# File: inviter/infra/read_repos/hangout_read_repo.py
# Description: Typed reads of canonical records, pointers and child records
# =============================================================================

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from inviter.config.logging_config import get_logger
from inviter.hangout import keys
from inviter.hangout.exceptions import (
    HangoutNotFoundError,
    ReservationOfferNotFoundError,
    SeriesNotFoundError,
)
from inviter.hangout.items import (
    BaseItem,
    EventSeries,
    Group,
    GroupMembership,
    Hangout,
    HangoutAttribute,
    HangoutPointer,
    InterestLevel,
    Participation,
    Poll,
    PollOption,
    ReservationOffer,
    SeriesPointer,
    Vote,
    parse_as,
    parse_item,
)
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.series_transactions import HangoutSnapshot, SeriesSnapshot

log = get_logger("inviter.hangout.read_repo")


class HangoutReadRepo:
    """
    Read repository for the hangout domain.

    Every read is a strongly consistent point read or partition scan on the
    item store; snapshots built here are what structural operations pin
    their preconditions to.
    """

    def __init__(self, store: ItemStorePort):
        self._store = store

    # =========================================================================
    # Canonical records
    # =========================================================================

    async def find_hangout(self, hangout_id: str) -> Optional[Hangout]:
        raw = await self._store.get_item(keys.event_pk(hangout_id), keys.metadata_sk())
        return parse_as(raw, Hangout) if raw else None

    async def get_hangout(self, hangout_id: str) -> Hangout:
        hangout = await self.find_hangout(hangout_id)
        if hangout is None:
            raise HangoutNotFoundError(hangout_id)
        return hangout

    async def find_series(self, series_id: str) -> Optional[EventSeries]:
        raw = await self._store.get_item(keys.series_pk(series_id), keys.metadata_sk())
        return parse_as(raw, EventSeries) if raw else None

    async def get_series(self, series_id: str) -> EventSeries:
        series = await self.find_series(series_id)
        if series is None:
            raise SeriesNotFoundError(series_id)
        return series

    async def find_group(self, group_id: str) -> Optional[Group]:
        raw = await self._store.get_item(keys.group_pk(group_id), keys.metadata_sk())
        return parse_as(raw, Group) if raw else None

    async def get_membership(self, group_id: str, user_id: str) -> Optional[GroupMembership]:
        raw = await self._store.get_item(keys.group_pk(group_id), keys.membership_sk(user_id))
        return parse_as(raw, GroupMembership) if raw else None

    # =========================================================================
    # Projections
    # =========================================================================

    async def find_hangout_pointer(self, group_id: str, hangout_id: str) -> Optional[HangoutPointer]:
        raw = await self._store.get_item(keys.group_pk(group_id), keys.hangout_pointer_sk(hangout_id))
        return parse_as(raw, HangoutPointer) if raw else None

    async def find_series_pointer(self, group_id: str, series_id: str) -> Optional[SeriesPointer]:
        raw = await self._store.get_item(keys.group_pk(group_id), keys.series_pointer_sk(series_id))
        return parse_as(raw, SeriesPointer) if raw else None

    async def hangout_pointers(self, hangout: Hangout) -> Dict[str, HangoutPointer]:
        """Existing pointers of ``hangout``, by group id."""
        pointers: Dict[str, HangoutPointer] = {}
        for group_id in hangout.associated_groups:
            pointer = await self.find_hangout_pointer(group_id, hangout.hangout_id)
            if pointer is None:
                log.warning(f"Hangout {hangout.hangout_id} has no pointer in associated group {group_id}")
                continue
            pointers[group_id] = pointer
        return pointers

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def hangout_snapshot(self, hangout: Hangout) -> HangoutSnapshot:
        return HangoutSnapshot(hangout=hangout, pointers=await self.hangout_pointers(hangout))

    async def series_snapshot(self, series: EventSeries) -> SeriesSnapshot:
        """Series record, its member hangouts and its pointer in every member group."""
        members: Dict[str, Hangout] = {}
        for hangout_id in series.hangout_ids:
            member = await self.find_hangout(hangout_id)
            if member is None:
                log.warning(f"Series {series.series_id} lists missing hangout {hangout_id}")
                continue
            members[hangout_id] = member

        group_ids: Set[str] = {g for m in members.values() for g in m.associated_groups}
        if series.group_id:
            group_ids.add(series.group_id)

        pointers: Dict[str, SeriesPointer] = {}
        for group_id in sorted(group_ids):
            pointer = await self.find_series_pointer(group_id, series.series_id)
            if pointer is not None:
                pointers[group_id] = pointer
        return SeriesSnapshot(series=series, pointers=pointers, members=members)

    async def member_snapshots(self, snapshot: SeriesSnapshot) -> List[HangoutSnapshot]:
        return [await self.hangout_snapshot(member) for member in snapshot.members.values()]

    # =========================================================================
    # Child records
    # =========================================================================

    async def _children(self, hangout_id: str, sk_prefix: str) -> List[BaseItem]:
        rows = await self._store.query_partition(keys.event_pk(hangout_id), sk_prefix)
        return [parse_item(row) for row in rows]

    async def list_interest_levels(self, hangout_id: str) -> List[InterestLevel]:
        return [i for i in await self._children(hangout_id, keys.ATTENDANCE_SK_PREFIX) if isinstance(i, InterestLevel)]

    async def find_interest_level(self, hangout_id: str, user_id: str) -> Optional[InterestLevel]:
        raw = await self._store.get_item(keys.event_pk(hangout_id), keys.attendance_sk(user_id))
        return parse_as(raw, InterestLevel) if raw else None

    async def list_poll_records(self, hangout_id: str, poll_id: Optional[str] = None) -> List[BaseItem]:
        """Polls, options and votes, optionally of a single poll."""
        prefix = keys.poll_sk(poll_id) if poll_id else keys.POLL_SK_PREFIX
        return [i for i in await self._children(hangout_id, prefix) if isinstance(i, (Poll, PollOption, Vote))]

    async def list_attributes(self, hangout_id: str) -> List[HangoutAttribute]:
        return [a for a in await self._children(hangout_id, keys.ATTRIBUTE_SK_PREFIX) if isinstance(a, HangoutAttribute)]

    async def list_participations(self, hangout_id: str) -> List[Participation]:
        return [
            p for p in await self._children(hangout_id, keys.PARTICIPATION_SK_PREFIX)
            if isinstance(p, Participation)
        ]

    async def list_reservation_offers(self, hangout_id: str) -> List[ReservationOffer]:
        return [
            o for o in await self._children(hangout_id, keys.RESERVE_OFFER_SK_PREFIX)
            if isinstance(o, ReservationOffer)
        ]

    async def get_reservation_offer(self, hangout_id: str, offer_id: str) -> ReservationOffer:
        raw = await self._store.get_item(keys.event_pk(hangout_id), keys.reservation_offer_sk(offer_id))
        if raw is None:
            raise ReservationOfferNotFoundError(hangout_id, offer_id)
        return parse_as(raw, ReservationOffer)

    async def list_child_records(self, hangout_ids: Iterable[str]) -> List[BaseItem]:
        """Every row in the hangouts' partitions except their canonical records."""
        children: List[BaseItem] = []
        for hangout_id in hangout_ids:
            rows = await self._store.query_partition(keys.event_pk(hangout_id))
            children.extend(parse_item(row) for row in rows if row["sk"] != keys.metadata_sk())
        return children
