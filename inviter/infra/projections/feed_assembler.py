# =============================================================================
# File: inviter/infra/projections/feed_assembler.py
# Description: Time-windowed, paginated group feeds built from projections
# =============================================================================
"""
Feed Assembler.

Forward pages cover "now and later": the IN_PROGRESS and FUTURE windows are
queried concurrently with the same continuation, merged, sorted by
``(start, entity id)`` and cut to the batch size. Since every in-progress
row starts no later than every future row, the merged order is the order of
a single query over both windows, so consecutive pages neither skip nor
repeat rows. The first forward page also lists unscheduled rows
(no start timestamp) separately as ``needs_day``; when there are more than
``feed_unscheduled_limit`` of them ``needs_day_cursor`` continues the list
through :meth:`FeedAssembler.assemble_unscheduled`.

``limit`` counts feed entries, not rows. Series members are stored as rows
of their own but shown only inside their series, so a page keeps querying
from the last row it consumed until it holds ``limit`` entries or the
windows run out. Member rows that trail the last entry are consumed into
the page as well, so a next-page token always leads to at least one entry.

Backward pages walk the PAST window newest first. The first one starts from
the synthetic token ``(None, now, backward)`` that every forward page
offers as its previous-page token.

Raw rows are collapsed by two-pass hydration: pass one collects the ids of
hangouts embedded in series pointers, pass two emits one summary per
series pointer and one per standalone hangout pointer not collected.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from inviter.common.exceptions.projection_exceptions import InvalidPaginationTokenError
from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout import keys
from inviter.hangout.enums import FEED_ITEM_TYPES, FeedDirection, ItemType
from inviter.hangout.items import HangoutPointer, SeriesPointer, parse_item
from inviter.hangout.ports.item_store_port import ContinuationKey, ItemStorePort, TimeWindow, window_bounds
from inviter.hangout.read_models import GroupFeed, HangoutSummary, SeriesSummary
from inviter.infra.projections.pagination_token import FeedPaginationToken

log = get_logger("inviter.projections.feed")

_FEED_TYPES = tuple(t.value for t in FEED_ITEM_TYPES)

Row = Dict[str, Any]
# One store round trip: the rows in feed order and whether more follow them
Batch = Tuple[List[Row], bool]


def _start_key(item: Row) -> Tuple[int, str]:
    return item["start_timestamp"], item["entity_id"]


def _starts_entry(row: Row, in_series: Set[str]) -> bool:
    """Whether ``row`` becomes an entry of its own, given the series seen so far."""
    item_type = row.get("item_type")
    if item_type == ItemType.SERIES_POINTER.value:
        parts = [part["hangout_id"] for part in row.get("parts") or []]
        in_series.update(parts or row.get("hangout_ids") or [])
        return True
    if item_type == ItemType.HANGOUT_POINTER.value:
        return not row.get("series_id") and row["hangout_id"] not in in_series
    return False


def hydrate(rows: Sequence[Row]) -> List[Any]:
    """
    Collapse raw projection rows into feed entries, preserving row order.

    A hangout pointer is emitted on its own only when no series pointer in
    ``rows`` embeds it and it does not belong to a series; series members
    are shown through their series summary.
    """
    pointers = [parse_item(row) for row in rows]

    # Pass one: every hangout embedded in a series on this page
    in_series: Set[str] = set()
    for pointer in pointers:
        if isinstance(pointer, SeriesPointer):
            in_series.update(pointer.part_ids())

    # Pass two
    entries: List[Any] = []
    for pointer in pointers:
        if isinstance(pointer, SeriesPointer):
            entries.append(SeriesSummary.from_pointer(pointer))
        elif isinstance(pointer, HangoutPointer):
            if pointer.hangout_id in in_series or pointer.series_id:
                continue
            entries.append(HangoutSummary.from_pointer(pointer))
    return entries


async def _fill_page(
        fetch: Callable[[Any], Awaitable[Batch]],
        position: Callable[[Row], Any],
        after: Any,
        limit: int,
) -> Tuple[List[Row], Any, int]:
    """
    Consume rows until they hydrate to ``limit`` entries.

    ``fetch(after)`` returns the next batch strictly past ``after``;
    ``position(row)`` is the continuation that resumes after ``row``.
    Returns the consumed rows, the continuation of the next page (None when
    no entry is left) and the number of round trips made.
    """
    rows: List[Row] = []
    in_series: Set[str] = set()
    produced = 0
    round_trips = 0

    while True:
        batch, more = await fetch(after)
        round_trips += 1
        for row in batch:
            starts_entry = _starts_entry(row, in_series)
            if starts_entry and produced == limit:
                return rows, position(rows[-1]), round_trips
            rows.append(row)
            if starts_entry:
                produced += 1
        if not more or not batch:
            return rows, None, round_trips
        after = position(rows[-1])


class FeedAssembler:
    """Builds :class:`GroupFeed` pages for one group partition."""

    def __init__(self, store: ItemStorePort, config: Optional[ProjectionConfig] = None):
        self._store = store
        self._config = config or get_projection_config()

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._config.feed_default_limit
        return max(1, min(limit, self._config.feed_max_limit))

    async def assemble_feed(
            self,
            group_id: str,
            now: int,
            limit: Optional[int] = None,
            cursor: Optional[str] = None,
            direction: FeedDirection = FeedDirection.FORWARD,
    ) -> GroupFeed:
        """
        One feed page for ``group_id``.

        Raises:
            InvalidPaginationTokenError: ``cursor`` is malformed or points the other way.
        """
        direction = FeedDirection(direction)
        token = FeedPaginationToken.decode(cursor) if cursor else None
        if token is not None and token.direction is not direction:
            raise InvalidPaginationTokenError(
                f"Token direction {token.direction.value} does not match requested {direction.value}"
            )

        pk = keys.group_pk(group_id)
        limit = self._clamp_limit(limit)

        if direction is FeedDirection.FORWARD:
            return await self._forward_page(group_id, pk, now, limit, token)
        return await self._backward_page(group_id, pk, now, limit, token)

    async def assemble_unscheduled(
            self,
            group_id: str,
            limit: Optional[int] = None,
            after: Optional[str] = None,
    ) -> GroupFeed:
        """Continue the ``needs_day`` list of ``group_id`` past entity id ``after``."""
        cap = self._config.feed_unscheduled_limit
        limit = cap if limit is None else max(1, min(limit, cap))
        rows, cursor = await self._unscheduled(keys.group_pk(group_id), limit, after)
        feed = GroupFeed(group_id=group_id, needs_day=hydrate(rows), needs_day_cursor=cursor)
        log.debug(
            f"Unscheduled feed for group {group_id} after {after}: {len(rows)} rows -> "
            f"{len(feed.needs_day)} entries, more={cursor is not None}"
        )
        return feed

    # =========================================================================
    # Forward: in progress + future
    # =========================================================================

    async def _forward_page(
            self,
            group_id: str,
            pk: str,
            now: int,
            limit: int,
            token: Optional[FeedPaginationToken],
    ) -> GroupFeed:
        after = token.to_continuation_key(pk) if token else None

        async def fetch(position: Optional[ContinuationKey]) -> Batch:
            in_progress, future = await asyncio.gather(
                self._store.query_time_window(pk, TimeWindow.IN_PROGRESS, now, limit, position, _FEED_TYPES),
                self._store.query_time_window(pk, TimeWindow.FUTURE, now, limit, position, _FEED_TYPES),
            )
            merged = sorted(in_progress.items + future.items, key=_start_key)
            return merged[:limit], len(merged) > limit or in_progress.has_more or future.has_more

        def resume_after(row: Row) -> ContinuationKey:
            return ContinuationKey(partition_key=pk, timestamp=row["start_timestamp"], entity_id=row["entity_id"])

        # Either query failing fails the page
        if after is None:
            (rows, next_key, round_trips), (unscheduled, needs_day_cursor) = await asyncio.gather(
                _fill_page(fetch, resume_after, None, limit),
                self._unscheduled(pk, self._config.feed_unscheduled_limit, None),
            )
        else:
            rows, next_key, round_trips = await _fill_page(fetch, resume_after, after, limit)
            unscheduled, needs_day_cursor = [], None

        next_token = None
        if next_key is not None:
            next_token = FeedPaginationToken.from_continuation(next_key, FeedDirection.FORWARD).encode()

        feed = GroupFeed(
            group_id=group_id,
            items=hydrate(rows),
            needs_day=hydrate(unscheduled),
            needs_day_cursor=needs_day_cursor,
            next_page_token=next_token,
            previous_page_token=FeedPaginationToken.window_start(now, FeedDirection.BACKWARD).encode(),
        )
        log.debug(
            f"Forward feed for group {group_id}: {len(rows)} rows in {round_trips} round trips -> "
            f"{len(feed.items)} entries, {len(feed.needs_day)} unscheduled, more={next_token is not None}"
        )
        if needs_day_cursor is not None:
            log.info(
                f"Group {group_id} has more than {self._config.feed_unscheduled_limit} unscheduled entries; "
                f"needs_day continues after {needs_day_cursor}"
            )
        return feed

    async def _unscheduled(self, pk: str, limit: int, after: Optional[str]) -> Tuple[List[Row], Optional[str]]:
        async def fetch(position: Optional[str]) -> Batch:
            batch = await self._store.query_unscheduled(pk, _FEED_TYPES, limit + 1, position)
            return batch[:limit], len(batch) > limit

        rows, cursor, _ = await _fill_page(fetch, lambda row: row["entity_id"], after, limit)
        return rows, cursor

    # =========================================================================
    # Backward: past
    # =========================================================================

    async def _backward_page(
            self,
            group_id: str,
            pk: str,
            now: int,
            limit: int,
            token: Optional[FeedPaginationToken],
    ) -> GroupFeed:
        if token is None or token.is_window_start:
            anchor = token.timestamp if token else now
            after = None
        else:
            anchor = now
            after = token.to_continuation_key(pk)

        async def fetch(position: Optional[ContinuationKey]) -> Batch:
            page = await self._store.query_time_window(pk, TimeWindow.PAST, anchor, limit, position, _FEED_TYPES)
            return page.items, page.has_more

        def resume_after(row: Row) -> ContinuationKey:
            return ContinuationKey(partition_key=pk, timestamp=window_bounds(row)[1], entity_id=row["entity_id"])

        rows, next_key, round_trips = await _fill_page(fetch, resume_after, after, limit)

        previous_token = None
        if next_key is not None:
            previous_token = FeedPaginationToken.from_continuation(next_key, FeedDirection.BACKWARD).encode()

        feed = GroupFeed(
            group_id=group_id,
            items=hydrate(rows),
            previous_page_token=previous_token,
        )
        log.debug(
            f"Backward feed for group {group_id}: {len(rows)} rows in {round_trips} round trips -> "
            f"{len(feed.items)} entries, more={previous_token is not None}"
        )
        return feed
