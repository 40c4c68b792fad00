# =============================================================================
# File: tests/unit/test_consistency_scenarios.py
# Description: End-to-end scenarios across coordinator, counters and feed
# =============================================================================

import asyncio

from inviter.hangout import keys
from inviter.hangout.items import EventSeries
from inviter.hangout.read_models import HangoutSummary, SeriesSummary
from inviter.infra.projections.counter_updater import AtomicCounterUpdater
from inviter.infra.projections.feed_assembler import FeedAssembler

from tests.fakes.builders import make_hangout, new_id

NOW = 1_000


async def test_series_and_standalone_hangout_make_two_feed_entries(store, repo, coordinator, config, group_id):
    first = make_hangout([group_id], start=NOW + 100)
    await coordinator.create_standalone_hangout(first)
    second = make_hangout([group_id], start=NOW + 200)
    series = await coordinator.promote_to_series(
        EventSeries(series_id=new_id(), series_title="Trivia nights"), await repo.hangout_snapshot(first), second,
    )
    loose = make_hangout([group_id], start=NOW + 300)
    await coordinator.create_standalone_hangout(loose)

    feed = await FeedAssembler(store, config).assemble_feed(group_id, NOW)

    assert len(feed.items) == 2
    series_entry, hangout_entry = feed.items
    assert isinstance(series_entry, SeriesSummary)
    assert series_entry.series_id == series.series_id
    assert [p.hangout_id for p in series_entry.parts] == [first.hangout_id, second.hangout_id]
    assert isinstance(hangout_entry, HangoutSummary)
    assert hangout_entry.hangout_id == loose.hangout_id


async def test_removing_last_member_clears_everything_in_one_transaction(store, repo, coordinator, group_id):
    first = make_hangout([group_id], start=NOW + 100)
    await coordinator.create_standalone_hangout(first)
    second = make_hangout([group_id], start=NOW + 200)
    series = await coordinator.promote_to_series(
        EventSeries(series_id=new_id(), series_title="Runs"), await repo.hangout_snapshot(first), second,
    )
    await coordinator.remove_member(
        await repo.series_snapshot(series), await repo.hangout_snapshot(await repo.find_hangout(first.hangout_id)),
    )

    remaining = await repo.find_series(series.series_id)
    assert remaining.hangout_ids == [second.hangout_id]
    transactions_before = store.get_call_count("transact_write")

    await coordinator.remove_member(
        await repo.series_snapshot(remaining),
        await repo.hangout_snapshot(await repo.find_hangout(second.hangout_id)),
    )

    assert store.get_call_count("transact_write") == transactions_before + 1
    assert await repo.find_series(series.series_id) is None
    assert await repo.find_series_pointer(group_id, series.series_id) is None
    assert await repo.find_hangout(second.hangout_id) is None
    assert await repo.find_hangout_pointer(group_id, second.hangout_id) is None
    assert store.rows == {}


async def test_two_concurrent_increments_from_zero(store, standalone, group_id):
    updater = AtomicCounterUpdater(store)

    await asyncio.gather(
        updater.adjust_counter(group_id, standalone.hangout_id, "participant_count", 1),
        updater.adjust_counter(group_id, standalone.hangout_id, "participant_count", 1),
    )

    row = store.row(keys.group_pk(group_id), keys.hangout_pointer_sk(standalone.hangout_id))
    assert row["participant_count"] == 2
    assert len(store.writes_of("counter")) == 2
