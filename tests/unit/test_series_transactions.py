# =============================================================================
# File: tests/unit/test_series_transactions.py
# Description: Atomic hangout and series lifecycle writes
# =============================================================================

from typing import get_type_hints

import pytest

from inviter.common.exceptions.projection_exceptions import TransactionCanceledError
from inviter.hangout import keys
from inviter.hangout.exceptions import HangoutAlreadyInSeriesError, HangoutNotInSeriesError
from inviter.hangout.items import BaseItem, EventSeries, HangoutPointer, SeriesPointer, parse_as
from inviter.infra.projections.series_transactions import _next_version

from tests.fakes.builders import make_hangout, make_pointer, new_id
from tests.fakes.fake_item_store import InjectedFailure


def _series_pointer(store, group_id, series_id):
    raw = store.row(keys.group_pk(group_id), keys.series_pointer_sk(series_id))
    return parse_as(raw, SeriesPointer) if raw else None


def _hangout_pointer(store, group_id, hangout_id):
    raw = store.row(keys.group_pk(group_id), keys.hangout_pointer_sk(hangout_id))
    return parse_as(raw, HangoutPointer) if raw else None


async def _promote(coordinator, repo, hangout, new_member):
    series = EventSeries(series_id=new_id(), series_title="Weekly trivia")
    snapshot = await repo.hangout_snapshot(await repo.get_hangout(hangout.hangout_id))
    return await coordinator.promote_to_series(series, snapshot, new_member)


async def _series_state(repo, series_id):
    return await repo.series_snapshot(await repo.get_series(series_id))


class TestStandalone:
    async def test_create_writes_record_and_one_pointer_per_group(self, store, coordinator):
        groups = [new_id(), new_id()]
        hangout = make_hangout(groups, start=100)

        pointers = await coordinator.create_standalone_hangout(hangout)

        assert {p.group_id for p in pointers} == set(groups)
        assert store.row(*hangout.key) is not None
        assert all(_hangout_pointer(store, g, hangout.hangout_id) for g in groups)
        assert store.get_call_count("transact_write") == 1

    async def test_delete_removes_record_and_pointers(self, store, coordinator, repo, standalone, group_id):
        snapshot = await repo.hangout_snapshot(standalone)

        await coordinator.delete_standalone_hangout(snapshot)

        assert store.row(*standalone.key) is None
        assert _hangout_pointer(store, group_id, standalone.hangout_id) is None


class TestPromote:
    async def test_promote_links_both_hangouts(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000, title="Trivia night 2")

        series = await _promote(coordinator, repo, standalone, member)

        stored_series = await repo.get_series(series.series_id)
        assert stored_series.hangout_ids == [standalone.hangout_id, member.hangout_id]
        assert stored_series.primary_event_id == standalone.hangout_id
        assert (stored_series.start_timestamp, stored_series.end_timestamp) == (10_000, 20_000)

        anchor = await repo.get_hangout(standalone.hangout_id)
        assert anchor.series_id == series.series_id
        assert anchor.version == 2
        assert (await repo.get_hangout(member.hangout_id)).series_id == series.series_id

        anchor_pointer = _hangout_pointer(store, group_id, standalone.hangout_id)
        assert anchor_pointer.series_id == series.series_id
        assert anchor_pointer.version == 2

        series_pointer = _series_pointer(store, group_id, series.series_id)
        assert series_pointer.hangout_ids == [standalone.hangout_id, member.hangout_id]
        embedded = {p.hangout_id: p for p in series_pointer.parts}
        assert embedded[standalone.hangout_id].version == anchor_pointer.version
        assert embedded[member.hangout_id].series_id == series.series_id

    async def test_series_pointer_per_member_group(self, store, coordinator, repo, standalone, group_id):
        other_group = new_id()
        member = make_hangout([other_group], start=20_000)

        series = await _promote(coordinator, repo, standalone, member)

        assert _series_pointer(store, group_id, series.series_id).part_ids() == [standalone.hangout_id]
        assert _series_pointer(store, other_group, series.series_id).part_ids() == [member.hangout_id]

    async def test_promoting_a_series_member_is_rejected(self, coordinator, repo, standalone, group_id):
        await _promote(coordinator, repo, standalone, make_hangout([group_id], start=20_000))

        with pytest.raises(HangoutAlreadyInSeriesError):
            await _promote(coordinator, repo, standalone, make_hangout([group_id], start=30_000))

    async def test_stale_snapshot_cancels_everything(self, store, coordinator, repo, standalone, group_id):
        snapshot = await repo.hangout_snapshot(standalone)
        await store.set_fields(*standalone.key, {"title": "Edited meanwhile"})
        member = make_hangout([group_id], start=20_000)
        series = EventSeries(series_id=new_id(), series_title="Weekly")

        with pytest.raises(TransactionCanceledError):
            await coordinator.promote_to_series(series, snapshot, member)

        assert await repo.find_series(series.series_id) is None
        assert await repo.find_hangout(member.hangout_id) is None
        assert (await repo.get_hangout(standalone.hangout_id)).series_id is None
        assert _series_pointer(store, group_id, series.series_id) is None

    async def test_store_failure_mid_transaction_persists_nothing(self, store, coordinator, repo, standalone, group_id):
        before = dict(store.rows)
        store.fail_transaction_after(3)

        with pytest.raises(InjectedFailure):
            await _promote(coordinator, repo, standalone, make_hangout([group_id], start=20_000))

        assert store.rows == before


class TestMembership:
    async def test_add_member_extends_series(self, store, coordinator, repo, standalone, group_id):
        series = await _promote(coordinator, repo, standalone, make_hangout([group_id], start=20_000))
        third = make_hangout([group_id], start=5_000, end=6_000)

        await coordinator.add_member_to_series(await _series_state(repo, series.series_id), third)

        stored = await repo.get_series(series.series_id)
        assert stored.hangout_ids[-1] == third.hangout_id
        assert stored.start_timestamp == 5_000
        series_pointer = _series_pointer(store, group_id, series.series_id)
        assert series_pointer.part_ids()[0] == third.hangout_id
        assert series_pointer.start_timestamp == 5_000
        assert series_pointer.version == 2

    async def test_add_member_in_new_group_creates_series_pointer(self, store, coordinator, repo, standalone, group_id):
        series = await _promote(coordinator, repo, standalone, make_hangout([group_id], start=20_000))
        other_group = new_id()
        third = make_hangout([other_group], start=30_000)

        await coordinator.add_member_to_series(await _series_state(repo, series.series_id), third)

        assert _series_pointer(store, other_group, series.series_id).part_ids() == [third.hangout_id]

    async def test_unlink_keeps_hangout_standalone(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        snapshot = await _series_state(repo, series.series_id)
        target = await repo.hangout_snapshot(snapshot.members[standalone.hangout_id])

        updated = await coordinator.unlink_member(snapshot, target)

        assert updated.hangout_ids == [member.hangout_id]
        assert updated.primary_event_id == member.hangout_id
        assert (await repo.get_hangout(standalone.hangout_id)).series_id is None
        assert _hangout_pointer(store, group_id, standalone.hangout_id).series_id is None
        assert _series_pointer(store, group_id, series.series_id).part_ids() == [member.hangout_id]
        assert (await repo.get_series(series.series_id)).start_timestamp == 20_000

    async def test_unlinking_last_member_deletes_series(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        for hangout_id in (standalone.hangout_id, member.hangout_id):
            snapshot = await _series_state(repo, series.series_id)
            await coordinator.unlink_member(snapshot, await repo.hangout_snapshot(snapshot.members[hangout_id]))

        assert await repo.find_series(series.series_id) is None
        assert _series_pointer(store, group_id, series.series_id) is None
        assert _hangout_pointer(store, group_id, member.hangout_id).series_id is None

    async def test_unlink_of_non_member_is_rejected(self, coordinator, repo, standalone, group_id):
        series = await _promote(coordinator, repo, standalone, make_hangout([group_id], start=20_000))
        stranger = make_hangout([group_id], start=1)
        await coordinator.create_standalone_hangout(stranger)

        with pytest.raises(HangoutNotInSeriesError):
            await coordinator.unlink_member(
                await _series_state(repo, series.series_id), await repo.hangout_snapshot(stranger)
            )

    async def test_remove_member_deletes_hangout_and_pointers(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        snapshot = await _series_state(repo, series.series_id)

        await coordinator.remove_member(snapshot, await repo.hangout_snapshot(snapshot.members[member.hangout_id]))

        assert await repo.find_hangout(member.hangout_id) is None
        assert _hangout_pointer(store, group_id, member.hangout_id) is None
        assert (await repo.get_series(series.series_id)).hangout_ids == [standalone.hangout_id]

    async def test_removing_only_member_of_a_group_drops_that_series_pointer(
            self, store, coordinator, repo, standalone, group_id):
        other_group = new_id()
        member = make_hangout([other_group], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        snapshot = await _series_state(repo, series.series_id)

        await coordinator.remove_member(snapshot, await repo.hangout_snapshot(snapshot.members[member.hangout_id]))

        assert _series_pointer(store, other_group, series.series_id) is None
        assert _series_pointer(store, group_id, series.series_id) is not None

    async def test_delete_entire_series(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        snapshot = await _series_state(repo, series.series_id)

        await coordinator.delete_entire_series(snapshot, await repo.member_snapshots(snapshot))

        assert store.rows == {}

    async def test_update_member_moves_series_bounds(self, store, coordinator, repo, standalone, group_id):
        member = make_hangout([group_id], start=20_000)
        series = await _promote(coordinator, repo, standalone, member)
        snapshot = await _series_state(repo, series.series_id)
        previous = await repo.hangout_snapshot(snapshot.members[member.hangout_id])
        moved = previous.hangout.model_copy(update={"start_timestamp": 40_000, "end_timestamp": 41_000})

        await coordinator.update_member(snapshot, previous, moved)

        assert (await repo.get_series(series.series_id)).end_timestamp == 41_000
        series_pointer = _series_pointer(store, group_id, series.series_id)
        assert series_pointer.end_timestamp == 41_000
        embedded = {p.hangout_id: p for p in series_pointer.parts}
        assert embedded[member.hangout_id].start_timestamp == 40_000
        assert _hangout_pointer(store, group_id, member.hangout_id).start_timestamp == 40_000


def test_embedded_copy_takes_the_version_the_store_assigns(group_id):
    previous = make_pointer(group_id, start=10_000)
    previous.version = 4
    copy = previous.model_copy(deep=True)

    _next_version(copy, previous)

    assert copy.version == 5
    hints = get_type_hints(_next_version)
    assert hints["item"] is BaseItem and hints["previous"] is BaseItem
