# =============================================================================
# File: tests/unit/test_pointer_sync.py
# Description: Version-checked read-modify-write of group projections
# =============================================================================

import pytest

from inviter.common.exceptions.projection_exceptions import ConcurrencyExhaustedError, PointerNotFoundError
from inviter.hangout import keys
from inviter.hangout.enums import ItemType
from inviter.hangout.items import HangoutPointer, SeriesPointer, dump_item, parse_as
from inviter.infra.projections.pointer_factory import build_hangout_pointer
from inviter.infra.projections.pointer_sync import SyncCriticality

from tests.fakes.builders import make_hangout, make_pointer, make_series_pointer, new_id


def _retitle(title):
    def mutate(pointer):
        pointer.title = title
    return mutate


def _pointer_row(store, group_id, hangout_id):
    return parse_as(store.row(keys.group_pk(group_id), keys.hangout_pointer_sk(hangout_id)), HangoutPointer)


class TestSyncProjection:
    async def test_writes_mutation_and_bumps_version(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))

        written = await synchronizer.sync_projection(group_id, pointer.hangout_id, _retitle("Renamed"), "test")

        stored = _pointer_row(store, group_id, pointer.hangout_id)
        assert written is True
        assert stored.title == "Renamed"
        assert stored.version == 2

    async def test_mutation_may_return_replacement(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))

        def replace(current):
            return current.model_copy(update={"status": "CANCELLED"})

        await synchronizer.sync_projection(group_id, pointer.hangout_id, replace, "test")

        assert _pointer_row(store, group_id, pointer.hangout_id).status == "CANCELLED"

    async def test_async_mutation_is_awaited(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))

        async def mutate(current):
            current.title = "Async"

        await synchronizer.sync_projection(group_id, pointer.hangout_id, mutate, "test")

        assert _pointer_row(store, group_id, pointer.hangout_id).title == "Async"

    async def test_conflicts_are_retried_from_fresh_read(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))
        store.reject_next_puts(3)

        written = await synchronizer.sync_projection(group_id, pointer.hangout_id, _retitle("Eventually"), "test")

        assert written is True
        assert store.get_call_count("get_item") == 4
        assert store.get_call_count("put_item") == 4
        assert _pointer_row(store, group_id, pointer.hangout_id).title == "Eventually"

    async def test_best_effort_exhaustion_returns_false(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))
        store.reject_next_puts(5)

        written = await synchronizer.sync_projection(group_id, pointer.hangout_id, _retitle("Never"), "test")

        assert written is False
        assert store.get_call_count("put_item") == 5
        assert _pointer_row(store, group_id, pointer.hangout_id).title == pointer.title

    async def test_required_exhaustion_raises(self, store, synchronizer, group_id):
        pointer = make_pointer(group_id, start=100)
        store.seed(dump_item(pointer))
        store.reject_next_puts(5)

        with pytest.raises(ConcurrencyExhaustedError) as exc_info:
            await synchronizer.sync_projection(
                group_id, pointer.hangout_id, _retitle("Never"), "test",
                criticality=SyncCriticality.REQUIRED,
            )

        assert exc_info.value.attempts == 5

    async def test_missing_pointer_is_not_created(self, store, synchronizer, group_id):
        hangout_id = new_id()

        with pytest.raises(PointerNotFoundError):
            await synchronizer.sync_projection(group_id, hangout_id, _retitle("x"), "test")

        assert not store.was_called("put_item")
        assert store.row(keys.group_pk(group_id), keys.hangout_pointer_sk(hangout_id)) is None

    async def test_series_pointer_can_be_synced(self, store, synchronizer, group_id):
        series_pointer = make_series_pointer(group_id, [make_pointer(group_id, start=1)])
        store.seed(dump_item(series_pointer))

        def retitle(pointer):
            pointer.series_title = "Season 2"

        await synchronizer.sync_projection(
            group_id, series_pointer.series_id, retitle, "test", item_type=ItemType.SERIES_POINTER,
        )

        stored = store.row(keys.group_pk(group_id), keys.series_pointer_sk(series_pointer.series_id))
        assert stored["series_title"] == "Season 2"

    async def test_non_projection_type_is_rejected(self, synchronizer, group_id):
        with pytest.raises(ValueError):
            await synchronizer.sync_projection(group_id, new_id(), _retitle("x"), "test", item_type=ItemType.VOTE)


class TestSeriesMirroring:
    async def test_series_member_update_refreshes_embedded_copy(self, store, synchronizer, group_id):
        part = make_pointer(group_id, start=100)
        other = make_pointer(group_id, start=50)
        series_pointer = make_series_pointer(group_id, [part, other])
        store.seed(*(dump_item(p) for p in series_pointer.parts), dump_item(series_pointer))

        await synchronizer.sync_projection(group_id, part.hangout_id, _retitle("Episode 2"), "test")

        stored = parse_as(
            store.row(keys.group_pk(group_id), keys.series_pointer_sk(series_pointer.series_id)), SeriesPointer
        )
        titles = {p.hangout_id: p.title for p in stored.parts}
        assert titles[part.hangout_id] == "Episode 2"
        assert titles[other.hangout_id] == other.title
        assert stored.version == 2

    async def test_mirroring_can_be_disabled(self, store, synchronizer, group_id):
        part = make_pointer(group_id, start=100)
        series_pointer = make_series_pointer(group_id, [part])
        store.seed(dump_item(series_pointer.parts[0]), dump_item(series_pointer))

        await synchronizer.sync_projection(
            group_id, part.hangout_id, _retitle("Quiet"), "test", mirror_into_series=False,
        )

        stored = store.row(keys.group_pk(group_id), keys.series_pointer_sk(series_pointer.series_id))
        assert stored["parts"][0]["title"] == part.title

    async def test_missing_series_pointer_does_not_fail_member_sync(self, store, synchronizer, group_id):
        part = make_pointer(group_id, start=100, series_id=new_id())
        store.seed(dump_item(part))

        written = await synchronizer.sync_projection(group_id, part.hangout_id, _retitle("Orphan"), "test")

        assert written is True
        assert _pointer_row(store, group_id, part.hangout_id).title == "Orphan"


class TestFanOut:
    async def test_sync_everywhere_skips_missing_groups(self, store, synchronizer):
        hangout = make_hangout([new_id(), new_id()], start=100)
        present, missing = hangout.associated_groups
        store.seed(dump_item(build_hangout_pointer(hangout, present)))

        synced = await synchronizer.sync_hangout_everywhere(
            hangout.associated_groups, hangout.hangout_id, _retitle("Everywhere"), "test",
        )

        assert synced == [present]
        assert _pointer_row(store, present, hangout.hangout_id).title == "Everywhere"

    async def test_upsert_creates_missing_pointer(self, store, synchronizer, group_id):
        hangout = make_hangout([group_id], start=100, title="Restored")

        written = await synchronizer.upsert_projection(group_id, hangout, lambda p: None, "repair")

        stored = _pointer_row(store, group_id, hangout.hangout_id)
        assert written is True
        assert stored.title == "Restored"
        assert stored.version == 1
