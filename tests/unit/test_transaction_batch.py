# =============================================================================
# File: tests/unit/test_transaction_batch.py
# Description: All-or-nothing batches and chunked bulk writes
# =============================================================================

import pytest

from inviter.common.exceptions.projection_exceptions import (
    DuplicateIntentError,
    PartialBulkWriteError,
    TransactionCanceledError,
    TransactionTooLargeError,
)
from inviter.hangout import keys
from inviter.hangout.items import dump_item
from inviter.infra.projections.transaction_batch import TransactionBatch

from tests.fakes.builders import make_hangout, make_pointer, new_id
from tests.fakes.fake_item_store import FakeItemStore, InjectedFailure


def _pointers(group_id, count):
    return [make_pointer(group_id, start=100 + i) for i in range(count)]


class TestBuild:
    def test_duplicate_key_is_rejected(self, group_id):
        pointer = make_pointer(group_id, start=1)
        batch = TransactionBatch().put(pointer)

        with pytest.raises(DuplicateIntentError):
            batch.delete(pointer.pk, pointer.sk)

    def test_models_are_serialised_and_stamped(self, group_id):
        pointer = make_pointer(group_id, start=1)
        pointer.updated_at = None

        batch = TransactionBatch().put(pointer)

        intent = batch.intents[0]
        assert intent.item["item_type"] == "HANGOUT_POINTER"
        assert intent.item["updated_at"] is not None
        assert len(batch) == 1


class TestSubmit:
    async def test_commits_every_intent(self, store, group_id):
        pointers = _pointers(group_id, 3)
        batch = TransactionBatch("create")
        for pointer in pointers:
            batch.put_new(pointer)

        await batch.submit(store)

        assert len(store.writes_of("put")) == 3
        assert store.get_call_count("transact_write") == 1

    async def test_empty_batch_is_a_no_op(self, store):
        await TransactionBatch().submit(store)
        assert not store.was_called("transact_write")

    async def test_failed_condition_persists_nothing(self, store, group_id):
        existing = make_pointer(group_id, start=1)
        store.seed(dump_item(existing))
        fresh = make_pointer(group_id, start=2)
        batch = TransactionBatch("clash").put_new(fresh).put_new(existing)

        with pytest.raises(TransactionCanceledError) as exc_info:
            await batch.submit(store)

        assert exc_info.value.failed_indexes == [1]
        assert exc_info.value.description == "clash"
        assert store.row(*fresh.key) is None

    async def test_stale_version_cancels(self, store, group_id):
        pointer = make_pointer(group_id, start=1)
        store.seed(dump_item(pointer))
        await store.add_to_counter(pointer.pk, pointer.sk, "participant_count", 1)

        with pytest.raises(TransactionCanceledError):
            await TransactionBatch().put_versioned(pointer, expected_version=1).submit(store)

    async def test_mid_transaction_failure_leaves_no_partial_state(self, store, group_id):
        pointers = _pointers(group_id, 4)
        batch = TransactionBatch()
        for pointer in pointers:
            batch.put_new(pointer)
        store.fail_transaction_after(2)

        with pytest.raises(InjectedFailure):
            await batch.submit(store)

        assert all(store.row(*p.key) is None for p in pointers)
        assert store.applied_writes == []

    async def test_oversized_batch_is_refused_before_the_store(self, group_id):
        store = FakeItemStore(max_transaction_items=3)
        batch = TransactionBatch()
        for pointer in _pointers(group_id, 4):
            batch.put_new(pointer)

        with pytest.raises(TransactionTooLargeError):
            await batch.submit(store)

        assert not store.was_called("transact_write")

    async def test_counter_and_delete_intents(self, store, group_id):
        hangout = make_hangout([group_id], start=1)
        pointer = make_pointer(group_id, start=1)
        store.seed(dump_item(hangout), dump_item(pointer))

        await (
            TransactionBatch()
            .adjust(pointer.pk, pointer.sk, "participant_count", 2)
            .delete(keys.event_pk(hangout.hangout_id), keys.metadata_sk())
            .submit(store)
        )

        assert store.row(*pointer.key)["participant_count"] == 2
        assert store.row(*hangout.key) is None


class TestSubmitChunked:
    async def test_splits_into_chunks(self, store, group_id):
        batch = TransactionBatch("bulk")
        for pointer in _pointers(group_id, 7):
            batch.put_new(pointer)

        report = await batch.submit_chunked(store, chunk_size=3)

        assert report.total_chunks == 3
        assert report.chunks_applied == 3
        assert report.items_applied == 7
        assert [len(c.args[0]) for c in store.get_calls("transact_write")] == [3, 3, 1]

    async def test_chunk_size_is_capped_by_store_limit(self, group_id):
        store = FakeItemStore(max_transaction_items=2)
        batch = TransactionBatch()
        for pointer in _pointers(group_id, 5):
            batch.put_new(pointer)

        report = await batch.submit_chunked(store, chunk_size=90)

        assert report.chunk_size == 2
        assert report.chunks_applied == 3

    async def test_failed_chunk_reports_progress(self, store, group_id):
        pointers = _pointers(group_id, 6)
        store.seed(dump_item(pointers[4]))
        batch = TransactionBatch("bulk")
        for pointer in pointers:
            batch.put_new(pointer)

        with pytest.raises(PartialBulkWriteError) as exc_info:
            await batch.submit_chunked(store, chunk_size=2)

        error = exc_info.value
        assert error.chunks_applied == 2
        assert error.total_chunks == 3
        assert error.items_applied == 4
        assert isinstance(error.cause, TransactionCanceledError)
        assert all(store.row(*p.key) is not None for p in pointers[:4])
        assert store.row(*pointers[5].key) is None

    async def test_store_failure_in_chunk_is_reported(self, store, group_id):
        batch = TransactionBatch()
        for pointer in _pointers(group_id, 4):
            batch.put_new(pointer)
        store.fail_transaction_after(1)

        with pytest.raises(PartialBulkWriteError) as exc_info:
            await batch.submit_chunked(store, chunk_size=2)

        assert exc_info.value.chunks_applied == 0
        assert store.applied_writes == []

    async def test_invalid_chunk_size(self, store):
        with pytest.raises(ValueError):
            await TransactionBatch().put_new(make_pointer(new_id(), start=1)).submit_chunked(store, 0)
