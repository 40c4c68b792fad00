# =============================================================================
# File: tests/unit/test_keys_and_items.py
# Description: Key factory and tagged-union row parsing
# =============================================================================

import pytest

from inviter.common.exceptions.exceptions import InvalidKeyError, UnknownItemTypeError
from inviter.hangout import keys
from inviter.hangout.enums import InterestStatus
from inviter.hangout.items import (
    EventSeries,
    Hangout,
    HangoutPointer,
    InterestLevel,
    SeriesPointer,
    Vote,
    dump_item,
    parse_as,
    parse_item,
)

from tests.fakes.builders import make_pointer, new_id


class TestKeys:
    def test_group_partition_keys(self):
        group_id, hangout_id = new_id(), new_id()
        assert keys.group_pk(group_id) == f"GROUP#{group_id}"
        assert keys.hangout_pointer_sk(hangout_id) == f"HANGOUT#{hangout_id}"
        assert keys.series_pointer_sk(hangout_id) == f"SERIES#{hangout_id}"

    def test_ids_are_lower_cased(self):
        group_id = new_id()
        assert keys.group_pk(group_id.upper()) == f"GROUP#{group_id}"

    @pytest.mark.parametrize("bad", ["", None, "not-a-uuid", "GROUP#x", "1234"])
    def test_invalid_ids_are_rejected(self, bad):
        with pytest.raises(InvalidKeyError):
            keys.event_pk(bad)

    def test_vote_key_nests_under_poll(self):
        poll_id, user_id, option_id = new_id(), new_id(), new_id()
        sk = keys.vote_sk(poll_id, user_id, option_id)
        assert sk.startswith(keys.poll_sk(poll_id) + "#VOTE#")
        assert sk.endswith(f"#OPTION#{option_id}")

    def test_extract_id(self):
        group_id = new_id()
        assert keys.extract_id(keys.group_pk(group_id), keys.GROUP_PREFIX) == group_id
        with pytest.raises(InvalidKeyError):
            keys.extract_id("EVENT#abc", keys.GROUP_PREFIX)


class TestItems:
    def test_keys_are_derived_from_ids(self):
        hangout = Hangout(hangout_id=new_id(), title="Picnic")
        assert hangout.pk == keys.event_pk(hangout.hangout_id)
        assert hangout.sk == keys.metadata_sk()
        assert hangout.version == 1
        assert hangout.entity_id == hangout.hangout_id

    def test_parse_dispatches_on_item_type(self):
        pointer = make_pointer(new_id(), start=100)
        series = EventSeries(series_id=new_id(), series_title="Season 1")
        level = InterestLevel(hangout_id=new_id(), user_id=new_id(), status=InterestStatus.GOING)

        assert isinstance(parse_item(dump_item(pointer)), HangoutPointer)
        assert isinstance(parse_item(dump_item(series)), EventSeries)
        assert isinstance(parse_item(dump_item(level)), InterestLevel)

    def test_dump_carries_entity_id_and_type(self):
        pointer = make_pointer(new_id(), start=100)
        row = dump_item(pointer)
        assert row["item_type"] == "HANGOUT_POINTER"
        assert row["entity_id"] == pointer.hangout_id
        assert row["start_timestamp"] == 100

    def test_series_pointer_round_trips_with_parts(self):
        group_id = new_id()
        part = make_pointer(group_id, start=5)
        pointer = SeriesPointer(group_id=group_id, series_id=new_id(), series_title="S", parts=[part])

        parsed = parse_as(dump_item(pointer), SeriesPointer)

        assert parsed.parts[0].hangout_id == part.hangout_id
        assert parsed.part_ids() == [part.hangout_id]

    def test_part_ids_fall_back_to_hangout_ids(self):
        ids = [new_id(), new_id()]
        pointer = SeriesPointer(group_id=new_id(), series_id=new_id(), series_title="S", hangout_ids=ids)
        assert pointer.part_ids() == ids

    def test_unknown_item_type_is_rejected(self):
        with pytest.raises(UnknownItemTypeError):
            parse_item({"pk": "X", "sk": "Y", "item_type": "CARPOOL_RIDER"})
        with pytest.raises(UnknownItemTypeError):
            parse_item({"pk": "X", "sk": "Y"})

    def test_parse_as_rejects_other_types(self):
        vote = Vote(hangout_id=new_id(), poll_id=new_id(), option_id=new_id(), user_id=new_id())
        with pytest.raises(UnknownItemTypeError):
            parse_as(dump_item(vote), HangoutPointer)

    def test_interest_boundary(self):
        assert InterestStatus.GOING.counts_as_participant
        assert InterestStatus.INTERESTED.counts_as_participant
        assert not InterestStatus.NOT_GOING.counts_as_participant
