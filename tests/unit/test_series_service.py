# =============================================================================
# File: tests/unit/test_series_service.py
# Description: Series operations with authorization, retry and signals
# =============================================================================

import asyncio

import pytest

from inviter.hangout import keys
from inviter.hangout.enums import InterestStatus
from inviter.hangout.exceptions import HangoutAccessDeniedError, HangoutNotInSeriesError, SeriesNotFoundError
from inviter.services.application.series_service import SeriesService

from tests.fakes.builders import make_hangout, new_id, seed_interest


@pytest.fixture
def service(store, auth, signals, config):
    return SeriesService(store, auth, signals, config)


async def _two_part_series(service, user_id, standalone, group_id):
    member = make_hangout([group_id], start=20_000)
    series = await service.promote_to_series(user_id, standalone.hangout_id, member, series_title="Trivia league")
    return series, member


class TestPromote:
    async def test_promote_creates_series_and_signals(self, service, repo, signals, user_id, standalone, group_id):
        series, member = await _two_part_series(service, user_id, standalone, group_id)

        stored = await repo.get_series(series.series_id)
        assert stored.series_title == "Trivia league"
        assert stored.hangout_ids == [standalone.hangout_id, member.hangout_id]
        assert signals.changed_groups == {group_id}

    async def test_title_defaults_to_hangout_title(self, service, repo, user_id, standalone, group_id):
        series = await service.promote_to_series(user_id, standalone.hangout_id, make_hangout([group_id], start=1))

        assert (await repo.get_series(series.series_id)).series_title == standalone.title

    async def test_new_member_inherits_groups(self, service, repo, user_id, standalone, group_id):
        member = make_hangout([], start=20_000)

        await service.promote_to_series(user_id, standalone.hangout_id, member)

        assert (await repo.get_hangout(member.hangout_id)).associated_groups == [group_id]

    async def test_denied_user_changes_nothing(self, store, service, auth, signals, user_id, standalone, group_id):
        auth.deny_user(user_id)
        before = dict(store.rows)

        with pytest.raises(HangoutAccessDeniedError):
            await _two_part_series(service, user_id, standalone, group_id)

        assert store.rows == before
        assert signals.signals == []


class TestMembership:
    async def test_add_member(self, service, repo, user_id, standalone, group_id):
        series, _ = await _two_part_series(service, user_id, standalone, group_id)
        third = make_hangout([], start=30_000)

        updated = await service.add_member(user_id, series.series_id, third)

        assert updated.hangout_ids[-1] == third.hangout_id
        assert (await repo.get_hangout(third.hangout_id)).associated_groups == [group_id]

    async def test_concurrent_adds_are_both_kept(self, store, service, repo, user_id, standalone, group_id):
        series, _ = await _two_part_series(service, user_id, standalone, group_id)
        third, fourth = make_hangout([group_id], start=30_000), make_hangout([group_id], start=40_000)

        await asyncio.gather(
            service.add_member(user_id, series.series_id, third),
            service.add_member(user_id, series.series_id, fourth),
        )

        stored = await repo.get_series(series.series_id)
        assert set(stored.hangout_ids) >= {third.hangout_id, fourth.hangout_id}
        assert len(stored.hangout_ids) == 4
        series_pointer = await repo.find_series_pointer(group_id, series.series_id)
        assert len(series_pointer.parts) == 4

    async def test_unlink_member(self, service, repo, user_id, standalone, group_id):
        series, member = await _two_part_series(service, user_id, standalone, group_id)

        updated = await service.unlink_member(user_id, series.series_id, member.hangout_id)

        assert updated.hangout_ids == [standalone.hangout_id]
        assert (await repo.get_hangout(member.hangout_id)).series_id is None

    async def test_unlink_unknown_member(self, service, user_id, standalone, group_id):
        series, _ = await _two_part_series(service, user_id, standalone, group_id)

        with pytest.raises(HangoutNotInSeriesError):
            await service.unlink_member(user_id, series.series_id, new_id())

    async def test_remove_member_purges_child_records(self, store, service, repo, user_id, standalone, group_id):
        series, member = await _two_part_series(service, user_id, standalone, group_id)
        seed_interest(store, member.hangout_id, user_id, InterestStatus.GOING)

        await service.remove_member(user_id, series.series_id, member.hangout_id)

        assert await repo.find_hangout(member.hangout_id) is None
        assert store.row(keys.event_pk(member.hangout_id), keys.attendance_sk(user_id)) is None

    async def test_delete_series(self, store, service, repo, signals, user_id, standalone, group_id):
        series, member = await _two_part_series(service, user_id, standalone, group_id)
        seed_interest(store, standalone.hangout_id, user_id, InterestStatus.INTERESTED)

        deleted = await service.delete_series(user_id, series.series_id)

        assert set(deleted) == {standalone.hangout_id, member.hangout_id}
        assert store.rows == {}
        assert signals.signals[-1][1] == f"delete series {series.series_id}"

    async def test_delete_missing_series(self, service, user_id):
        with pytest.raises(SeriesNotFoundError):
            await service.delete_series(user_id, new_id())
