# =============================================================================
# File: inviter/services/application/series_service.py
# Description: Series membership operations on top of the transaction coordinator
# =============================================================================

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout.exceptions import HangoutAccessDeniedError, HangoutNotInSeriesError
from inviter.hangout.items import EventSeries, Hangout
from inviter.hangout.ports.authorization_port import AuthorizationPort
from inviter.hangout.ports.change_signal_port import ChangeSignalPort
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.series_transactions import SeriesSnapshot, SeriesTransactionCoordinator
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo
from inviter.services.application.child_records import purge_child_records
from inviter.services.application.structural_retry import run_structural
from inviter.utils.uuid_utils import generate_uuid_str

log = get_logger("inviter.services.series")


def _groups_of(hangouts: Iterable[Hangout]) -> Set[str]:
    return {group_id for hangout in hangouts for group_id in hangout.associated_groups}


class SeriesService:
    """
    Series lifecycle for calling services.

    Every operation reads fresh snapshots, builds one batch through the
    :class:`SeriesTransactionCoordinator` and resubmits from new reads when
    the batch is cancelled by a concurrent writer. Affected groups are
    signalled once the batch commits.
    """

    def __init__(
            self,
            store: ItemStorePort,
            authorization: AuthorizationPort,
            signals: Optional[ChangeSignalPort] = None,
            config: Optional[ProjectionConfig] = None,
    ):
        self._store = store
        self._repo = HangoutReadRepo(store)
        self._coordinator = SeriesTransactionCoordinator(store)
        self._authorization = authorization
        self._signals = signals
        self._config = config or get_projection_config()

    async def _require_edit(self, user_id: str, hangout: Hangout) -> None:
        if not await self._authorization.can_edit_hangout(user_id, hangout):
            raise HangoutAccessDeniedError(user_id, f"hangout {hangout.hangout_id}")

    async def _require_series_edit(self, user_id: str, snapshot: SeriesSnapshot) -> None:
        series = snapshot.series
        anchor = snapshot.members.get(series.primary_event_id or "") or next(iter(snapshot.members.values()), None)
        if anchor is None or not await self._authorization.can_edit_hangout(user_id, anchor):
            raise HangoutAccessDeniedError(user_id, f"series {series.series_id}")

    async def _signal(self, group_ids: Iterable[str], reason: str) -> None:
        if self._signals is not None:
            await self._signals.partitions_changed(group_ids, reason)

    @staticmethod
    def _prepare_member(new_member: Hangout, template: Hangout) -> Hangout:
        member = new_member.model_copy(deep=True)
        if not member.associated_groups:
            member.associated_groups = list(template.associated_groups)
        return member

    # =========================================================================
    # Operations
    # =========================================================================

    async def promote_to_series(
            self,
            user_id: str,
            hangout_id: str,
            new_member: Hangout,
            series_title: Optional[str] = None,
            series_description: Optional[str] = None,
    ) -> EventSeries:
        """Turn standalone ``hangout_id`` into a series with ``new_member`` as second part."""
        series_id = generate_uuid_str()

        async def attempt() -> EventSeries:
            existing = await self._repo.get_hangout(hangout_id)
            await self._require_edit(user_id, existing)
            snapshot = await self._repo.hangout_snapshot(existing)
            member = self._prepare_member(new_member, existing)
            series = EventSeries(
                series_id=series_id,
                series_title=series_title or existing.title,
                series_description=series_description,
                main_image_path=existing.main_image_path,
            )
            created = await self._coordinator.promote_to_series(series, snapshot, member)
            await self._signal(_groups_of([existing, member]), f"promote hangout {hangout_id} to series")
            return created

        series = await run_structural(attempt, f"promote hangout {hangout_id}", self._config)
        log.info(f"Hangout {hangout_id} promoted to series {series.series_id} by {user_id}")
        return series

    async def add_member(self, user_id: str, series_id: str, new_member: Hangout) -> EventSeries:
        async def attempt() -> EventSeries:
            snapshot = await self._repo.series_snapshot(await self._repo.get_series(series_id))
            await self._require_series_edit(user_id, snapshot)
            template = snapshot.members.get(snapshot.series.primary_event_id or "") or new_member
            member = self._prepare_member(new_member, template)
            updated = await self._coordinator.add_member_to_series(snapshot, member)
            await self._signal(
                _groups_of([*snapshot.members.values(), member]),
                f"add hangout {member.hangout_id} to series",
            )
            return updated

        return await run_structural(attempt, f"add member to series {series_id}", self._config)

    async def unlink_member(self, user_id: str, series_id: str, hangout_id: str) -> Optional[EventSeries]:
        """
        Detach ``hangout_id`` from the series, keeping it as a standalone
        hangout. Returns None when the series was removed with its last member.
        """
        async def attempt() -> Optional[EventSeries]:
            snapshot, member = await self._member_snapshots(series_id, hangout_id)
            await self._require_series_edit(user_id, snapshot)
            updated = await self._coordinator.unlink_member(snapshot, member)
            await self._signal(_groups_of(snapshot.members.values()), f"unlink hangout {hangout_id}")
            return updated

        return await run_structural(attempt, f"unlink {hangout_id} from series {series_id}", self._config)

    async def remove_member(self, user_id: str, series_id: str, hangout_id: str) -> Optional[EventSeries]:
        """Delete ``hangout_id`` and drop it from the series (the series goes with its last member)."""
        async def attempt() -> Optional[EventSeries]:
            snapshot, member = await self._member_snapshots(series_id, hangout_id)
            await self._require_series_edit(user_id, snapshot)
            updated = await self._coordinator.remove_member(snapshot, member)
            await self._signal(_groups_of(snapshot.members.values()), f"remove hangout {hangout_id}")
            return updated

        updated = await run_structural(attempt, f"remove {hangout_id} from series {series_id}", self._config)
        await purge_child_records(self._store, [hangout_id], self._config.bulk_chunk_size, self._repo)
        return updated

    async def delete_series(self, user_id: str, series_id: str) -> List[str]:
        """Delete the series with every member. Returns the deleted hangout ids."""
        async def attempt() -> List[str]:
            snapshot = await self._repo.series_snapshot(await self._repo.get_series(series_id))
            await self._require_series_edit(user_id, snapshot)
            members = await self._repo.member_snapshots(snapshot)
            await self._coordinator.delete_entire_series(snapshot, members)
            await self._signal(_groups_of(snapshot.members.values()), f"delete series {series_id}")
            return list(snapshot.members)

        deleted = await run_structural(attempt, f"delete series {series_id}", self._config)
        await purge_child_records(self._store, deleted, self._config.bulk_chunk_size, self._repo)
        log.info(f"Series {series_id} deleted with {len(deleted)} hangouts by {user_id}")
        return deleted

    # =========================================================================
    # Internals
    # =========================================================================

    async def _member_snapshots(self, series_id: str, hangout_id: str):
        snapshot = await self._repo.series_snapshot(await self._repo.get_series(series_id))
        member = snapshot.members.get(hangout_id)
        if member is None:
            raise HangoutNotInSeriesError(hangout_id, series_id)
        return snapshot, await self._repo.hangout_snapshot(member)
