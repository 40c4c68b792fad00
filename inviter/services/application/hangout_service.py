# =============================================================================
# File: inviter/services/application/hangout_service.py
# Description: Hangout create/update/delete and attribute edits
# =============================================================================

from __future__ import annotations

from typing import Iterable, Optional

from pydantic import BaseModel

from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout import keys
from inviter.hangout.enums import HangoutVisibility
from inviter.hangout.exceptions import HangoutAccessDeniedError
from inviter.hangout.items import Address, AttributeEntry, Hangout, HangoutAttribute, dump_item
from inviter.hangout.ports.authorization_port import AuthorizationPort
from inviter.hangout.ports.change_signal_port import ChangeSignalPort
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.pointer_factory import apply_hangout_fields, drop_attribute_entry, put_attribute_entry
from inviter.infra.projections.pointer_sync import PointerSynchronizer
from inviter.infra.projections.series_transactions import SeriesTransactionCoordinator
from inviter.infra.projections.transaction_batch import TransactionBatch
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo
from inviter.services.application.child_records import purge_child_records
from inviter.services.application.structural_retry import run_structural
from inviter.utils.uuid_utils import generate_uuid_str

log = get_logger("inviter.services.hangout")


class HangoutUpdate(BaseModel):
    """Partial update of a hangout; only fields that were set are applied"""
    title: Optional[str] = None
    description: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    location: Optional[Address] = None
    main_image_path: Optional[str] = None
    visibility: Optional[HangoutVisibility] = None
    carpool_enabled: Optional[bool] = None

    def apply_to(self, hangout: Hangout) -> Hangout:
        updated = hangout.model_copy(deep=True)
        for name in self.model_fields_set:
            value = getattr(self, name)
            setattr(updated, name, value.model_copy() if isinstance(value, BaseModel) else value)
        return updated


def _schedule_changed(before: Hangout, after: Hangout) -> bool:
    return (before.start_timestamp, before.end_timestamp) != (after.start_timestamp, after.end_timestamp)


class HangoutService:
    """
    Hangout lifecycle.

    Creation and deletion are structural (canonical record and pointers in
    one batch). Field updates write the canonical record and then sync the
    pointers; a series member whose schedule moves is rewritten together
    with its series so the series bounds never lag behind.
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
        self._config = config or get_projection_config()
        self._synchronizer = PointerSynchronizer(store, self._config)
        self._authorization = authorization
        self._signals = signals

    async def _require_edit(self, user_id: str, hangout: Hangout) -> None:
        if not await self._authorization.can_edit_hangout(user_id, hangout):
            raise HangoutAccessDeniedError(user_id, f"hangout {hangout.hangout_id}")

    async def _signal(self, group_ids: Iterable[str], reason: str) -> None:
        if self._signals is not None:
            await self._signals.partitions_changed(group_ids, reason)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_hangout(self, user_id: str, hangout: Hangout) -> Hangout:
        """Create ``hangout`` and its pointer in every associated group the user can see."""
        for group_id in hangout.associated_groups:
            if not await self._authorization.can_view_group(user_id, group_id):
                raise HangoutAccessDeniedError(user_id, f"group {group_id}")

        created = hangout.model_copy(deep=True)
        created.created_by = created.created_by or user_id
        created.series_id = None

        await self._coordinator.create_standalone_hangout(created)
        await self._signal(created.associated_groups, f"create hangout {created.hangout_id}")
        log.info(f"Hangout {created.hangout_id} created by {user_id} in {len(created.associated_groups)} groups")
        return created

    async def update_hangout(self, user_id: str, hangout_id: str, changes: HangoutUpdate) -> Hangout:
        async def attempt() -> Hangout:
            current = await self._repo.get_hangout(hangout_id)
            await self._require_edit(user_id, current)
            updated = changes.apply_to(current)

            if current.series_id and _schedule_changed(current, updated):
                series = await self._repo.get_series(current.series_id)
                snapshot = await self._repo.series_snapshot(series)
                member = await self._repo.hangout_snapshot(current)
                await self._coordinator.update_member(snapshot, member, updated)
                updated.version = current.version + 1
                return updated

            await TransactionBatch(f"update hangout {hangout_id}").put_versioned(
                updated, current.version
            ).submit(self._store)
            updated.version = current.version + 1
            await self._synchronizer.sync_hangout_everywhere(
                updated.associated_groups,
                hangout_id,
                lambda pointer: apply_hangout_fields(pointer, updated),
                reason=f"update hangout {hangout_id}",
            )
            return updated

        updated = await run_structural(attempt, f"update hangout {hangout_id}", self._config)
        await self._signal(updated.associated_groups, f"update hangout {hangout_id}")
        return updated

    async def delete_hangout(self, user_id: str, hangout_id: str) -> None:
        """
        Delete the hangout with its pointers, leaving its series (if any)
        consistent; then purge its child records.
        """
        async def attempt() -> Hangout:
            hangout = await self._repo.get_hangout(hangout_id)
            await self._require_edit(user_id, hangout)
            member = await self._repo.hangout_snapshot(hangout)
            if hangout.series_id:
                series = await self._repo.get_series(hangout.series_id)
                snapshot = await self._repo.series_snapshot(series)
                await self._coordinator.remove_member(snapshot, member)
            else:
                await self._coordinator.delete_standalone_hangout(member)
            return hangout

        deleted = await run_structural(attempt, f"delete hangout {hangout_id}", self._config)
        await purge_child_records(self._store, [hangout_id], self._config.bulk_chunk_size, self._repo)
        await self._signal(deleted.associated_groups, f"delete hangout {hangout_id}")
        log.info(f"Hangout {hangout_id} deleted by {user_id}")

    # =========================================================================
    # Attributes
    # =========================================================================

    async def set_attribute(
            self,
            user_id: str,
            hangout_id: str,
            attribute_name: str,
            string_value: Optional[str] = None,
            attribute_id: Optional[str] = None,
    ) -> HangoutAttribute:
        hangout = await self._repo.get_hangout(hangout_id)
        await self._require_edit(user_id, hangout)

        attribute = HangoutAttribute(
            hangout_id=hangout_id,
            attribute_id=attribute_id or generate_uuid_str(),
            attribute_name=attribute_name,
            string_value=string_value,
        )
        attribute.touch()
        await self._store.put_item(dump_item(attribute))

        entry = AttributeEntry(
            attribute_id=attribute.attribute_id,
            attribute_name=attribute_name,
            string_value=string_value,
        )
        await self._synchronizer.sync_hangout_everywhere(
            hangout.associated_groups,
            hangout_id,
            lambda pointer: put_attribute_entry(pointer, entry),
            reason=f"set attribute {attribute_name}",
        )
        await self._signal(hangout.associated_groups, f"attribute on hangout {hangout_id}")
        return attribute

    async def delete_attribute(self, user_id: str, hangout_id: str, attribute_id: str) -> None:
        hangout = await self._repo.get_hangout(hangout_id)
        await self._require_edit(user_id, hangout)

        await self._store.delete_item(keys.event_pk(hangout_id), keys.attribute_sk(attribute_id))
        await self._synchronizer.sync_hangout_everywhere(
            hangout.associated_groups,
            hangout_id,
            lambda pointer: drop_attribute_entry(pointer, attribute_id),
            reason=f"delete attribute {attribute_id}",
        )
        await self._signal(hangout.associated_groups, f"attribute on hangout {hangout_id}")
