# =============================================================================
# File: inviter/services/application/interest_service.py
# Description: RSVP (interest level) writes with pointer mirroring and counters
# =============================================================================

from __future__ import annotations

from typing import Iterable, Optional

from inviter.common.exceptions.projection_exceptions import ConditionalCheckFailedError
from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.config.reliability_config import ReliabilityConfigs
from inviter.hangout.enums import InterestStatus
from inviter.hangout.items import InterestEntry, InterestLevel, dump_item, parse_as
from inviter.hangout.ports.change_signal_port import ChangeSignalPort
from inviter.hangout.ports.item_store_port import ItemStorePort, WriteCondition
from inviter.infra.projections.counter_updater import AtomicCounterUpdater
from inviter.infra.projections.pointer_factory import drop_interest_entry, put_interest_entry
from inviter.infra.projections.pointer_sync import PointerSynchronizer
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo
from inviter.infra.reliability.retry import retry_async

log = get_logger("inviter.services.interest")


def _is_conflict(error: Exception) -> bool:
    return isinstance(error, ConditionalCheckFailedError)


class InterestService:
    """
    Sets and clears a user's interest level on a hangout.

    The canonical record is written first (versioned, so the previous status
    used for the counter delta is exact). Each group's pointer then gets the
    participant count delta and the refreshed interest list; both are best
    effort and repaired by a resync if they fall behind.
    """

    def __init__(
            self,
            store: ItemStorePort,
            signals: Optional[ChangeSignalPort] = None,
            config: Optional[ProjectionConfig] = None,
    ):
        self._store = store
        self._repo = HangoutReadRepo(store)
        self._config = config or get_projection_config()
        self._synchronizer = PointerSynchronizer(store, self._config)
        self._counter = AtomicCounterUpdater(store)
        self._signals = signals

    def _canonical_retry(self):
        return ReliabilityConfigs.structural_operation_retry(
            max_attempts=self._config.sync_max_attempts,
            retry_condition=_is_conflict,
        )

    async def set_interest(
            self,
            hangout_id: str,
            user_id: str,
            status: InterestStatus,
            user_name: Optional[str] = None,
            main_image_path: Optional[str] = None,
    ) -> InterestLevel:
        hangout = await self._repo.get_hangout(hangout_id)
        status = InterestStatus(status)
        transition = {}

        async def write_canonical() -> InterestLevel:
            previous = await self._repo.find_interest_level(hangout_id, user_id)
            level = InterestLevel(
                hangout_id=hangout_id,
                user_id=user_id,
                user_name=user_name,
                status=status,
                main_image_path=main_image_path,
            )
            if previous is not None:
                level.created_at = previous.created_at
            level.touch()
            condition = WriteCondition.versioned(previous.version) if previous else WriteCondition.new()
            stored = await self._store.put_item(dump_item(level), condition)
            transition["old"] = previous.status if previous else None
            return parse_as(stored, InterestLevel)

        level = await retry_async(
            write_canonical, retry_config=self._canonical_retry(), context=f"interest {user_id}@{hangout_id}"
        )

        entry = InterestEntry(
            user_id=user_id, user_name=user_name, status=status, main_image_path=main_image_path
        )
        await self._counter.apply_interest_transition(
            hangout.associated_groups, hangout_id, transition["old"], status
        )
        await self._synchronizer.sync_hangout_everywhere(
            hangout.associated_groups,
            hangout_id,
            lambda pointer: put_interest_entry(pointer, entry),
            reason=f"interest {status.value} by {user_id}",
        )
        await self._signal(hangout.associated_groups, f"interest on hangout {hangout_id}")
        log.debug(f"User {user_id} is {status.value} for hangout {hangout_id} (was {transition['old']})")
        return level

    async def remove_interest(self, hangout_id: str, user_id: str) -> bool:
        """Clear the user's interest level; False when there was none."""
        hangout = await self._repo.get_hangout(hangout_id)

        async def delete_canonical() -> Optional[InterestStatus]:
            previous = await self._repo.find_interest_level(hangout_id, user_id)
            if previous is None:
                return None
            await self._store.delete_item(previous.pk, previous.sk, WriteCondition.versioned(previous.version))
            return previous.status

        old = await retry_async(
            delete_canonical, retry_config=self._canonical_retry(), context=f"remove interest {user_id}@{hangout_id}"
        )
        if old is None:
            return False

        await self._counter.apply_interest_transition(hangout.associated_groups, hangout_id, old, None)
        await self._synchronizer.sync_hangout_everywhere(
            hangout.associated_groups,
            hangout_id,
            lambda pointer: drop_interest_entry(pointer, user_id),
            reason=f"interest removed by {user_id}",
        )
        await self._signal(hangout.associated_groups, f"interest on hangout {hangout_id}")
        return True

    async def _signal(self, group_ids: Iterable[str], reason: str) -> None:
        if self._signals is not None:
            await self._signals.partitions_changed(group_ids, reason)
