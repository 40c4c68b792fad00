# =============================================================================
# File: inviter/infra/projections/pointer_sync.py
# Description: Optimistic-concurrency read-modify-write for group projections
# =============================================================================
"""
Pointer Synchronizer.

A sync cycle reads one projection, applies a mutation to a copy and writes
it back on the condition that the stored version is still the one read.
A rejected write means another writer got there first, so the cycle is
repeated from a fresh read, up to ``sync_max_attempts`` times.

Exhaustion is reported according to the caller's criticality:

* ``BEST_EFFORT`` - logged, ``False`` returned. The canonical write already
  succeeded and the projection is repaired by the next sync or a resync.
* ``REQUIRED`` - :class:`ConcurrencyExhaustedError` is raised.

A missing projection is always :class:`PointerNotFoundError`; projections
are only created by structural operations (or explicitly through
:meth:`PointerSynchronizer.upsert_projection`).

When a hangout pointer that belongs to a series is written, the copy of it
embedded in the same group's series pointer is refreshed through its own
sync cycle.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Type, Union

from inviter.common.exceptions.projection_exceptions import (
    ConcurrencyExhaustedError,
    ConditionalCheckFailedError,
    PointerNotFoundError,
)
from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout import keys
from inviter.hangout.enums import ItemType
from inviter.hangout.items import BaseItem, Hangout, HangoutPointer, SeriesPointer, dump_item, parse_as
from inviter.hangout.ports.item_store_port import ItemStorePort, WriteCondition
from inviter.infra.projections.pointer_factory import build_hangout_pointer, replace_part

log = get_logger("inviter.projections.sync")

Mutation = Callable[[BaseItem], Union[Optional[BaseItem], Awaitable[Optional[BaseItem]]]]

_POINTER_TYPES = {
    ItemType.HANGOUT_POINTER: (HangoutPointer, keys.hangout_pointer_sk),
    ItemType.SERIES_POINTER: (SeriesPointer, keys.series_pointer_sk),
}


class SyncCriticality(str, Enum):
    """How a caller wants retry exhaustion reported"""
    BEST_EFFORT = "best_effort"
    REQUIRED = "required"


class PointerSynchronizer:
    """Bounded-retry read-modify-write driver for hangout and series pointers."""

    def __init__(self, store: ItemStorePort, config: Optional[ProjectionConfig] = None):
        self._store = store
        self._config = config or get_projection_config()

    @property
    def max_attempts(self) -> int:
        return self._config.sync_max_attempts

    async def sync_projection(
            self,
            group_id: str,
            entity_id: str,
            mutate: Mutation,
            reason: str,
            item_type: ItemType = ItemType.HANGOUT_POINTER,
            criticality: SyncCriticality = SyncCriticality.BEST_EFFORT,
            mirror_into_series: bool = True,
    ) -> bool:
        """
        Apply ``mutate`` to the projection of ``entity_id`` in ``group_id``.

        ``mutate`` receives a private copy; it may change it in place (and
        return None) or return a replacement. It can be called more than
        once, so it must not have side effects of its own.

        Returns:
            True once written; False if attempts ran out (best effort only).

        Raises:
            PointerNotFoundError: the projection does not exist.
            ConcurrencyExhaustedError: attempts ran out (required only).
        """
        return await self._run_cycles(
            group_id, entity_id, mutate, reason, ItemType(item_type), criticality, mirror_into_series,
            create_missing=None,
        )

    async def upsert_projection(
            self,
            group_id: str,
            hangout: Hangout,
            mutate: Mutation,
            reason: str,
            criticality: SyncCriticality = SyncCriticality.BEST_EFFORT,
    ) -> bool:
        """
        Like :meth:`sync_projection` for a hangout pointer, but builds the
        pointer from ``hangout`` when it is missing instead of failing.

        Meant for reconciliation jobs that restore lost associations.
        """
        return await self._run_cycles(
            group_id, hangout.hangout_id, mutate, reason, ItemType.HANGOUT_POINTER, criticality, True,
            create_missing=lambda: build_hangout_pointer(hangout, group_id),
        )

    async def sync_hangout_everywhere(
            self,
            group_ids: Iterable[str],
            hangout_id: str,
            mutate: Mutation,
            reason: str,
    ) -> List[str]:
        """
        Best-effort sync of a hangout's pointer in every group.

        Returns the groups whose pointer was written.
        """
        synced: List[str] = []
        for group_id in group_ids:
            try:
                if await self.sync_projection(group_id, hangout_id, mutate, reason):
                    synced.append(group_id)
            except PointerNotFoundError:
                log.warning(f"No pointer for hangout {hangout_id} in group {group_id} ({reason}); skipped")
        return synced

    # =========================================================================
    # Internals
    # =========================================================================

    async def _run_cycles(
            self,
            group_id: str,
            entity_id: str,
            mutate: Mutation,
            reason: str,
            item_type: ItemType,
            criticality: SyncCriticality,
            mirror_into_series: bool,
            create_missing: Optional[Callable[[], BaseItem]],
    ) -> bool:
        model_cls, sk_builder = self._resolve(item_type)
        pk, sk = keys.group_pk(group_id), sk_builder(entity_id)

        for attempt in range(1, self.max_attempts + 1):
            raw = await self._store.get_item(pk, sk)

            if raw is None and create_missing is None:
                raise PointerNotFoundError(group_id, entity_id, item_type.value)

            if raw is None:
                current = create_missing()
                condition = WriteCondition.new()
            else:
                current = parse_as(raw, model_cls)
                condition = WriteCondition.versioned(current.version)

            updated = await self._apply(mutate, current.model_copy(deep=True))
            updated.touch()

            try:
                stored = await self._store.put_item(dump_item(updated), condition)
            except ConditionalCheckFailedError as e:
                log.debug(
                    f"Version conflict on {item_type.value} {entity_id} in group {group_id} "
                    f"(attempt {attempt}/{self.max_attempts}, {reason}): {e.reason}"
                )
                if self._config.sync_retry_delay_ms:
                    await asyncio.sleep(self._config.sync_retry_delay_ms / 1000)
                continue

            written = parse_as(stored, model_cls)
            log.debug(f"Synced {item_type.value} {entity_id} in group {group_id} to v{written.version} ({reason})")

            if mirror_into_series and isinstance(written, HangoutPointer) and written.series_id:
                await self._mirror_into_series(written, reason)
            return True

        target = f"{item_type.value} {entity_id} in group {group_id}"
        if criticality is SyncCriticality.REQUIRED:
            log.error(f"Sync of {target} exhausted {self.max_attempts} attempts ({reason})")
            raise ConcurrencyExhaustedError(target, self.max_attempts, reason)

        log.warning(f"Sync of {target} gave up after {self.max_attempts} attempts ({reason}); left for repair")
        return False

    @staticmethod
    def _resolve(item_type: ItemType) -> tuple[Type[BaseItem], Callable[[str], str]]:
        try:
            return _POINTER_TYPES[item_type]
        except KeyError:
            raise ValueError(f"{item_type.value} is not a group projection") from None

    @staticmethod
    async def _apply(mutate: Mutation, working: BaseItem) -> BaseItem:
        result = mutate(working)
        if inspect.isawaitable(result):
            result = await result
        return working if result is None else result

    async def _mirror_into_series(self, pointer: HangoutPointer, reason: str) -> None:
        def embed(series_pointer: SeriesPointer) -> None:
            replace_part(series_pointer, pointer)

        try:
            await self.sync_projection(
                pointer.group_id,
                pointer.series_id,
                embed,
                reason=f"{reason} (series part)",
                item_type=ItemType.SERIES_POINTER,
                mirror_into_series=False,
            )
        except PointerNotFoundError:
            log.warning(
                f"Series pointer {pointer.series_id} missing in group {pointer.group_id} "
                f"while mirroring hangout {pointer.hangout_id}; left for repair"
            )
