# =============================================================================
# File: inviter/infra/projections/counter_updater.py
# Description: Read-free delta updates of aggregate counters on projections
# =============================================================================

from __future__ import annotations

from typing import Iterable, Optional

from inviter.common.exceptions.exceptions import ValidationError
from inviter.common.exceptions.projection_exceptions import ItemNotFoundError
from inviter.config.logging_config import get_logger
from inviter.hangout import keys
from inviter.hangout.enums import InterestStatus
from inviter.hangout.ports.item_store_port import ItemStorePort

log = get_logger("inviter.projections.counter")

COUNTER_FIELDS = frozenset({"participant_count"})


def interest_delta(old: Optional[InterestStatus], new: Optional[InterestStatus]) -> int:
    """
    Participant count change for an RSVP transition.

    Only crossing the "going or interested" boundary moves the count.
    """
    before = 1 if old is not None and InterestStatus(old).counts_as_participant else 0
    after = 1 if new is not None and InterestStatus(new).counts_as_participant else 0
    return after - before


class AtomicCounterUpdater:
    """Applies signed deltas to whitelisted counters on hangout pointers."""

    def __init__(self, store: ItemStorePort):
        self._store = store

    async def adjust_counter(self, group_id: str, entity_id: str, field: str, delta: int) -> Optional[int]:
        """
        ``field = field + delta`` on the hangout pointer, without reading it.

        A zero delta issues no store call and returns None. Store or
        missing-record errors propagate; the business operation decides
        whether to retry.
        """
        if field not in COUNTER_FIELDS:
            raise ValidationError(f"{field} is not an adjustable counter")
        if delta == 0:
            return None

        value = await self._store.add_to_counter(
            keys.group_pk(group_id), keys.hangout_pointer_sk(entity_id), field, delta
        )
        log.debug(f"{field} of hangout {entity_id} in group {group_id} {delta:+d} -> {value}")
        return value

    async def apply_interest_transition(
            self,
            group_ids: Iterable[str],
            hangout_id: str,
            old: Optional[InterestStatus],
            new: Optional[InterestStatus],
    ) -> int:
        """
        Move ``participant_count`` in every group for an RSVP change.

        Groups whose pointer is missing are logged and skipped. Returns the
        delta applied per group.
        """
        delta = interest_delta(old, new)
        if delta == 0:
            return 0
        for group_id in group_ids:
            try:
                await self.adjust_counter(group_id, hangout_id, "participant_count", delta)
            except ItemNotFoundError:
                log.warning(f"No pointer for hangout {hangout_id} in group {group_id}; participant count not adjusted")
        return delta
