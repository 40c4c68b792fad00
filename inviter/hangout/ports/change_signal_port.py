# =============================================================================
# File: inviter/hangout/ports/change_signal_port.py
# Description: Port interface for "partition changed" signals
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class ChangeSignalPort(Protocol):
    """
    Port: Change signals

    Defined by: Hangout Domain
    Implemented by: GroupTimestampSignaler
        (inviter/services/infrastructure/group_timestamp_signaler.py)

    Emitted after a write changes what a group's feed shows. Collaborators
    (cache invalidation, notifications) act on it; the engine never delivers
    notifications itself.
    """

    async def partitions_changed(self, group_ids: Iterable[str], reason: str) -> None:
        ...
