# =============================================================================
# File: inviter/services/application/poll_service.py
# Description: Polls and votes with tallies mirrored into group pointers
# =============================================================================

from __future__ import annotations

from typing import Iterable, List, Optional

from inviter.common.exceptions.exceptions import ValidationError
from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout.exceptions import PollNotFoundError
from inviter.hangout.items import Hangout, HangoutPointer, Poll, PollOption, Vote
from inviter.hangout.ports.change_signal_port import ChangeSignalPort
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.infra.projections.pointer_factory import poll_summaries, put_poll_summary
from inviter.infra.projections.pointer_sync import PointerSynchronizer
from inviter.infra.projections.transaction_batch import TransactionBatch
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo
from inviter.utils.uuid_utils import generate_uuid_str

log = get_logger("inviter.services.poll")


class PollService:
    """
    Poll records live under the hangout; each pointer carries a summary
    with per-option vote counts.

    The summary is recomputed from the vote records inside the sync
    mutation, so a cycle retried after a conflict counts the votes again
    and the last write always reflects votes it read after its own.
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
        self._signals = signals

    async def create_poll(
            self,
            hangout_id: str,
            title: str,
            options: List[str],
            multiple_choice: bool = False,
            description: Optional[str] = None,
    ) -> Poll:
        if not options:
            raise ValidationError("A poll needs at least one option")
        hangout = await self._repo.get_hangout(hangout_id)

        poll = Poll(
            hangout_id=hangout_id,
            poll_id=generate_uuid_str(),
            title=title,
            description=description,
            multiple_choice=multiple_choice,
        )
        batch = TransactionBatch(f"create poll {poll.poll_id}").put_new(poll)
        for text in options:
            batch.put_new(PollOption(
                hangout_id=hangout_id, poll_id=poll.poll_id, option_id=generate_uuid_str(), text=text
            ))
        await batch.submit(self._store)

        await self._sync_tallies(hangout, poll.poll_id, f"create poll {poll.poll_id}")
        return poll

    async def vote(self, hangout_id: str, poll_id: str, option_id: str, user_id: str) -> Vote:
        """Record a vote; on single choice polls it replaces the user's other votes."""
        hangout = await self._repo.get_hangout(hangout_id)
        records = await self._repo.list_poll_records(hangout_id, poll_id)
        poll = next((r for r in records if isinstance(r, Poll)), None)
        if poll is None:
            raise PollNotFoundError(f"Poll {poll_id} not found on hangout {hangout_id}")
        if not any(isinstance(r, PollOption) and r.option_id == option_id for r in records):
            raise PollNotFoundError(f"Option {option_id} not found on poll {poll_id}")

        vote = Vote(hangout_id=hangout_id, poll_id=poll_id, option_id=option_id, user_id=user_id)
        batch = TransactionBatch(f"vote on poll {poll_id}")
        if not poll.multiple_choice:
            for other in records:
                if isinstance(other, Vote) and other.user_id == user_id and other.option_id != option_id:
                    batch.delete_item(other, versioned=False)
        batch.put(vote)
        await batch.submit(self._store)

        await self._sync_tallies(hangout, poll_id, f"vote on poll {poll_id}")
        return vote

    async def remove_vote(self, hangout_id: str, poll_id: str, option_id: str, user_id: str) -> None:
        hangout = await self._repo.get_hangout(hangout_id)
        vote = Vote(hangout_id=hangout_id, poll_id=poll_id, option_id=option_id, user_id=user_id)
        await self._store.delete_item(vote.pk, vote.sk)
        await self._sync_tallies(hangout, poll_id, f"remove vote on poll {poll_id}")

    async def _sync_tallies(self, hangout: Hangout, poll_id: str, reason: str) -> None:
        async def retally(pointer: HangoutPointer) -> HangoutPointer:
            summaries = poll_summaries(await self._repo.list_poll_records(hangout.hangout_id, poll_id))
            for summary in summaries:
                put_poll_summary(pointer, summary)
            return pointer

        await self._synchronizer.sync_hangout_everywhere(hangout.associated_groups, hangout.hangout_id, retally, reason)
        await self._signal(hangout.associated_groups, reason)

    async def _signal(self, group_ids: Iterable[str], reason: str) -> None:
        if self._signals is not None:
            await self._signals.partitions_changed(group_ids, reason)
