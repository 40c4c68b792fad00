# =============================================================================
# File: inviter/services/application/reservation_service.py
# Description: Reservation offers: bulk completion and capacity-checked spot claims
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from inviter.common.exceptions.exceptions import NotFoundError, ValidationError
from inviter.common.exceptions.projection_exceptions import ConcurrencyExhaustedError, TransactionCanceledError
from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig, get_projection_config
from inviter.hangout.enums import OfferStatus, ParticipationType
from inviter.hangout.exceptions import CapacityExceededError, HangoutAccessDeniedError, OfferNotCollectingError
from inviter.hangout.items import Hangout, HangoutPointer, Participation, ReservationOffer, dump_item, parse_as
from inviter.hangout.ports.authorization_port import AuthorizationPort
from inviter.hangout.ports.change_signal_port import ChangeSignalPort
from inviter.hangout.ports.item_store_port import ItemStorePort, WriteCondition
from inviter.infra.projections.pointer_factory import participation_summary
from inviter.infra.projections.pointer_sync import PointerSynchronizer
from inviter.infra.projections.transaction_batch import ChunkedSubmitReport, TransactionBatch
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo
from inviter.utils.datetime_utils import utc_now
from inviter.utils.uuid_utils import generate_uuid_str

log = get_logger("inviter.services.reservation")


class ReservationService:
    """
    Ticket and reservation coordination on a hangout.

    Completing an offer converts its TICKET_NEEDED participations in
    chunks below the transaction limit; a participation already converted
    is skipped, so a failed completion is finished by calling it again.

    Claiming and unclaiming a spot change ``claimed_spots`` and the
    CLAIMED_SPOT participation in one versioned transaction. These paths
    cannot accept a lost update: running out of attempts raises
    :class:`ConcurrencyExhaustedError`.

    After every change the participation summary on the hangout's pointers
    is rebuilt from the participation and offer records, the way poll
    tallies are.
    """

    def __init__(
            self,
            store: ItemStorePort,
            authorization: AuthorizationPort,
            config: Optional[ProjectionConfig] = None,
            signals: Optional[ChangeSignalPort] = None,
    ):
        self._store = store
        self._repo = HangoutReadRepo(store)
        self._authorization = authorization
        self._config = config or get_projection_config()
        self._synchronizer = PointerSynchronizer(store, self._config)
        self._signals = signals

    async def _require_access(self, user_id: str, hangout_id: str) -> Hangout:
        hangout = await self._repo.get_hangout(hangout_id)
        if not await self._authorization.can_edit_hangout(user_id, hangout):
            raise HangoutAccessDeniedError(user_id, f"hangout {hangout_id}")
        return hangout

    async def _sync_participation(self, hangout: Hangout, reason: str) -> None:
        async def resummarize(pointer: HangoutPointer) -> HangoutPointer:
            hangout_id = hangout.hangout_id
            pointer.participation_summary = participation_summary(
                await self._repo.list_participations(hangout_id),
                await self._repo.list_reservation_offers(hangout_id),
                await self._repo.list_interest_levels(hangout_id),
            )
            return pointer

        await self._synchronizer.sync_hangout_everywhere(hangout.associated_groups, hangout.hangout_id, resummarize, reason)
        if self._signals is not None:
            await self._signals.partitions_changed(hangout.associated_groups, reason)

    # =========================================================================
    # Completion
    # =========================================================================

    async def complete_offer(
            self,
            user_id: str,
            hangout_id: str,
            offer_id: str,
            convert_all: bool = True,
            participation_ids: Optional[List[str]] = None,
            ticket_count: Optional[int] = None,
            total_price: Optional[Decimal] = None,
    ) -> ChunkedSubmitReport:
        """
        Mark the offer completed and convert its TICKET_NEEDED participations
        to TICKET_PURCHASED.

        Raises:
            ValidationError: ``convert_all`` is false and no ids were given.
            OfferNotCollectingError: the offer was cancelled.
            PartialBulkWriteError: some chunks were applied; call again to resume.
        """
        if not convert_all and not participation_ids:
            raise ValidationError("participation_ids required when convert_all is false")
        hangout = await self._require_access(user_id, hangout_id)

        offer = await self._repo.get_reservation_offer(hangout_id, offer_id)
        if offer.status is OfferStatus.CANCELLED:
            raise OfferNotCollectingError(f"Reservation offer {offer_id} was cancelled")

        completed = offer.model_copy(deep=True)
        completed.status = OfferStatus.COMPLETED
        completed.completed_at = offer.completed_at or utc_now()
        if ticket_count is not None:
            completed.ticket_count = ticket_count
        if total_price is not None:
            completed.total_price = total_price
        completed.touch()
        await self._store.put_item(dump_item(completed), WriteCondition.versioned(offer.version))

        wanted = None if convert_all else set(participation_ids)
        pending = [
            p for p in await self._repo.list_participations(hangout_id)
            if p.participation_type is ParticipationType.TICKET_NEEDED
            and (p.reservation_offer_id == offer_id if wanted is None else p.participation_id in wanted)
        ]

        batch = TransactionBatch(f"complete offer {offer_id}")
        for participation in pending:
            converted = participation.model_copy(deep=True)
            converted.participation_type = ParticipationType.TICKET_PURCHASED
            batch.put_versioned(converted, participation.version)

        # A partly applied completion still changed participations
        try:
            report = await batch.submit_chunked(self._store, self._config.bulk_chunk_size)
        finally:
            await self._sync_participation(hangout, f"complete offer {offer_id}")
        log.info(
            f"Reservation offer {offer_id} on hangout {hangout_id} completed by {user_id}: "
            f"{report.items_applied} participations converted in {report.chunks_applied} chunks"
        )
        return report

    # =========================================================================
    # Spot claims
    # =========================================================================

    async def claim_spot(self, user_id: str, hangout_id: str, offer_id: str) -> Participation:
        """
        Take one spot of a capacity-limited offer.

        Raises:
            CapacityExceededError: every spot is taken.
            OfferNotCollectingError: the offer is completed, cancelled or unlimited.
            ConcurrencyExhaustedError: lost every race for the offer's version.
        """
        hangout = await self._require_access(user_id, hangout_id)
        attempts = self._config.sync_max_attempts

        for attempt in range(1, attempts + 1):
            offer = await self._repo.get_reservation_offer(hangout_id, offer_id)
            self._check_claimable(offer)

            claimed = offer.model_copy(deep=True)
            claimed.claimed_spots += 1
            participation = Participation(
                hangout_id=hangout_id,
                participation_id=generate_uuid_str(),
                user_id=user_id,
                participation_type=ParticipationType.CLAIMED_SPOT,
                reservation_offer_id=offer_id,
            )
            batch = (
                TransactionBatch(f"claim spot on offer {offer_id}")
                .put_versioned(claimed, offer.version)
                .put_new(participation)
            )
            try:
                await batch.submit(self._store)
            except TransactionCanceledError as e:
                log.debug(f"Claim on offer {offer_id} lost a race (attempt {attempt}/{attempts}): {e}")
                continue

            log.info(f"User {user_id} claimed spot {claimed.claimed_spots}/{offer.capacity} on offer {offer_id}")
            await self._sync_participation(hangout, f"claim spot on offer {offer_id}")
            return participation

        raise ConcurrencyExhaustedError(f"reservation offer {offer_id}", attempts, "claim spot")

    async def unclaim_spot(self, user_id: str, hangout_id: str, offer_id: str) -> None:
        """
        Give back the user's claimed spot.

        Raises:
            NotFoundError: the user holds no claimed spot on the offer.
            ConcurrencyExhaustedError: lost every race for the offer's version.
        """
        hangout = await self._require_access(user_id, hangout_id)
        attempts = self._config.sync_max_attempts

        for attempt in range(1, attempts + 1):
            offer = await self._repo.get_reservation_offer(hangout_id, offer_id)
            spot = next(
                (
                    p for p in await self._repo.list_participations(hangout_id)
                    if p.reservation_offer_id == offer_id
                    and p.user_id == user_id
                    and p.participation_type is ParticipationType.CLAIMED_SPOT
                ),
                None,
            )
            if spot is None:
                raise NotFoundError(f"User {user_id} has not claimed a spot on offer {offer_id}")

            released = offer.model_copy(deep=True)
            released.claimed_spots = max(0, offer.claimed_spots - 1)
            batch = (
                TransactionBatch(f"unclaim spot on offer {offer_id}")
                .put_versioned(released, offer.version)
                .delete_item(spot)
            )
            try:
                await batch.submit(self._store)
            except TransactionCanceledError as e:
                log.debug(f"Unclaim on offer {offer_id} lost a race (attempt {attempt}/{attempts}): {e}")
                continue

            log.info(f"User {user_id} released a spot on offer {offer_id}")
            await self._sync_participation(hangout, f"unclaim spot on offer {offer_id}")
            return

        raise ConcurrencyExhaustedError(f"reservation offer {offer_id}", attempts, "unclaim spot")

    @staticmethod
    def _check_claimable(offer: ReservationOffer) -> None:
        if offer.status is not OfferStatus.COLLECTING:
            raise OfferNotCollectingError(f"Reservation offer {offer.offer_id} is {offer.status.value}")
        if offer.capacity is None:
            raise OfferNotCollectingError(
                f"Reservation offer {offer.offer_id} has unlimited capacity; create a participation directly"
            )
        if offer.claimed_spots >= offer.capacity:
            raise CapacityExceededError(offer.offer_id, offer.capacity)

    async def create_offer(self, user_id: str, offer: ReservationOffer) -> ReservationOffer:
        """Store a new offer on its hangout."""
        hangout = await self._require_access(user_id, offer.hangout_id)
        created = offer.model_copy(deep=True)
        created.created_by = created.created_by or user_id
        created.touch()
        stored = parse_as(await self._store.put_item(dump_item(created), WriteCondition.new()), ReservationOffer)
        await self._sync_participation(hangout, f"create offer {stored.offer_id}")
        return stored
