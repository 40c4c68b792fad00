# =============================================================================
# File: inviter/infra/projections/pointer_factory.py
# Description: Builders that derive group projections from canonical records
# =============================================================================

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple, Union

from inviter.hangout.enums import ParticipationType
from inviter.hangout.items import (
    AttributeEntry,
    BaseItem,
    EventSeries,
    Hangout,
    HangoutAttribute,
    HangoutPointer,
    InterestEntry,
    InterestLevel,
    OfferEntry,
    ParticipantEntry,
    Participation,
    ParticipationSummary,
    Poll,
    PollOption,
    PollOptionTally,
    PollSummary,
    ReservationOffer,
    SeriesPointer,
    Vote,
)
from inviter.hangout.read_models import part_sort_key


def apply_hangout_fields(pointer: HangoutPointer, hangout: Hangout) -> HangoutPointer:
    """Copy the display fields of ``hangout`` onto ``pointer`` (in place)."""
    pointer.title = hangout.title
    pointer.description = hangout.description
    pointer.location = hangout.location.model_copy() if hangout.location else None
    pointer.main_image_path = hangout.main_image_path
    pointer.start_timestamp = hangout.start_timestamp
    pointer.end_timestamp = hangout.end_timestamp
    pointer.visibility = hangout.visibility
    pointer.series_id = hangout.series_id
    pointer.carpool_enabled = hangout.carpool_enabled
    return pointer


def build_hangout_pointer(
        hangout: Hangout,
        group_id: str,
        previous: Optional[HangoutPointer] = None,
) -> HangoutPointer:
    """
    New pointer for ``hangout`` in ``group_id``.

    Aggregates (counts, interest levels, polls, attributes, participation
    summary) are carried over from ``previous`` when given.
    """
    pointer = HangoutPointer(group_id=group_id, hangout_id=hangout.hangout_id, title=hangout.title)
    if previous is not None:
        pointer.status = previous.status
        pointer.participant_count = previous.participant_count
        pointer.interest_levels = [e.model_copy() for e in previous.interest_levels]
        pointer.polls = [p.model_copy(deep=True) for p in previous.polls]
        pointer.attributes = [a.model_copy() for a in previous.attributes]
        pointer.participation_summary = previous.participation_summary.model_copy(deep=True)
    pointer.touch()
    return apply_hangout_fields(pointer, hangout)


def series_bounds(
        members: Iterable[Union[Hangout, HangoutPointer]],
) -> Tuple[Optional[int], Optional[int]]:
    """Earliest start and latest end across ``members``."""
    starts: List[int] = []
    ends: List[int] = []
    for member in members:
        if member.start_timestamp is not None:
            starts.append(member.start_timestamp)
        end = member.end_timestamp if member.end_timestamp is not None else member.start_timestamp
        if end is not None:
            ends.append(end)
    return (min(starts) if starts else None), (max(ends) if ends else None)


def refresh_series_pointer(pointer: SeriesPointer) -> SeriesPointer:
    """Re-sort parts and recompute ids and bounds after ``parts`` changed."""
    pointer.parts = sorted(pointer.parts, key=part_sort_key)
    pointer.hangout_ids = [p.hangout_id for p in pointer.parts]
    pointer.start_timestamp, pointer.end_timestamp = series_bounds(pointer.parts)
    return pointer


def apply_series_fields(pointer: SeriesPointer, series: EventSeries) -> SeriesPointer:
    pointer.series_title = series.series_title
    pointer.series_description = series.series_description
    pointer.primary_event_id = series.primary_event_id
    pointer.main_image_path = series.main_image_path
    pointer.event_series_type = series.event_series_type
    return pointer


def build_series_pointer(series: EventSeries, group_id: str, parts: List[HangoutPointer]) -> SeriesPointer:
    """Series pointer for ``group_id`` embedding ``parts``."""
    pointer = SeriesPointer(
        group_id=group_id,
        series_id=series.series_id,
        series_title=series.series_title,
        parts=[p.model_copy(deep=True) for p in parts],
    )
    pointer.touch()
    apply_series_fields(pointer, series)
    return refresh_series_pointer(pointer)


def replace_part(pointer: SeriesPointer, part: HangoutPointer) -> bool:
    """
    Put ``part`` into ``pointer.parts`` replacing the copy with the same id.

    A copy older than the one already embedded is ignored. Returns whether
    the parts list changed.
    """
    for index, existing in enumerate(pointer.parts):
        if existing.hangout_id == part.hangout_id:
            if existing.version > part.version:
                return False
            pointer.parts[index] = part.model_copy(deep=True)
            refresh_series_pointer(pointer)
            return True
    pointer.parts.append(part.model_copy(deep=True))
    refresh_series_pointer(pointer)
    return True


def remove_part(pointer: SeriesPointer, hangout_id: str) -> SeriesPointer:
    pointer.parts = [p for p in pointer.parts if p.hangout_id != hangout_id]
    return refresh_series_pointer(pointer)


# =============================================================================
# Partition-local aggregates from child records
# =============================================================================

def interest_entries(levels: Iterable[InterestLevel]) -> List[InterestEntry]:
    return [
        InterestEntry(
            user_id=level.user_id,
            user_name=level.user_name,
            status=level.status,
            main_image_path=level.main_image_path,
        )
        for level in levels
    ]


def participant_count(levels: Iterable[InterestLevel]) -> int:
    return sum(1 for level in levels if level.status.counts_as_participant)


def poll_summaries(records: Iterable[BaseItem]) -> List[PollSummary]:
    """Summaries with vote tallies for every poll among ``records``."""
    polls: List[Poll] = []
    options: Dict[str, List[PollOption]] = {}
    votes: Dict[str, List[Vote]] = {}
    for record in records:
        if isinstance(record, Poll):
            polls.append(record)
        elif isinstance(record, PollOption):
            options.setdefault(record.poll_id, []).append(record)
        elif isinstance(record, Vote):
            votes.setdefault(record.poll_id, []).append(record)

    summaries = []
    for poll in polls:
        poll_votes = votes.get(poll.poll_id, [])
        tallies = [
            PollOptionTally(
                option_id=option.option_id,
                text=option.text,
                vote_count=sum(1 for v in poll_votes if v.option_id == option.option_id),
            )
            for option in options.get(poll.poll_id, [])
        ]
        summaries.append(PollSummary(
            poll_id=poll.poll_id,
            title=poll.title,
            multiple_choice=poll.multiple_choice,
            is_active=poll.is_active,
            options=tallies,
            total_votes=len(poll_votes),
        ))
    return summaries


def attribute_entries(attributes: Iterable[HangoutAttribute]) -> List[AttributeEntry]:
    return [
        AttributeEntry(attribute_id=a.attribute_id, attribute_name=a.attribute_name, string_value=a.string_value)
        for a in attributes
    ]


def participation_summary(
        participations: Iterable[Participation],
        offers: Iterable[ReservationOffer],
        levels: Iterable[InterestLevel] = (),
) -> ParticipationSummary:
    """
    Summary of a hangout's participations and offers.

    Users are bucketed by participation type and listed once per bucket, the
    first participation winning. Names and images come from the user's
    interest level on the hangout when there is one.
    """
    profiles = {level.user_id: level for level in levels}
    buckets: Dict[ParticipationType, List[ParticipantEntry]] = {
        ParticipationType.TICKET_NEEDED: [],
        ParticipationType.TICKET_PURCHASED: [],
        ParticipationType.CLAIMED_SPOT: [],
    }
    extra_tickets = 0

    for participation in participations:
        if participation.participation_type is ParticipationType.TICKET_EXTRA:
            extra_tickets += 1
            continue
        bucket = buckets.get(participation.participation_type)
        if bucket is None or any(e.user_id == participation.user_id for e in bucket):
            continue
        profile = profiles.get(participation.user_id)
        bucket.append(ParticipantEntry(
            user_id=participation.user_id,
            display_name=profile.user_name if profile else None,
            main_image_path=profile.main_image_path if profile else None,
        ))

    return ParticipationSummary(
        users_needing_tickets=buckets[ParticipationType.TICKET_NEEDED],
        users_with_tickets=buckets[ParticipationType.TICKET_PURCHASED],
        users_with_claimed_spots=buckets[ParticipationType.CLAIMED_SPOT],
        extra_ticket_count=extra_tickets,
        reservation_offers=[
            OfferEntry(
                offer_id=offer.offer_id,
                offer_type=offer.offer_type,
                status=offer.status,
                capacity=offer.capacity,
                claimed_spots=offer.claimed_spots,
                ticket_count=offer.ticket_count,
                total_price=offer.total_price,
                completed_at=offer.completed_at,
            )
            for offer in offers
        ],
    )


# Single-entry edits used as sync mutations

def put_interest_entry(pointer: HangoutPointer, entry: InterestEntry) -> HangoutPointer:
    pointer.interest_levels = [e for e in pointer.interest_levels if e.user_id != entry.user_id] + [entry]
    return pointer


def drop_interest_entry(pointer: HangoutPointer, user_id: str) -> HangoutPointer:
    pointer.interest_levels = [e for e in pointer.interest_levels if e.user_id != user_id]
    return pointer


def put_poll_summary(pointer: HangoutPointer, summary: PollSummary) -> HangoutPointer:
    for index, existing in enumerate(pointer.polls):
        if existing.poll_id == summary.poll_id:
            pointer.polls[index] = summary
            return pointer
    pointer.polls.append(summary)
    return pointer


def put_attribute_entry(pointer: HangoutPointer, entry: AttributeEntry) -> HangoutPointer:
    for index, existing in enumerate(pointer.attributes):
        if existing.attribute_id == entry.attribute_id:
            pointer.attributes[index] = entry
            return pointer
    pointer.attributes.append(entry)
    return pointer


def drop_attribute_entry(pointer: HangoutPointer, attribute_id: str) -> HangoutPointer:
    pointer.attributes = [a for a in pointer.attributes if a.attribute_id != attribute_id]
    return pointer
