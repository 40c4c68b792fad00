# =============================================================================
# File: inviter/hangout/read_models.py
# Description: Feed read models assembled from group projections
# =============================================================================

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from inviter.hangout.enums import SeriesType
from inviter.hangout.items import (
    Address,
    AttributeEntry,
    HangoutPointer,
    InterestEntry,
    ParticipationSummary,
    PollSummary,
    SeriesPointer,
)


def part_sort_key(pointer: HangoutPointer):
    """Chronological order for series parts; unscheduled parts go last."""
    return (pointer.start_timestamp is None, pointer.start_timestamp or 0, pointer.hangout_id)


class HangoutSummary(BaseModel):
    """One hangout as shown in a group feed"""
    entry_type: Literal["hangout"] = "hangout"
    hangout_id: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    location: Optional[Address] = None
    main_image_path: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    series_id: Optional[str] = None
    participant_count: int = 0
    interest_levels: List[InterestEntry] = Field(default_factory=list)
    polls: List[PollSummary] = Field(default_factory=list)
    attributes: List[AttributeEntry] = Field(default_factory=list)
    participation_summary: ParticipationSummary = Field(default_factory=ParticipationSummary)

    @classmethod
    def from_pointer(cls, pointer: HangoutPointer) -> "HangoutSummary":
        return cls(
            hangout_id=pointer.hangout_id,
            title=pointer.title,
            description=pointer.description,
            status=pointer.status,
            location=pointer.location,
            main_image_path=pointer.main_image_path,
            start_timestamp=pointer.start_timestamp,
            end_timestamp=pointer.end_timestamp,
            series_id=pointer.series_id,
            participant_count=pointer.participant_count,
            interest_levels=list(pointer.interest_levels),
            polls=list(pointer.polls),
            attributes=list(pointer.attributes),
            participation_summary=pointer.participation_summary.model_copy(deep=True),
        )


class SeriesSummary(BaseModel):
    """A series collapsed into a single feed entry with its parts inside"""
    entry_type: Literal["series"] = "series"
    series_id: str
    series_title: str
    series_description: Optional[str] = None
    primary_event_id: Optional[str] = None
    main_image_path: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    event_series_type: SeriesType = SeriesType.STANDARD
    parts: List[HangoutSummary] = Field(default_factory=list)
    total_parts: int = 0

    @classmethod
    def from_pointer(cls, pointer: SeriesPointer) -> "SeriesSummary":
        parts = [HangoutSummary.from_pointer(p) for p in sorted(pointer.parts, key=part_sort_key)]
        return cls(
            series_id=pointer.series_id,
            series_title=pointer.series_title,
            series_description=pointer.series_description,
            primary_event_id=pointer.primary_event_id,
            main_image_path=pointer.main_image_path,
            start_timestamp=pointer.start_timestamp,
            end_timestamp=pointer.end_timestamp,
            event_series_type=pointer.event_series_type,
            parts=parts,
            total_parts=max(len(parts), len(pointer.hangout_ids)),
        )


FeedEntry = Annotated[Union[HangoutSummary, SeriesSummary], Field(discriminator="entry_type")]


class GroupFeed(BaseModel):
    """One page of a group's feed"""
    group_id: str
    items: List[FeedEntry] = Field(default_factory=list)
    # Hangouts (and series) without a start time; never part of the chronological list
    needs_day: List[FeedEntry] = Field(default_factory=list)
    # Entity id after which the next needs_day page starts; None when all were listed
    needs_day_cursor: Optional[str] = None
    next_page_token: Optional[str] = None
    previous_page_token: Optional[str] = None
