# =============================================================================
# File: inviter/hangout/items.py
# Description: Store rows of the single item table as a tagged union
# =============================================================================
"""
Canonical records, per-group projections ("pointers") and child records
share one table. Each row carries an ``item_type`` tag and is deserialised
through :func:`parse_item`, the only place raw rows become models.

Every model derives its ``pk``/``sk`` from its id fields when they are not
supplied, and exposes ``entity_id`` (the id used for feed ordering and
cursors). ``version`` starts at 1 and is advanced by the store on every
successful write to an existing row.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field, model_validator

from inviter.common.exceptions.exceptions import UnknownItemTypeError
from inviter.hangout import keys
from inviter.hangout.enums import (
    GroupRole,
    HangoutVisibility,
    InterestStatus,
    ItemType,
    OfferStatus,
    OfferType,
    ParticipationType,
    SeriesType,
)
from inviter.utils.datetime_utils import utc_now


# =============================================================================
# Embedded value objects
# =============================================================================

class Address(BaseModel):
    """Location of a hangout"""
    name: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class InterestEntry(BaseModel):
    """Denormalised interest level kept on a hangout pointer"""
    user_id: str
    user_name: Optional[str] = None
    status: InterestStatus
    main_image_path: Optional[str] = None


class PollOptionTally(BaseModel):
    option_id: str
    text: str
    vote_count: int = 0


class PollSummary(BaseModel):
    """Poll with its vote tallies, as shown on a hangout pointer"""
    poll_id: str
    title: str
    multiple_choice: bool = False
    is_active: bool = True
    options: List[PollOptionTally] = Field(default_factory=list)
    total_votes: int = 0


class AttributeEntry(BaseModel):
    attribute_id: str
    attribute_name: str
    string_value: Optional[str] = None


class ParticipantEntry(BaseModel):
    """A user in one bucket of a participation summary"""
    user_id: str
    display_name: Optional[str] = None
    main_image_path: Optional[str] = None


class OfferEntry(BaseModel):
    """Reservation offer as shown on a hangout pointer"""
    offer_id: str
    offer_type: OfferType = OfferType.TICKET
    status: OfferStatus = OfferStatus.COLLECTING
    capacity: Optional[int] = None
    claimed_spots: int = 0
    ticket_count: Optional[int] = None
    total_price: Optional[Decimal] = None
    completed_at: Optional[datetime] = None


class ParticipationSummary(BaseModel):
    """
    Ticket state of a hangout, rebuilt from its participations and offers.

    Each user is listed at most once per bucket. Extra tickets are only
    counted; section participations are not summarised.
    """
    users_needing_tickets: List[ParticipantEntry] = Field(default_factory=list)
    users_with_tickets: List[ParticipantEntry] = Field(default_factory=list)
    users_with_claimed_spots: List[ParticipantEntry] = Field(default_factory=list)
    extra_ticket_count: int = 0
    reservation_offers: List[OfferEntry] = Field(default_factory=list)


# =============================================================================
# Base item
# =============================================================================

class BaseItem(BaseModel):
    """Common columns of every row."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    pk: str
    sk: str
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("pk") and data.get("sk")):
            pk, sk = cls.build_keys(data)
            data = {**data, "pk": pk, "sk": sk}
        return data

    @classmethod
    def build_keys(cls, data: Dict[str, Any]) -> Tuple[str, str]:
        raise NotImplementedError(f"{cls.__name__} cannot derive its keys")

    @property
    def key(self) -> Tuple[str, str]:
        return self.pk, self.sk

    def touch(self) -> None:
        """Stamp modification time (and creation time for new rows)."""
        now = utc_now()
        if self.created_at is None:
            self.created_at = now
        self.updated_at = now


# =============================================================================
# Canonical records
# =============================================================================

class Group(BaseItem):
    item_type: Literal["GROUP"] = "GROUP"
    group_id: str
    group_name: str
    is_public: bool = False
    main_image_path: Optional[str] = None
    # Cache-invalidation marker bumped whenever the group's feed changes (epoch ms)
    last_hangout_modified: Optional[int] = None

    @classmethod
    def build_keys(cls, data):
        return keys.group_pk(data.get("group_id")), keys.metadata_sk()

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.group_id


class GroupMembership(BaseItem):
    item_type: Literal["GROUP_MEMBERSHIP"] = "GROUP_MEMBERSHIP"
    group_id: str
    user_id: str
    user_name: Optional[str] = None
    group_name: Optional[str] = None
    role: GroupRole = GroupRole.MEMBER

    @classmethod
    def build_keys(cls, data):
        return keys.group_pk(data.get("group_id")), keys.membership_sk(data.get("user_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.user_id


class Hangout(BaseItem):
    item_type: Literal["HANGOUT"] = "HANGOUT"
    hangout_id: str
    title: str
    description: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    location: Optional[Address] = None
    main_image_path: Optional[str] = None
    visibility: HangoutVisibility = HangoutVisibility.INVITE_ONLY
    associated_groups: List[str] = Field(default_factory=list)
    series_id: Optional[str] = None
    carpool_enabled: bool = False
    external_id: Optional[str] = None
    external_source: Optional[str] = None
    created_by: Optional[str] = None

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.metadata_sk()

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.hangout_id


class EventSeries(BaseItem):
    item_type: Literal["EVENT_SERIES"] = "EVENT_SERIES"
    series_id: str
    series_title: str
    series_description: Optional[str] = None
    primary_event_id: Optional[str] = None
    group_id: Optional[str] = None
    hangout_ids: List[str] = Field(default_factory=list)
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    main_image_path: Optional[str] = None
    event_series_type: SeriesType = SeriesType.STANDARD

    # Watch party settings
    season_id: Optional[str] = None
    default_host_id: Optional[str] = None
    default_time: Optional[str] = None
    day_of_week: Optional[int] = None
    timezone: Optional[str] = None
    deleted_episode_ids: List[str] = Field(default_factory=list)

    @classmethod
    def build_keys(cls, data):
        return keys.series_pk(data.get("series_id")), keys.metadata_sk()

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.series_id


# =============================================================================
# Projections (one per group)
# =============================================================================

class HangoutPointer(BaseItem):
    item_type: Literal["HANGOUT_POINTER"] = "HANGOUT_POINTER"
    group_id: str
    hangout_id: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    location: Optional[Address] = None
    main_image_path: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    visibility: HangoutVisibility = HangoutVisibility.INVITE_ONLY
    series_id: Optional[str] = None
    carpool_enabled: bool = False

    # Partition-local aggregates
    participant_count: int = 0
    interest_levels: List[InterestEntry] = Field(default_factory=list)
    polls: List[PollSummary] = Field(default_factory=list)
    attributes: List[AttributeEntry] = Field(default_factory=list)
    participation_summary: ParticipationSummary = Field(default_factory=ParticipationSummary)

    @classmethod
    def build_keys(cls, data):
        return keys.group_pk(data.get("group_id")), keys.hangout_pointer_sk(data.get("hangout_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.hangout_id


class SeriesPointer(BaseItem):
    item_type: Literal["SERIES_POINTER"] = "SERIES_POINTER"
    group_id: str
    series_id: str
    series_title: str
    series_description: Optional[str] = None
    primary_event_id: Optional[str] = None
    main_image_path: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    event_series_type: SeriesType = SeriesType.STANDARD
    hangout_ids: List[str] = Field(default_factory=list)
    # Full copies of the member hangout pointers of this group
    parts: List[HangoutPointer] = Field(default_factory=list)

    @classmethod
    def build_keys(cls, data):
        return keys.group_pk(data.get("group_id")), keys.series_pointer_sk(data.get("series_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.series_id

    def part_ids(self) -> List[str]:
        """Member ids from parts, falling back to hangout_ids when parts is empty."""
        if self.parts:
            return [p.hangout_id for p in self.parts]
        return list(self.hangout_ids)


# =============================================================================
# Child records of a hangout
# =============================================================================

class InterestLevel(BaseItem):
    item_type: Literal["INTEREST_LEVEL"] = "INTEREST_LEVEL"
    hangout_id: str
    user_id: str
    user_name: Optional[str] = None
    status: InterestStatus
    main_image_path: Optional[str] = None

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.attendance_sk(data.get("user_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.user_id


class Poll(BaseItem):
    item_type: Literal["POLL"] = "POLL"
    hangout_id: str
    poll_id: str
    title: str
    description: Optional[str] = None
    multiple_choice: bool = False
    is_active: bool = True

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.poll_sk(data.get("poll_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.poll_id


class PollOption(BaseItem):
    item_type: Literal["POLL_OPTION"] = "POLL_OPTION"
    hangout_id: str
    poll_id: str
    option_id: str
    text: str

    @classmethod
    def build_keys(cls, data):
        return (keys.event_pk(data.get("hangout_id")),
                keys.poll_option_sk(data.get("poll_id"), data.get("option_id")))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.option_id


class Vote(BaseItem):
    item_type: Literal["VOTE"] = "VOTE"
    hangout_id: str
    poll_id: str
    option_id: str
    user_id: str

    @classmethod
    def build_keys(cls, data):
        return (keys.event_pk(data.get("hangout_id")),
                keys.vote_sk(data.get("poll_id"), data.get("user_id"), data.get("option_id")))

    @computed_field
    @property
    def entity_id(self) -> str:
        return f"{self.user_id}{keys.DELIMITER}{self.option_id}"


class HangoutAttribute(BaseItem):
    item_type: Literal["HANGOUT_ATTRIBUTE"] = "HANGOUT_ATTRIBUTE"
    hangout_id: str
    attribute_id: str
    attribute_name: str
    string_value: Optional[str] = None

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.attribute_sk(data.get("attribute_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.attribute_id


class ReservationOffer(BaseItem):
    item_type: Literal["RESERVATION_OFFER"] = "RESERVATION_OFFER"
    hangout_id: str
    offer_id: str
    offer_type: OfferType = OfferType.TICKET
    status: OfferStatus = OfferStatus.COLLECTING
    capacity: Optional[int] = None
    claimed_spots: int = 0
    ticket_count: Optional[int] = None
    total_price: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.reservation_offer_sk(data.get("offer_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.offer_id


class Participation(BaseItem):
    item_type: Literal["PARTICIPATION"] = "PARTICIPATION"
    hangout_id: str
    participation_id: str
    user_id: str
    participation_type: ParticipationType
    reservation_offer_id: Optional[str] = None
    section: Optional[str] = None
    seat: Optional[str] = None

    @classmethod
    def build_keys(cls, data):
        return keys.event_pk(data.get("hangout_id")), keys.participation_sk(data.get("participation_id"))

    @computed_field
    @property
    def entity_id(self) -> str:
        return self.participation_id


# =============================================================================
# Tagged union
# =============================================================================

StoreItem = Annotated[
    Union[
        Group,
        GroupMembership,
        Hangout,
        EventSeries,
        HangoutPointer,
        SeriesPointer,
        InterestLevel,
        Poll,
        PollOption,
        Vote,
        HangoutAttribute,
        ReservationOffer,
        Participation,
    ],
    Field(discriminator="item_type"),
]

_ITEM_ADAPTER: TypeAdapter = TypeAdapter(StoreItem)
_KNOWN_TYPES = frozenset(t.value for t in ItemType)

ItemT = TypeVar("ItemT", bound=BaseItem)


def parse_item(raw: Dict[str, Any]) -> BaseItem:
    """Deserialise a raw row into its model, dispatching on ``item_type``."""
    tag = raw.get("item_type")
    if tag not in _KNOWN_TYPES:
        raise UnknownItemTypeError(f"Unknown item_type {tag!r} at {raw.get('pk')} / {raw.get('sk')}")
    return _ITEM_ADAPTER.validate_python(raw)


def parse_as(raw: Dict[str, Any], model_cls: Type[ItemT]) -> ItemT:
    """Deserialise a row that must be of ``model_cls``."""
    item = parse_item(raw)
    if not isinstance(item, model_cls):
        raise UnknownItemTypeError(
            f"Expected {model_cls.__name__} at {raw.get('pk')} / {raw.get('sk')}, got {raw.get('item_type')}"
        )
    return item


def dump_item(item: BaseItem) -> Dict[str, Any]:
    """Serialise a model into the JSON-compatible row the store persists."""
    return item.model_dump(mode="json")
