# =============================================================================
# File: inviter/hangout/enums.py
# Description: Enumerations for the hangout domain
# =============================================================================

from enum import Enum


class ItemType(str, Enum):
    """Type tag stored on every row of the item table"""
    GROUP = "GROUP"
    GROUP_MEMBERSHIP = "GROUP_MEMBERSHIP"
    HANGOUT = "HANGOUT"
    EVENT_SERIES = "EVENT_SERIES"
    HANGOUT_POINTER = "HANGOUT_POINTER"
    SERIES_POINTER = "SERIES_POINTER"
    INTEREST_LEVEL = "INTEREST_LEVEL"
    POLL = "POLL"
    POLL_OPTION = "POLL_OPTION"
    VOTE = "VOTE"
    HANGOUT_ATTRIBUTE = "HANGOUT_ATTRIBUTE"
    RESERVATION_OFFER = "RESERVATION_OFFER"
    PARTICIPATION = "PARTICIPATION"


FEED_ITEM_TYPES = (ItemType.HANGOUT_POINTER, ItemType.SERIES_POINTER)


class InterestStatus(str, Enum):
    """RSVP status of a user for a hangout"""
    GOING = "GOING"
    INTERESTED = "INTERESTED"
    NOT_GOING = "NOT_GOING"

    @property
    def counts_as_participant(self) -> bool:
        return self in (InterestStatus.GOING, InterestStatus.INTERESTED)


class HangoutVisibility(str, Enum):
    """Who may see a hangout"""
    PUBLIC = "PUBLIC"
    INVITE_ONLY = "INVITE_ONLY"


class SeriesType(str, Enum):
    """Kind of event series"""
    STANDARD = "STANDARD"
    WATCH_PARTY = "WATCH_PARTY"


class OfferType(str, Enum):
    """Reservation offer kinds"""
    TICKET = "TICKET"
    RESERVATION = "RESERVATION"


class OfferStatus(str, Enum):
    """Reservation offer lifecycle"""
    COLLECTING = "COLLECTING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ParticipationType(str, Enum):
    """Ticket/reservation participation states"""
    TICKET_NEEDED = "TICKET_NEEDED"
    TICKET_PURCHASED = "TICKET_PURCHASED"
    TICKET_EXTRA = "TICKET_EXTRA"
    SECTION = "SECTION"
    CLAIMED_SPOT = "CLAIMED_SPOT"


class GroupRole(str, Enum):
    """Membership role inside a group"""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class FeedDirection(str, Enum):
    """Pagination direction of a group feed"""
    FORWARD = "forward"
    BACKWARD = "backward"
