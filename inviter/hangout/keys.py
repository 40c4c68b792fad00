# =============================================================================
# File: inviter/hangout/keys.py
# Description: Key factory for the single item table
# =============================================================================
"""
Every record lives under a ``(pk, sk)`` pair built from ``#`` delimited
segments. Ids are validated as UUIDs before they are embedded so a
malformed id can never address a neighbouring record.

    GROUP#{groupId}    METADATA                 group canonical record
    GROUP#{groupId}    USER#{userId}            membership
    GROUP#{groupId}    HANGOUT#{hangoutId}      hangout pointer
    GROUP#{groupId}    SERIES#{seriesId}        series pointer
    EVENT#{hangoutId}  METADATA                 hangout canonical record
    EVENT#{hangoutId}  ATTENDANCE#{userId}      interest level
    EVENT#{hangoutId}  POLL#{pollId}[#...]      poll, options, votes
    EVENT#{hangoutId}  ATTRIBUTE#{attributeId}  attribute
    EVENT#{hangoutId}  RESERVEOFFER#{offerId}   reservation offer
    EVENT#{hangoutId}  PARTICIPATION#{id}       participation
    SERIES#{seriesId}  METADATA                 series canonical record
"""

from typing import Optional

from inviter.common.exceptions.exceptions import InvalidKeyError
from inviter.utils.uuid_utils import is_valid_uuid

DELIMITER = "#"

GROUP_PREFIX = "GROUP"
EVENT_PREFIX = "EVENT"
SERIES_PREFIX = "SERIES"
HANGOUT_PREFIX = "HANGOUT"
USER_PREFIX = "USER"
ATTENDANCE_PREFIX = "ATTENDANCE"
POLL_PREFIX = "POLL"
OPTION_PREFIX = "OPTION"
VOTE_PREFIX = "VOTE"
ATTRIBUTE_PREFIX = "ATTRIBUTE"
RESERVE_OFFER_PREFIX = "RESERVEOFFER"
PARTICIPATION_PREFIX = "PARTICIPATION"
METADATA = "METADATA"


def validate_id(value: Optional[str], label: str = "id") -> str:
    if not is_valid_uuid(value):
        raise InvalidKeyError(f"Invalid {label}: {value!r}")
    return value.lower()


def _join(*parts: str) -> str:
    return DELIMITER.join(parts)


# Partition keys

def group_pk(group_id: str) -> str:
    return _join(GROUP_PREFIX, validate_id(group_id, "group id"))


def event_pk(hangout_id: str) -> str:
    return _join(EVENT_PREFIX, validate_id(hangout_id, "hangout id"))


def series_pk(series_id: str) -> str:
    return _join(SERIES_PREFIX, validate_id(series_id, "series id"))


# Sort keys

def metadata_sk() -> str:
    return METADATA


def membership_sk(user_id: str) -> str:
    return _join(USER_PREFIX, validate_id(user_id, "user id"))


def hangout_pointer_sk(hangout_id: str) -> str:
    return _join(HANGOUT_PREFIX, validate_id(hangout_id, "hangout id"))


def series_pointer_sk(series_id: str) -> str:
    return _join(SERIES_PREFIX, validate_id(series_id, "series id"))


def attendance_sk(user_id: str) -> str:
    return _join(ATTENDANCE_PREFIX, validate_id(user_id, "user id"))


def poll_sk(poll_id: str) -> str:
    return _join(POLL_PREFIX, validate_id(poll_id, "poll id"))


def poll_option_sk(poll_id: str, option_id: str) -> str:
    return _join(poll_sk(poll_id), OPTION_PREFIX, validate_id(option_id, "option id"))


def vote_sk(poll_id: str, user_id: str, option_id: str) -> str:
    return _join(
        poll_sk(poll_id),
        VOTE_PREFIX, validate_id(user_id, "user id"),
        OPTION_PREFIX, validate_id(option_id, "option id"),
    )


def attribute_sk(attribute_id: str) -> str:
    return _join(ATTRIBUTE_PREFIX, validate_id(attribute_id, "attribute id"))


def reservation_offer_sk(offer_id: str) -> str:
    return _join(RESERVE_OFFER_PREFIX, validate_id(offer_id, "offer id"))


def participation_sk(participation_id: str) -> str:
    return _join(PARTICIPATION_PREFIX, validate_id(participation_id, "participation id"))


# Sort key prefixes for partition scans

def prefix_of(segment: str) -> str:
    return segment + DELIMITER


ATTENDANCE_SK_PREFIX = prefix_of(ATTENDANCE_PREFIX)
POLL_SK_PREFIX = prefix_of(POLL_PREFIX)
ATTRIBUTE_SK_PREFIX = prefix_of(ATTRIBUTE_PREFIX)
PARTICIPATION_SK_PREFIX = prefix_of(PARTICIPATION_PREFIX)
RESERVE_OFFER_SK_PREFIX = prefix_of(RESERVE_OFFER_PREFIX)
MEMBERSHIP_SK_PREFIX = prefix_of(USER_PREFIX)


def extract_id(key: str, prefix: str) -> str:
    """``extract_id("GROUP#abc", GROUP_PREFIX) -> "abc"``"""
    head = prefix + DELIMITER
    if not key.startswith(head):
        raise InvalidKeyError(f"Key {key!r} does not start with {head!r}")
    return key[len(head):].split(DELIMITER, 1)[0]
