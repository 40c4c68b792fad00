# =============================================================================
# File: tests/unit/test_pagination_token.py
# Description: Feed cursor wire format
# =============================================================================

import base64
import json

import pytest

from inviter.common.exceptions.projection_exceptions import InvalidPaginationTokenError
from inviter.hangout.enums import FeedDirection
from inviter.hangout.ports.item_store_port import ContinuationKey
from inviter.infra.projections.pagination_token import FeedPaginationToken


def test_wire_format_is_base64_json():
    token = FeedPaginationToken(entity_id="abc", timestamp=1700000000, direction=FeedDirection.FORWARD)

    decoded = json.loads(base64.urlsafe_b64decode(token.encode()))

    assert decoded == {"entityId": "abc", "timestamp": 1700000000, "direction": "forward"}


def test_window_start_has_null_entity():
    token = FeedPaginationToken.window_start(1234, FeedDirection.BACKWARD)

    decoded = json.loads(base64.urlsafe_b64decode(token.encode()))

    assert decoded["entityId"] is None
    assert token.is_window_start
    assert token.to_continuation_key("GROUP#x") is None


def test_decode_accepts_unpadded_tokens():
    token = FeedPaginationToken(entity_id="e1", timestamp=5, direction=FeedDirection.BACKWARD)
    encoded = token.encode().rstrip("=")

    assert FeedPaginationToken.decode(encoded) == token


def test_continuation_key_is_rebuilt_structurally():
    key = ContinuationKey(partition_key="GROUP#g", timestamp=99, entity_id="h1")
    token = FeedPaginationToken.from_continuation(key, FeedDirection.FORWARD)

    again = FeedPaginationToken.decode(token.encode())

    assert again.to_continuation_key("GROUP#g") == key
    assert "GROUP#g" not in base64.urlsafe_b64decode(token.encode()).decode()


@pytest.mark.parametrize("garbage", [
    "",
    "%%%not-base64%%%",
    base64.urlsafe_b64encode(b"not json").decode(),
    base64.urlsafe_b64encode(b'{"timestamp": 1}').decode(),
    base64.urlsafe_b64encode(b'{"entityId": null, "timestamp": 1, "direction": "sideways"}').decode(),
    base64.urlsafe_b64encode(b'{"entityId": null, "timestamp": 1, "direction": "forward", "pk": "x"}').decode(),
])
def test_malformed_tokens_are_rejected(garbage):
    with pytest.raises(InvalidPaginationTokenError):
        FeedPaginationToken.decode(garbage)
