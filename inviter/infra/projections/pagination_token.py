# =============================================================================
# File: inviter/infra/projections/pagination_token.py
# Description: Opaque bidirectional cursors for group feeds
# =============================================================================
"""
Wire format: URL-safe base64 of the JSON record

    {"entityId": "<id>" | null, "timestamp": <epoch seconds>, "direction": "forward" | "backward"}

``entityId`` null means "start of window at ``timestamp``" rather than
"continue after this entity". Store continuation keys are rebuilt from the
fields structurally; no store key ever appears in a token.
"""

from __future__ import annotations

import base64
import binascii
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from inviter.common.exceptions.projection_exceptions import InvalidPaginationTokenError
from inviter.hangout.enums import FeedDirection
from inviter.hangout.ports.item_store_port import ContinuationKey


class FeedPaginationToken(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    entity_id: Optional[str] = Field(default=None, alias="entityId")
    timestamp: int
    direction: FeedDirection

    @classmethod
    def window_start(cls, timestamp: int, direction: FeedDirection) -> "FeedPaginationToken":
        """Token for a boundary the store did not produce (no entity to continue after)."""
        return cls(entity_id=None, timestamp=timestamp, direction=direction)

    @classmethod
    def from_continuation(cls, key: ContinuationKey, direction: FeedDirection) -> "FeedPaginationToken":
        return cls(entity_id=key.entity_id, timestamp=key.timestamp, direction=direction)

    @property
    def is_window_start(self) -> bool:
        return self.entity_id is None

    def to_continuation_key(self, partition_key: str) -> Optional[ContinuationKey]:
        """Store position to continue after, or None for a window start."""
        if self.entity_id is None:
            return None
        return ContinuationKey(partition_key=partition_key, timestamp=self.timestamp, entity_id=self.entity_id)

    def encode(self) -> str:
        raw = self.model_dump_json(by_alias=True).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> "FeedPaginationToken":
        if not token or not isinstance(token, str):
            raise InvalidPaginationTokenError("Empty pagination token")
        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            return cls.model_validate_json(raw)
        except (binascii.Error, UnicodeError, ValueError, PydanticValidationError) as e:
            raise InvalidPaginationTokenError(f"Malformed pagination token: {e}") from e
