# =============================================================================
# File: inviter/services/application/group_feed_service.py
# Description: Authorized access to paginated group feeds
# =============================================================================

from __future__ import annotations

from typing import Optional

from inviter.config.logging_config import get_logger
from inviter.config.projection_config import ProjectionConfig
from inviter.hangout.enums import FeedDirection
from inviter.hangout.exceptions import HangoutAccessDeniedError
from inviter.hangout.ports.authorization_port import AuthorizationPort
from inviter.hangout.ports.item_store_port import ItemStorePort
from inviter.hangout.read_models import GroupFeed
from inviter.infra.projections.feed_assembler import FeedAssembler
from inviter.utils.datetime_utils import epoch_seconds

log = get_logger("inviter.services.group_feed")


class GroupFeedService:
    """Feed reads for a user: the view gate first, then one assembled page."""

    def __init__(
            self,
            store: ItemStorePort,
            authorization: AuthorizationPort,
            config: Optional[ProjectionConfig] = None,
    ):
        self._assembler = FeedAssembler(store, config)
        self._authorization = authorization

    async def _require_view(self, group_id: str, user_id: str) -> None:
        if not await self._authorization.can_view_group(user_id, group_id):
            log.info(f"User {user_id} denied feed of group {group_id}")
            raise HangoutAccessDeniedError(user_id, f"group {group_id}")

    async def get_group_feed(
            self,
            group_id: str,
            user_id: str,
            limit: Optional[int] = None,
            cursor: Optional[str] = None,
            direction: FeedDirection = FeedDirection.FORWARD,
            now: Optional[int] = None,
    ) -> GroupFeed:
        await self._require_view(group_id, user_id)
        return await self._assembler.assemble_feed(
            group_id,
            now if now is not None else epoch_seconds(),
            limit=limit,
            cursor=cursor,
            direction=direction,
        )

    async def get_unscheduled(
            self,
            group_id: str,
            user_id: str,
            cursor: Optional[str] = None,
            limit: Optional[int] = None,
    ) -> GroupFeed:
        """The next ``needs_day`` page, continuing from a feed's ``needs_day_cursor``."""
        await self._require_view(group_id, user_id)
        return await self._assembler.assemble_unscheduled(group_id, limit=limit, after=cursor)
