# =============================================================================
# File: inviter/services/infrastructure/membership_authorization.py
# Description: AuthorizationPort answered from group membership records
# =============================================================================

from __future__ import annotations

from inviter.config.logging_config import get_logger
from inviter.hangout.items import Hangout
from inviter.infra.read_repos.hangout_read_repo import HangoutReadRepo

log = get_logger("inviter.services.authorization")


class MembershipAuthorization:
    """
    Membership-based view/edit gate.

    * A group feed is visible to its members, or to anyone when the group is public.
    * A hangout is editable by its creator and by members of any associated group.
    """

    def __init__(self, read_repo: HangoutReadRepo):
        self._repo = read_repo

    async def can_view_group(self, user_id: str, group_id: str) -> bool:
        if await self._repo.get_membership(group_id, user_id) is not None:
            return True
        group = await self._repo.find_group(group_id)
        return bool(group and group.is_public)

    async def can_edit_hangout(self, user_id: str, hangout: Hangout) -> bool:
        if hangout.created_by and hangout.created_by == user_id:
            return True
        for group_id in hangout.associated_groups:
            if await self._repo.get_membership(group_id, user_id) is not None:
                return True
        log.debug(f"User {user_id} has no membership granting edit on hangout {hangout.hangout_id}")
        return False
