# =============================================================================
# File: inviter/hangout/ports/authorization_port.py
# Description: Port interface for view/edit authorization decisions
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from inviter.hangout.items import Hangout


@runtime_checkable
class AuthorizationPort(Protocol):
    """
    Port: Authorization gate

    Defined by: Hangout Domain
    Implemented by: MembershipAuthorization
        (inviter/services/infrastructure/membership_authorization.py)

    Opaque yes/no answers. Policy lives behind the port.
    """

    async def can_view_group(self, user_id: str, group_id: str) -> bool:
        ...

    async def can_edit_hangout(self, user_id: str, hangout: 'Hangout') -> bool:
        ...
