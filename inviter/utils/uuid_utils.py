# =============================================================================
# File: inviter/utils/uuid_utils.py
# Description: Identifier helpers for entities stored in the item table
# =============================================================================

import uuid
from typing import Optional


def generate_uuid_str() -> str:
    """Generate a new random UUID as string."""
    return str(uuid.uuid4())


def is_valid_uuid(value: Optional[str]) -> bool:
    """Check whether ``value`` parses as a UUID in canonical text form."""
    if not value or not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False
