# =============================================================================
# File: inviter/utils/datetime_utils.py
# Description: Time helpers. Scheduling timestamps are epoch seconds.
# =============================================================================

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def epoch_seconds() -> int:
    """Current time in epoch seconds, the unit of start/end timestamps."""
    return int(time.time())


def epoch_millis() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)
