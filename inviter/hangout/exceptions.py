# =============================================================================
# File: inviter/hangout/exceptions.py
# Description: Hangout domain exceptions
# =============================================================================

from inviter.common.exceptions.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


class HangoutNotFoundError(NotFoundError):
    """Raised when a hangout canonical record does not exist"""

    def __init__(self, hangout_id: str):
        self.hangout_id = hangout_id
        super().__init__(f"Hangout not found: {hangout_id}")


class SeriesNotFoundError(NotFoundError):
    """Raised when an event series canonical record does not exist"""

    def __init__(self, series_id: str):
        self.series_id = series_id
        super().__init__(f"Event series not found: {series_id}")


class ReservationOfferNotFoundError(NotFoundError):
    """Raised when a reservation offer does not exist"""

    def __init__(self, hangout_id: str, offer_id: str):
        self.hangout_id = hangout_id
        self.offer_id = offer_id
        super().__init__(f"Reservation offer {offer_id} not found on hangout {hangout_id}")


class PollNotFoundError(NotFoundError):
    """Raised when a poll or poll option does not exist"""
    pass


class HangoutNotInSeriesError(ValidationError):
    """Raised when a hangout is not a member of the series named in the request"""

    def __init__(self, hangout_id: str, series_id: str):
        self.hangout_id = hangout_id
        self.series_id = series_id
        super().__init__(f"Hangout {hangout_id} is not part of series {series_id}")


class HangoutAlreadyInSeriesError(ValidationError):
    """Raised when promoting a hangout that already belongs to a series"""

    def __init__(self, hangout_id: str, series_id: str):
        self.hangout_id = hangout_id
        self.series_id = series_id
        super().__init__(f"Hangout {hangout_id} already belongs to series {series_id}")


class OfferNotCollectingError(ValidationError):
    """Raised when spots are claimed on an offer that is no longer collecting"""
    pass


class CapacityExceededError(ConflictError):
    """Raised when a reservation offer has no spots left"""

    def __init__(self, offer_id: str, capacity: int):
        self.offer_id = offer_id
        self.capacity = capacity
        super().__init__(f"Reservation offer {offer_id} is full ({capacity} spots)")


class HangoutAccessDeniedError(AuthorizationError):
    """Raised when a user may not view or edit a hangout, series or group feed"""

    def __init__(self, user_id: str, target: str):
        self.user_id = user_id
        self.target = target
        super().__init__(f"User {user_id} is not allowed to access {target}")
