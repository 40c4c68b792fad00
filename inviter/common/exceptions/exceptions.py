# inviter/common/exceptions/exceptions.py
# =============================================================================
# Custom exceptions for the Inviter projection engine
# =============================================================================


class InviterException(Exception):
    """Base exception for Inviter"""
    pass


class AuthorizationError(InviterException):
    """Raised when authorization fails"""
    pass


class ValidationError(InviterException):
    """Raised when validation fails"""
    pass


class NotFoundError(InviterException):
    """Raised when a resource is not found"""
    pass


class ConflictError(InviterException):
    """Raised when there's a conflict (stale version, duplicate, full capacity)"""
    pass


class InfrastructureError(InviterException):
    """Raised for infrastructure errors"""
    pass


class InvalidKeyError(ValidationError):
    """Raised when an id used to build a store key is not a valid UUID"""
    pass


class UnknownItemTypeError(ValidationError):
    """Raised when a stored row carries an item_type tag we cannot parse"""
    pass


class RepositoryError(InfrastructureError):
    """Raised when the underlying store driver fails"""
    pass
