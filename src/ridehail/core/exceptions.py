"""Standardized exception hierarchy for the ride-hailing core."""

from typing import Any


class RideHailError(Exception):
    """Base exception for all ride-hailing errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(RideHailError):
    """Errors that may succeed on retry."""

    pass


class PersistenceError(TransientError):
    """Database or state persistence failed after retries."""

    pass


class ConcurrentModificationError(TransientError):
    """A conditional write lost a race against another writer."""

    pass


class PermanentError(RideHailError):
    """Errors that will not succeed on retry."""

    pass


class ValidationError(PermanentError):
    """Invalid input or data format."""

    pass


class InvalidCoordinateError(ValidationError):
    """Latitude or longitude outside the valid range."""

    def __init__(self, lat: float, lon: float):
        super().__init__(
            f"Invalid coordinate ({lat}, {lon})",
            details={"lat": lat, "lon": lon},
        )


class InsufficientFundsError(PermanentError):
    """Wallet balance cannot cover a debit."""

    def __init__(self, account_id: str, required: int, available: int):
        super().__init__(
            f"Insufficient funds in account {account_id}",
            details={"account_id": account_id, "required": required, "available": available},
        )
        self.required = required
        self.available = available


class InsufficientBalanceError(InsufficientFundsError):
    """Customer wallet cannot cover the estimated fare of a ride request."""

    pass


class NotFoundError(PermanentError):
    """Requested entity does not exist."""

    pass


class UnauthorizedError(PermanentError):
    """Actor is not a party to the ride or account being mutated."""

    pass


class StateError(PermanentError):
    """Operation not permitted in the entity's current state."""

    pass


class InvalidTransitionError(StateError):
    """Ride lifecycle operation attempted from a state that does not permit it."""

    pass


class RideNoLongerAvailableError(InvalidTransitionError):
    """Ride was already claimed, cancelled or otherwise left the requested state."""

    pass


class AlreadyRatedError(StateError):
    """Party already rated this ride."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass
