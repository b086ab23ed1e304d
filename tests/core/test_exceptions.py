"""Tests for the exception hierarchy."""

import pytest

from ridehail.core.exceptions import (
    AlreadyRatedError,
    ConcurrentModificationError,
    InsufficientBalanceError,
    InsufficientFundsError,
    InvalidCoordinateError,
    InvalidTransitionError,
    NotFoundError,
    PermanentError,
    PersistenceError,
    RideHailError,
    RideNoLongerAvailableError,
    StateError,
    TransientError,
    UnauthorizedError,
    ValidationError,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    @pytest.mark.parametrize("exc_type", [PersistenceError, ConcurrentModificationError])
    def test_transient_errors(self, exc_type):
        assert issubclass(exc_type, TransientError)
        assert not issubclass(exc_type, PermanentError)

    @pytest.mark.parametrize(
        "exc_type",
        [
            ValidationError,
            InvalidCoordinateError,
            InsufficientFundsError,
            NotFoundError,
            UnauthorizedError,
            StateError,
            AlreadyRatedError,
        ],
    )
    def test_permanent_errors(self, exc_type):
        assert issubclass(exc_type, PermanentError)
        assert issubclass(exc_type, RideHailError)

    def test_no_longer_available_is_invalid_transition(self):
        assert issubclass(RideNoLongerAvailableError, InvalidTransitionError)
        assert issubclass(InvalidTransitionError, StateError)

    def test_message_and_details(self):
        error = NotFoundError("Ride r1 not found", details={"ride_id": "r1"})
        assert str(error) == "Ride r1 not found"
        assert error.message == "Ride r1 not found"
        assert error.details == {"ride_id": "r1"}

    def test_details_default_to_empty(self):
        assert StateError("nope").details == {}


@pytest.mark.unit
class TestInsufficientFunds:
    def test_carries_required_and_available(self):
        error = InsufficientFundsError("c1", required=118, available=50)
        assert error.required == 118
        assert error.available == 50
        assert error.details == {"account_id": "c1", "required": 118, "available": 50}

    def test_balance_error_is_funds_error(self):
        error = InsufficientBalanceError("c1", 118, 50)
        assert isinstance(error, InsufficientFundsError)
        assert error.required == 118


@pytest.mark.unit
def test_invalid_coordinate_message():
    error = InvalidCoordinateError(91.0, 10.0)
    assert "91.0" in error.message
    assert isinstance(error, ValidationError)
