"""Pydantic models for API requests and responses."""

from ridehail.api.models.drivers import ActiveRideResponse, DriverStatusResponse, PositionRequest
from ridehail.api.models.health import HealthResponse
from ridehail.api.models.rides import (
    CancelRideRequest,
    ClearHistoryResponse,
    RateRideRequest,
    RideCreateRequest,
    RideListResponse,
    RideResponse,
)
from ridehail.api.models.wallet import (
    AddFundsRequest,
    AddFundsResponse,
    BalanceResponse,
    TransactionsResponse,
)

__all__ = [
    "ActiveRideResponse",
    "AddFundsRequest",
    "AddFundsResponse",
    "BalanceResponse",
    "CancelRideRequest",
    "ClearHistoryResponse",
    "DriverStatusResponse",
    "HealthResponse",
    "PositionRequest",
    "RateRideRequest",
    "RideCreateRequest",
    "RideListResponse",
    "RideResponse",
    "TransactionsResponse",
]
