"""Ride state machine and models."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from ridehail.core.exceptions import InvalidTransitionError


class RideStatus(str, Enum):
    """Ride lifecycle states."""

    REQUESTED = "requested"
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def to_event_type(self) -> str:
        """Convert state to the notification event type (e.g., 'ride_assigned')."""
        return _EVENT_TYPES[self]


_EVENT_TYPES: dict[RideStatus, str] = {
    RideStatus.REQUESTED: "ride_request",
    RideStatus.ASSIGNED: "ride_assigned",
    RideStatus.EN_ROUTE: "ride_started",
    RideStatus.COMPLETED: "ride_completed",
    RideStatus.CANCELLED: "ride_cancelled",
}


class VehicleType(str, Enum):
    BIKE = "bike"
    CAR = "car"
    SHUTTLE = "shuttle"
    SPECIAL = "special"


VALID_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {RideStatus.ASSIGNED, RideStatus.CANCELLED},
    RideStatus.ASSIGNED: {RideStatus.EN_ROUTE, RideStatus.CANCELLED},
    RideStatus.EN_ROUTE: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

TERMINAL_STATES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})
ACTIVE_STATES = frozenset({RideStatus.ASSIGNED, RideStatus.EN_ROUTE})
CANCELLABLE_STATES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if RideStatus.CANCELLED in targets
)

CancelledBy = Literal["customer", "driver", "system"]


class Location(BaseModel):
    """Pickup or dropoff point."""

    address: str = Field(min_length=1)
    lat: float
    lon: float

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lon)


class PartySummary(BaseModel):
    """Public profile of a ride participant embedded in ride snapshots."""

    account_id: str
    name: str
    phone: str | None = None
    rating: float | None = None
    vehicle_type: str | None = None
    vehicle_plate: str | None = None


class RideRating(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = ""


class Ride(BaseModel):
    """Ride snapshot with state machine checks."""

    ride_id: str
    customer_id: str
    driver_id: str | None = None
    status: RideStatus = Field(default=RideStatus.REQUESTED)
    pickup: Location
    dropoff: Location
    distance_km: float
    estimated_duration_min: int
    fare_estimated: int
    fare_final: int | None = None
    platform_fee: int | None = None
    driver_earning: int | None = None
    vehicle_type: VehicleType = VehicleType.CAR
    scheduled_time: datetime | None = None
    requested_at: datetime | None = None
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    rating_by_customer: RideRating | None = None
    rating_by_driver: RideRating | None = None
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    refund_amount: int | None = None
    cancellation_penalty: int | None = None
    # Populated participant summaries (not stored on the ride row)
    customer: PartySummary | None = None
    driver: PartySummary | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: RideStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self.status]

    def check_transition(self, new_status: RideStatus) -> None:
        """Raise InvalidTransitionError if the ride cannot move to new_status."""
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Ride {self.ride_id} is already {self.status.value}",
                details={"ride_id": self.ride_id, "status": self.status.value},
            )
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Invalid transition from {self.status.value} to {new_status.value}",
                details={
                    "ride_id": self.ride_id,
                    "status": self.status.value,
                    "target": new_status.value,
                },
            )

    def party_role(self, account_id: str) -> Literal["customer", "driver"] | None:
        """Return which side of the ride account_id is on, if any."""
        if account_id == self.customer_id:
            return "customer"
        if self.driver_id is not None and account_id == self.driver_id:
            return "driver"
        return None
