"""Request and response models for ride endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from ridehail.ride import Location, Ride, VehicleType


class RideCreateRequest(BaseModel):
    pickup: Location
    dropoff: Location
    vehicle_type: VehicleType = VehicleType.CAR
    scheduled_time: datetime | None = Field(
        default=None, description="UTC time to pick up at; matching waits until then"
    )


class RideResponse(BaseModel):
    message: str | None = None
    ride: Ride


class RideListResponse(BaseModel):
    rides: list[Ride]


class CancelRideRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
    is_driver_late: bool = False


class RateRideRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)


class ClearHistoryResponse(BaseModel):
    message: str
    removed: int
