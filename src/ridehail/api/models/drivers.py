"""Request and response models for driver endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from ridehail.matching.driver_geospatial_index import DriverAvailability
from ridehail.ride import Ride


class PositionRequest(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class DriverStatusResponse(BaseModel):
    message: str
    status: Literal["online", "offline"]
    availability: DriverAvailability | None = None


class ActiveRideResponse(BaseModel):
    ride: Ride | None
