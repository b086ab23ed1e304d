"""Repository layer for database CRUD operations."""

from .account_repository import AccountRepository
from .driver_location_repository import DriverLocationRepository
from .ride_repository import RideRepository

__all__ = [
    "AccountRepository",
    "DriverLocationRepository",
    "RideRepository",
]
