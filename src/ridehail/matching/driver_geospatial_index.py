"""Database-backed index of online drivers, queried through H3 cells.

Each driver has exactly one location row carrying the H3 cell of its last
position. Proximity queries collect candidate rows from a grid disk around the
query point and then filter them by haversine distance.
"""

import logging
import math
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

import h3
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from ridehail.db.repositories import (
    AccountRepository,
    DriverLocationRepository,
    RideRepository,
)
from ridehail.db.repositories.account_repository import (
    DRIVER_OFFLINE,
    DRIVER_ON_RIDE,
    DRIVER_ONLINE,
)
from ridehail.db.schema import DriverLocation
from ridehail.db.transaction import transaction
from ridehail.db.utils import utc_now
from ridehail.events.sink import EventSink
from ridehail.geo.distance import haversine_distance_m, validate_coordinate

from .notification_dispatch import NotificationDispatch

logger = logging.getLogger(__name__)

# Beyond this ring count the cell filter stops paying off and grows the IN list
MAX_GRID_K = 15


class DriverAvailability(BaseModel):
    driver_id: str
    lat: float
    lon: float
    h3_cell: str
    is_online: bool
    updated_at: datetime
    is_live: bool


class NearbyDriver(BaseModel):
    """A candidate driver returned by a proximity query."""

    driver_id: str
    lat: float
    lon: float
    distance_m: int
    is_placeholder: bool = False
    vehicle_type: str | None = None
    registered_at: datetime | None = None


class DriverGeospatialIndex:
    """Spatial index for driver availability using H3 hexagonal cells."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        event_sink: EventSink | NotificationDispatch,
        h3_resolution: int = 7,
        availability_ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._h3_resolution = h3_resolution
        self._ttl = timedelta(seconds=availability_ttl_seconds)
        self._clock = clock
        if isinstance(event_sink, NotificationDispatch):
            self._notifications = event_sink
        else:
            self._notifications = NotificationDispatch(event_sink, clock)
        self._edge_length_m = h3.average_hexagon_edge_length(h3_resolution, unit="m")

    def set_online(
        self, driver_id: str, lat: float, lon: float, session: Session | None = None
    ) -> DriverAvailability:
        """Mark the driver online at (lat, lon). Calling it twice is harmless."""
        validate_coordinate(lat, lon)
        with self._unit_of_work(session) as s:
            location = DriverLocationRepository(s).upsert(
                driver_id, lat, lon, self._get_h3_cell(lat, lon), self._clock(), is_online=True
            )
            AccountRepository(s).set_driver_status(
                driver_id, DRIVER_ONLINE, unless_status=DRIVER_ON_RIDE
            )
            availability = self._to_availability(location)
        logger.info(f"Driver {driver_id} online at cell {availability.h3_cell}")
        return availability

    def set_offline(self, driver_id: str, session: Session | None = None) -> None:
        """Mark the driver offline, keeping the location row."""
        with self._unit_of_work(session) as s:
            if not DriverLocationRepository(s).mark_offline(driver_id):
                logger.debug(f"Driver {driver_id} has no location row to take offline")
            AccountRepository(s).set_driver_status(
                driver_id, DRIVER_OFFLINE, unless_status=DRIVER_ON_RIDE
            )
        logger.info(f"Driver {driver_id} offline")

    def update_position(self, driver_id: str, lat: float, lon: float) -> DriverAvailability:
        """Refresh the driver's position and relay it to an active ride's customer."""
        validate_coordinate(lat, lon)
        with self._session_factory() as s, transaction(s):
            location = DriverLocationRepository(s).upsert(
                driver_id, lat, lon, self._get_h3_cell(lat, lon), self._clock()
            )
            availability = self._to_availability(location)
            active_ride = RideRepository(s).active_for_driver(driver_id)

        if active_ride is not None:
            self._notifications.notify_driver_location(active_ride, driver_id, lat, lon)
        return availability

    def get(self, driver_id: str, session: Session | None = None) -> DriverAvailability | None:
        with self._unit_of_work(session) as s:
            location = DriverLocationRepository(s).get(driver_id)
            return self._to_availability(location) if location is not None else None

    def find_nearest(
        self,
        lat: float,
        lon: float,
        radius_m: float,
        exclude: Callable[[str], bool] | None = None,
        session: Session | None = None,
    ) -> list[NearbyDriver]:
        """Online, non-stale drivers within radius_m of (lat, lon), nearest first.

        Ties on whole-meter distance go to real drivers over placeholders, then
        to the most recently registered driver.
        """
        validate_coordinate(lat, lon)
        if radius_m <= 0:
            return []

        cells = self._candidate_cells(lat, lon, radius_m)
        fresh_after = self._clock() - self._ttl

        with self._unit_of_work(session) as s:
            rows = DriverLocationRepository(s).online_candidates(fresh_after, cells)
            candidates: list[NearbyDriver] = []
            for location, account in rows:
                distance_m = haversine_distance_m(lat, lon, location.lat, location.lon)
                if distance_m > radius_m:
                    continue
                if exclude is not None and exclude(location.driver_id):
                    continue
                candidates.append(
                    NearbyDriver(
                        driver_id=location.driver_id,
                        lat=location.lat,
                        lon=location.lon,
                        distance_m=int(round(distance_m)),
                        is_placeholder=account.is_placeholder if account else False,
                        vehicle_type=account.vehicle_type if account else None,
                        registered_at=account.created_at if account else None,
                    )
                )

        candidates.sort(key=_ranking_key)
        return candidates

    def count_online(self, session: Session | None = None) -> int:
        with self._unit_of_work(session) as s:
            rows = DriverLocationRepository(s).online_candidates(self._clock() - self._ttl)
            return len(rows)

    def _candidate_cells(self, lat: float, lon: float, radius_m: float) -> set[str] | None:
        """Cells covering the search circle, or None when a full scan is cheaper."""
        k = math.ceil(radius_m / self._edge_length_m) + 1
        if k > MAX_GRID_K:
            return None
        return set(h3.grid_disk(self._get_h3_cell(lat, lon), k))

    def _get_h3_cell(self, lat: float, lon: float) -> str:
        return h3.latlng_to_cell(lat, lon, self._h3_resolution)

    def _to_availability(self, location: DriverLocation) -> DriverAvailability:
        return DriverAvailability(
            driver_id=location.driver_id,
            lat=location.lat,
            lon=location.lon,
            h3_cell=location.h3_cell,
            is_online=location.is_online,
            updated_at=location.updated_at,
            is_live=location.is_online and location.updated_at >= self._clock() - self._ttl,
        )

    @contextmanager
    def _unit_of_work(self, session: Session | None) -> Iterator[Session]:
        """Reuse the caller's session, or run in a transaction of our own."""
        if session is not None:
            yield session
            return
        with self._session_factory() as s, transaction(s):
            yield s


def _ranking_key(driver: NearbyDriver) -> tuple[int, bool, float]:
    registered = driver.registered_at.timestamp() if driver.registered_at else 0.0
    return (driver.distance_m, driver.is_placeholder, -registered)
