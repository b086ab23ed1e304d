"""Driver location repository backing the geospatial index."""

from collections.abc import Collection
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..schema import Account, DriverLocation


class DriverLocationRepository:
    """Repository for the one-row-per-driver location table."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(
        self,
        driver_id: str,
        lat: float,
        lon: float,
        h3_cell: str,
        updated_at: datetime,
        is_online: bool | None = None,
    ) -> DriverLocation:
        """Insert or update the driver's location row.

        is_online=None keeps the current flag (new rows default to online).
        """
        location = self.session.get(DriverLocation, driver_id)
        if location is None:
            location = DriverLocation(
                driver_id=driver_id,
                lat=lat,
                lon=lon,
                h3_cell=h3_cell,
                is_online=True if is_online is None else is_online,
                updated_at=updated_at,
            )
            self.session.add(location)
        else:
            location.lat = lat
            location.lon = lon
            location.h3_cell = h3_cell
            location.updated_at = updated_at
            if is_online is not None:
                location.is_online = is_online
        self.session.flush()
        return location

    def get(self, driver_id: str) -> DriverLocation | None:
        return self.session.get(DriverLocation, driver_id)

    def mark_offline(self, driver_id: str) -> bool:
        """Flag the row offline, keeping it as a tombstone. False if no row exists."""
        result = self.session.execute(
            update(DriverLocation)
            .where(DriverLocation.driver_id == driver_id)
            .values(is_online=False)
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def online_candidates(
        self,
        fresh_after: datetime,
        cells: Collection[str] | None = None,
    ) -> list[tuple[DriverLocation, Account | None]]:
        """Online rows updated after fresh_after, optionally limited to H3 cells."""
        stmt = (
            select(DriverLocation, Account)
            .outerjoin(Account, Account.id == DriverLocation.driver_id)
            .where(
                DriverLocation.is_online.is_(True),
                DriverLocation.updated_at >= fresh_after,
            )
        )
        if cells is not None:
            stmt = stmt.where(DriverLocation.h3_cell.in_(list(cells)))
        result = self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]
