"""Ride repository with conditional state transitions."""

from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from ridehail.ride import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    Location,
    RideRating,
    RideStatus,
    VehicleType,
)
from ridehail.ride import Ride as RideDomain

from ..schema import Ride
from ..utils import utc_now

ACTIVE_VALUES = [s.value for s in ACTIVE_STATES]
TERMINAL_VALUES = [s.value for s in TERMINAL_STATES]


class RideRepository:
    """Repository for ride CRUD operations.

    Every status change goes through transition(), a single conditional UPDATE
    whose rowcount tells the caller whether it won the race.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        ride_id: str,
        customer_id: str,
        pickup: Location,
        dropoff: Location,
        distance_km: float,
        estimated_duration_min: int,
        fare_estimated: int,
        vehicle_type: VehicleType,
        requested_at: datetime,
        scheduled_time: datetime | None = None,
    ) -> None:
        """Create a new ride in REQUESTED state."""
        ride = Ride(
            id=ride_id,
            customer_id=customer_id,
            status=RideStatus.REQUESTED.value,
            pickup_address=pickup.address,
            pickup_lat=pickup.lat,
            pickup_lon=pickup.lon,
            dropoff_address=dropoff.address,
            dropoff_lat=dropoff.lat,
            dropoff_lon=dropoff.lon,
            distance_km=distance_km,
            estimated_duration_min=estimated_duration_min,
            fare_estimated=fare_estimated,
            vehicle_type=vehicle_type.value,
            scheduled_time=scheduled_time,
            requested_at=requested_at,
            updated_at=requested_at,
        )
        self.session.add(ride)
        self.session.flush()

    def get(self, ride_id: str) -> RideDomain | None:
        """Get ride by ID, returning domain model."""
        ride = self.session.get(Ride, ride_id)
        if ride is None:
            return None
        return self._to_domain(ride)

    def transition(
        self,
        ride_id: str,
        expected: Collection[RideStatus],
        new_status: RideStatus,
        **fields: Any,
    ) -> bool:
        """Move the ride to new_status only if it is currently in one of expected.

        Returns False when another writer got there first.
        """
        result = self.session.execute(
            update(Ride)
            .where(Ride.id == ride_id, Ride.status.in_([s.value for s in expected]))
            .values(status=new_status.value, updated_at=utc_now(), **fields)
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def set_rating(
        self,
        ride_id: str,
        role: str,
        rating: int,
        comment: str | None,
    ) -> bool:
        """Store a party's rating unless that party already rated the ride."""
        rating_column = Ride.rating_by_customer if role == "customer" else Ride.rating_by_driver
        values = (
            {"rating_by_customer": rating, "comment_by_customer": comment}
            if role == "customer"
            else {"rating_by_driver": rating, "comment_by_driver": comment}
        )
        result = self.session.execute(
            update(Ride)
            .where(
                Ride.id == ride_id,
                Ride.status.in_(TERMINAL_VALUES),
                rating_column.is_(None),
            )
            .values(updated_at=utc_now(), **values)
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def active_for_driver(self, driver_id: str) -> RideDomain | None:
        stmt = (
            select(Ride)
            .where(Ride.driver_id == driver_id, Ride.status.in_(ACTIVE_VALUES))
            .order_by(Ride.accepted_at.desc())
            .limit(1)
        )
        ride = self.session.execute(stmt).scalars().first()
        return self._to_domain(ride) if ride is not None else None

    def busy_driver_ids(self) -> set[str]:
        """Drivers currently assigned to or driving an active ride."""
        stmt = select(Ride.driver_id).where(
            Ride.status.in_(ACTIVE_VALUES), Ride.driver_id.is_not(None)
        )
        return {driver_id for driver_id in self.session.execute(stmt).scalars().all()}

    def list_by_customer(self, customer_id: str, limit: int = 50) -> list[RideDomain]:
        """List rides by customer ID, most recent first."""
        stmt = (
            select(Ride)
            .where(Ride.customer_id == customer_id)
            .order_by(Ride.requested_at.desc(), Ride.id.desc())
            .limit(limit)
        )
        result = self.session.execute(stmt)
        return [self._to_domain(r) for r in result.scalars().all()]

    def delete_terminal_by_customer(self, customer_id: str) -> int:
        """Delete completed and cancelled rides of a customer."""
        result = self.session.execute(
            delete(Ride).where(
                Ride.customer_id == customer_id, Ride.status.in_(TERMINAL_VALUES)
            )
        )
        return int(result.rowcount)  # type: ignore[attr-defined]

    def mark_dispatched(self, ride_id: str, dispatched_at: datetime) -> bool:
        """Record the first matching attempt. False if another caller already made it."""
        result = self.session.execute(
            update(Ride)
            .where(
                Ride.id == ride_id,
                Ride.status == RideStatus.REQUESTED.value,
                Ride.dispatched_at.is_(None),
            )
            .values(dispatched_at=dispatched_at, updated_at=utc_now())
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def list_due_scheduled(self, now: datetime) -> list[str]:
        """IDs of requested rides whose scheduled time has arrived but were never matched."""
        stmt = (
            select(Ride.id)
            .where(
                Ride.status == RideStatus.REQUESTED.value,
                Ride.dispatched_at.is_(None),
                Ride.scheduled_time.is_not(None),
                Ride.scheduled_time <= now,
            )
            .order_by(Ride.scheduled_time)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_unmatched_before(self, cutoff: datetime) -> list[str]:
        """IDs of requested rides whose request and scheduled time are both older than cutoff."""
        stmt = select(Ride.id).where(
            Ride.status == RideStatus.REQUESTED.value,
            Ride.requested_at < cutoff,
            or_(Ride.scheduled_time.is_(None), Ride.scheduled_time < cutoff),
        )
        return list(self.session.execute(stmt).scalars().all())

    def count_by_status(self, status: RideStatus) -> int:
        stmt = select(func.count()).select_from(Ride).where(Ride.status == status.value)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, ride: Ride) -> RideDomain:
        """Convert ORM model to domain model."""
        return RideDomain(
            ride_id=ride.id,
            customer_id=ride.customer_id,
            driver_id=ride.driver_id,
            status=RideStatus(ride.status),
            pickup=Location(address=ride.pickup_address, lat=ride.pickup_lat, lon=ride.pickup_lon),
            dropoff=Location(
                address=ride.dropoff_address, lat=ride.dropoff_lat, lon=ride.dropoff_lon
            ),
            distance_km=ride.distance_km,
            estimated_duration_min=ride.estimated_duration_min,
            fare_estimated=ride.fare_estimated,
            fare_final=ride.fare_final,
            platform_fee=ride.platform_fee,
            driver_earning=ride.driver_earning,
            vehicle_type=VehicleType(ride.vehicle_type),
            scheduled_time=ride.scheduled_time,
            requested_at=ride.requested_at,
            accepted_at=ride.accepted_at,
            started_at=ride.started_at,
            completed_at=ride.completed_at,
            cancelled_at=ride.cancelled_at,
            rating_by_customer=_rating(ride.rating_by_customer, ride.comment_by_customer),
            rating_by_driver=_rating(ride.rating_by_driver, ride.comment_by_driver),
            cancelled_by=ride.cancelled_by,  # type: ignore[arg-type]
            cancellation_reason=ride.cancellation_reason,
            refund_amount=ride.refund_amount,
            cancellation_penalty=ride.cancellation_penalty,
        )


def _rating(value: int | None, comment: str | None) -> RideRating | None:
    if value is None:
        return None
    return RideRating(rating=value, comment=comment or "")
