"""Ride state machine orchestration and settlement.

Each public operation is one unit of work: the ride row, the ledger entries
and the account status changes it touches commit together or not at all.
Notifications are queued while the transaction is open and dispatched only
after it commits.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from functools import partial
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from ridehail.core.exceptions import (
    AlreadyRatedError,
    ConcurrentModificationError,
    InsufficientBalanceError,
    InsufficientFundsError,
    InvalidTransitionError,
    NotFoundError,
    RideNoLongerAvailableError,
    StateError,
    UnauthorizedError,
    ValidationError,
)
from ridehail.core.retry import RetryConfig
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
from ridehail.db.transaction import transaction
from ridehail.db.utils import utc_now
from ridehail.fare import FareCalculator, round_currency
from ridehail.matching.driver_geospatial_index import DriverGeospatialIndex
from ridehail.matching.notification_dispatch import NotificationDispatch
from ridehail.metrics import prometheus_exporter as metrics
from ridehail.ride import (
    ACTIVE_STATES,
    CANCELLABLE_STATES,
    CancelledBy,
    Location,
    Ride,
    RideStatus,
    VehicleType,
)
from ridehail.ride_logging import log_ride_context
from ridehail.settings import Settings, get_settings
from ridehail.wallet.ledger import EarningsSummary, LedgerEntryType, WalletLedger

from .models import RideCancellation, RideSettlement

logger = logging.getLogger(__name__)

AfterCommit = list[Callable[[], object]]

DEFAULT_HISTORY_LIMIT = 50


class RideLifecycle:
    """Drives rides from request to completion or cancellation."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        fare_calculator: FareCalculator,
        geo_index: DriverGeospatialIndex,
        notifications: NotificationDispatch,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._fares = fare_calculator
        self._geo = geo_index
        self._notifications = notifications
        self._settings = settings or get_settings()
        self._clock = clock
        self._ledger_retry = RetryConfig(
            max_attempts=self._settings.wallet.ledger_retry_attempts,
            base_delay=0.01,
            max_delay=0.2,
            retryable_exceptions=(ConcurrentModificationError,),
        )

    # --- Requests and matching ---

    def request_ride(
        self,
        customer_id: str,
        pickup: Location,
        dropoff: Location,
        vehicle_type: VehicleType | str = VehicleType.CAR,
        scheduled_time: datetime | None = None,
    ) -> Ride:
        """Price the ride, escrow the fare and try to match a nearby driver.

        Raises InsufficientBalanceError before anything is written when the
        customer's wallet cannot cover the estimated fare.
        """
        try:
            vehicle = VehicleType(vehicle_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown vehicle type: {vehicle_type}", {"vehicle_type": str(vehicle_type)}
            ) from e

        distance_km = self._fares.distance(pickup.coordinates, dropoff.coordinates)
        fare = self._fares.estimate(distance_km, vehicle)
        duration_min = self._fares.estimate_duration_min(distance_km)
        ride_id = str(uuid4())

        with log_ride_context(ride_id, customer_id=customer_id):
            with self._unit_of_work() as (session, after_commit):
                accounts = AccountRepository(session)
                customer = accounts.require(customer_id)
                if not customer.is_customer:
                    raise UnauthorizedError(
                        f"Account {customer_id} cannot request rides",
                        details={"account_id": customer_id},
                    )

                self._escrow_fare(session, customer_id, fare, ride_id)

                now = self._clock()
                rides = RideRepository(session)
                rides.create(
                    ride_id=ride_id,
                    customer_id=customer_id,
                    pickup=pickup,
                    dropoff=dropoff,
                    distance_km=distance_km,
                    estimated_duration_min=duration_min,
                    fare_estimated=fare,
                    vehicle_type=vehicle,
                    requested_at=now,
                    scheduled_time=scheduled_time,
                )
                metrics.ridehail_rides_requested_total.labels(vehicle_type=vehicle.value).inc()

                if scheduled_time is not None and scheduled_time > now:
                    logger.info(f"Ride {ride_id} scheduled for {scheduled_time.isoformat()}")
                else:
                    self._match(session, ride_id, after_commit)

                ride = self._snapshot(session, self._require_ride(rides, ride_id))

        logger.info(f"Ride {ride_id} requested: {distance_km} km, fare {fare}, {ride.status.value}")
        return ride

    def accept_ride(self, ride_id: str, driver_id: str) -> Ride:
        """Claim a requested ride. Exactly one concurrent caller can win."""
        with log_ride_context(ride_id, driver_id=driver_id):
            with self._unit_of_work() as (session, after_commit):
                accounts = AccountRepository(session)
                rides = RideRepository(session)

                driver = accounts.require(driver_id)
                if not driver.is_driver:
                    raise UnauthorizedError(
                        f"Account {driver_id} is not a driver", details={"account_id": driver_id}
                    )
                ride = self._require_ride(rides, ride_id)
                if ride.customer_id == driver_id:
                    raise UnauthorizedError(
                        "Drivers cannot accept their own ride requests",
                        details={"ride_id": ride_id, "driver_id": driver_id},
                    )
                if rides.active_for_driver(driver_id) is not None:
                    raise StateError(
                        f"Driver {driver_id} already has an active ride",
                        details={"driver_id": driver_id},
                    )
                if ride.status != RideStatus.REQUESTED or not self._assign(
                    session, ride_id, driver_id
                ):
                    raise RideNoLongerAvailableError(
                        f"Ride {ride_id} is no longer available",
                        details={"ride_id": ride_id},
                    )

                snapshot = self._snapshot(session, self._require_ride(rides, ride_id))
                after_commit.append(partial(self._notifications.notify_state_change, snapshot))

        logger.info(f"Ride {ride_id} accepted by driver {driver_id}")
        return snapshot

    # --- Trip progress ---

    def start_trip(self, ride_id: str, actor_id: str) -> Ride:
        """Record pickup: assigned -> en_route."""
        with log_ride_context(ride_id):
            with self._unit_of_work() as (session, after_commit):
                rides = RideRepository(session)
                ride = self._require_ride(rides, ride_id)
                self._require_party(ride, actor_id)
                ride.check_transition(RideStatus.EN_ROUTE)

                if not rides.transition(
                    ride_id,
                    {RideStatus.ASSIGNED},
                    RideStatus.EN_ROUTE,
                    started_at=self._clock(),
                ):
                    raise InvalidTransitionError(
                        f"Ride {ride_id} can no longer be started", details={"ride_id": ride_id}
                    )
                metrics.ridehail_ride_transitions_total.labels(status=RideStatus.EN_ROUTE.value).inc()

                snapshot = self._snapshot(session, self._require_ride(rides, ride_id))
                after_commit.append(partial(self._notifications.notify_state_change, snapshot))

        logger.info(f"Ride {ride_id} started")
        return snapshot

    def complete_trip(self, ride_id: str, actor_id: str) -> RideSettlement:
        """Finish the trip and pay the driver out of the escrowed fare."""
        with log_ride_context(ride_id):
            with self._unit_of_work() as (session, after_commit):
                rides = RideRepository(session)
                ride = self._require_ride(rides, ride_id)
                self._require_party(ride, actor_id)
                ride.check_transition(RideStatus.COMPLETED)
                driver_id = ride.driver_id
                if driver_id is None:
                    raise InvalidTransitionError(
                        f"Ride {ride_id} has no driver", details={"ride_id": ride_id}
                    )

                fare_final = ride.fare_estimated
                platform_fee = round_currency(
                    fare_final * self._settings.wallet.platform_fee_percentage / 100
                )
                driver_earning = fare_final - platform_fee

                if not rides.transition(
                    ride_id,
                    {RideStatus.EN_ROUTE},
                    RideStatus.COMPLETED,
                    completed_at=self._clock(),
                    fare_final=fare_final,
                    platform_fee=platform_fee,
                    driver_earning=driver_earning,
                ):
                    raise InvalidTransitionError(
                        f"Ride {ride_id} can no longer be completed", details={"ride_id": ride_id}
                    )
                metrics.ridehail_ride_transitions_total.labels(
                    status=RideStatus.COMPLETED.value
                ).inc()

                earning_entry = None
                if driver_earning > 0:
                    earning_entry = self._ledger(session).credit(
                        driver_id,
                        driver_earning,
                        LedgerEntryType.RIDE_EARNING,
                        description=f"Earning for ride {ride_id}",
                        ride_id=ride_id,
                    )
                accounts = AccountRepository(session)
                accounts.increment_completed_rides(driver_id)
                self._release_driver(session, driver_id)

                snapshot = self._snapshot(session, self._require_ride(rides, ride_id))
                after_commit.append(partial(self._notifications.notify_state_change, snapshot))

        logger.info(
            f"Ride {ride_id} completed: fare {fare_final}, fee {platform_fee}, "
            f"driver earning {driver_earning}"
        )
        return RideSettlement(
            ride=snapshot,
            fare_final=fare_final,
            platform_fee=platform_fee,
            driver_earning=driver_earning,
            earning_entry=earning_entry,
        )

    def cancel_ride(
        self,
        ride_id: str,
        actor_id: str,
        is_driver_late: bool = False,
        reason: str | None = None,
    ) -> RideCancellation:
        """Cancel a ride that has not finished and refund the customer.

        The refund is total when the driver is late or the driver cancels;
        otherwise the cancellation penalty is withheld.
        """
        with log_ride_context(ride_id):
            with self._unit_of_work() as (session, after_commit):
                ride = self._require_ride(RideRepository(session), ride_id)
                role = self._require_party(ride, actor_id)
                result = self._cancel(session, ride, role, is_driver_late, reason, after_commit)

        logger.info(
            f"Ride {ride_id} cancelled by {role}: refund {result.refund_amount}, "
            f"penalty {result.cancellation_penalty}"
        )
        return result

    def rate_ride(
        self,
        ride_id: str,
        rater_id: str,
        rating: int,
        comment: str | None = None,
    ) -> Ride:
        """Record one party's rating of a finished ride."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError(
                "Rating must be between 1 and 5", details={"rating": repr(rating)}
            )

        with log_ride_context(ride_id):
            with self._unit_of_work() as (session, _):
                rides = RideRepository(session)
                ride = self._require_ride(rides, ride_id)
                role = self._require_party(ride, rater_id)
                if not ride.is_terminal:
                    raise InvalidTransitionError(
                        "Can only rate completed or cancelled rides",
                        details={"ride_id": ride_id, "status": ride.status.value},
                    )
                if not rides.set_rating(ride_id, role, rating, comment):
                    raise AlreadyRatedError(
                        "You have already rated this ride",
                        details={"ride_id": ride_id, "rater_id": rater_id},
                    )

                if (
                    role == "customer"
                    and ride.status == RideStatus.COMPLETED
                    and ride.driver_id is not None
                ):
                    average = AccountRepository(session).record_driver_rating(
                        ride.driver_id, rating
                    )
                    logger.info(f"Driver {ride.driver_id} rating now {average}")

                snapshot = self._snapshot(session, self._require_ride(rides, ride_id))

        return snapshot

    # --- Reads and maintenance ---

    def get_ride(self, ride_id: str, actor_id: str) -> Ride:
        """Ride snapshot, visible to its parties, managers and admins."""
        with self._session_factory() as session:
            ride = self._require_ride(RideRepository(session), ride_id)
            if ride.party_role(actor_id) is None:
                actor = AccountRepository(session).require(actor_id)
                if not (actor.is_manager or actor.is_admin):
                    raise UnauthorizedError(
                        "Not authorized to view this ride",
                        details={"ride_id": ride_id, "account_id": actor_id},
                    )
            return self._snapshot(session, ride)

    def ride_history(self, customer_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Ride]:
        """The customer's rides, most recent first."""
        with self._session_factory() as session:
            AccountRepository(session).require(customer_id)
            rides = RideRepository(session).list_by_customer(customer_id, limit=limit)
            return [self._snapshot(session, ride) for ride in rides]

    def clear_history(self, customer_id: str) -> int:
        """Delete the customer's finished rides. Returns the number removed."""
        with self._unit_of_work() as (session, _):
            AccountRepository(session).require(customer_id)
            removed = RideRepository(session).delete_terminal_by_customer(customer_id)
        logger.info(f"Cleared {removed} finished rides for customer {customer_id}")
        return removed

    def get_active_ride(self, driver_id: str) -> Ride | None:
        with self._session_factory() as session:
            ride = RideRepository(session).active_for_driver(driver_id)
            return self._snapshot(session, ride) if ride is not None else None

    def driver_earnings(self, driver_id: str) -> EarningsSummary:
        with self._session_factory() as session:
            driver = AccountRepository(session).require(driver_id)
            if not driver.is_driver:
                raise UnauthorizedError(
                    f"Account {driver_id} is not a driver", details={"account_id": driver_id}
                )
            return self._ledger(session).earnings_summary(driver_id, now=self._clock())

    def dispatch_scheduled_rides(self) -> list[Ride]:
        """Run matching for scheduled rides whose pickup time has arrived."""
        with self._session_factory() as session:
            due_ids = RideRepository(session).list_due_scheduled(self._clock())

        dispatched = []
        for ride_id in due_ids:
            with log_ride_context(ride_id):
                with self._unit_of_work() as (session, after_commit):
                    rides = RideRepository(session)
                    self._match(session, ride_id, after_commit)
                    ride = self._snapshot(session, self._require_ride(rides, ride_id))
                dispatched.append(ride)
                logger.info(f"Scheduled ride {ride_id} dispatched: {ride.status.value}")
        return dispatched

    def expire_unmatched_rides(self) -> list[RideCancellation]:
        """Cancel, with a full refund, rides nobody accepted within the timeout."""
        timeout = timedelta(seconds=self._settings.matching.unmatched_ride_timeout_seconds)
        cutoff = self._clock() - timeout

        with self._session_factory() as session:
            expired_ids = RideRepository(session).list_unmatched_before(cutoff)

        cancellations = []
        for ride_id in expired_ids:
            with log_ride_context(ride_id):
                try:
                    with self._unit_of_work() as (session, after_commit):
                        ride = self._require_ride(RideRepository(session), ride_id)
                        cancellation = self._cancel(
                            session,
                            ride,
                            "system",
                            False,
                            "No driver accepted the ride in time",
                            after_commit,
                        )
                except InvalidTransitionError:
                    logger.info(f"Ride {ride_id} left the requested state before expiry")
                    continue
                cancellations.append(cancellation)
                logger.info(f"Ride {ride_id} expired unmatched")
        return cancellations

    # --- Internals ---

    @contextmanager
    def _unit_of_work(self) -> Iterator[tuple[Session, AfterCommit]]:
        after_commit: AfterCommit = []
        with self._session_factory() as session, transaction(session):
            yield session, after_commit
        for callback in after_commit:
            callback()

    def _ledger(self, session: Session) -> WalletLedger:
        return WalletLedger(session, retry_config=self._ledger_retry, clock=self._clock)

    def _escrow_fare(self, session: Session, customer_id: str, fare: int, ride_id: str) -> None:
        if fare <= 0:
            return
        try:
            self._ledger(session).debit(
                customer_id,
                fare,
                LedgerEntryType.RIDE_PAYMENT,
                description=f"Payment for ride {ride_id}",
                ride_id=ride_id,
            )
        except InsufficientFundsError as e:
            raise InsufficientBalanceError(customer_id, e.required, e.available) from e

    def _match(self, session: Session, ride_id: str, after_commit: AfterCommit) -> None:
        rides = RideRepository(session)
        if not rides.mark_dispatched(ride_id, self._clock()):
            logger.debug(f"Ride {ride_id} already dispatched")
            return
        ride = self._require_ride(rides, ride_id)
        busy = rides.busy_driver_ids()

        def exclude(driver_id: str) -> bool:
            return driver_id in busy or driver_id == ride.customer_id

        nearby = self._geo.find_nearest(
            ride.pickup.lat,
            ride.pickup.lon,
            self._settings.matching.driver_search_radius_meters,
            exclude=exclude,
            session=session,
        )
        if not nearby:
            metrics.ridehail_unmatched_requests_total.inc()
            logger.info(f"No drivers near ride {ride_id}, waiting for a driver to accept")
            return

        if self._settings.matching.matching_auto_assign:
            for candidate in nearby:
                try:
                    assigned = self._assign(session, ride_id, candidate.driver_id)
                except StateError:
                    logger.debug(f"Driver {candidate.driver_id} was claimed by another ride")
                    continue
                if not assigned:
                    self._release_driver(session, candidate.driver_id)
                    return
                snapshot = self._snapshot(session, self._require_ride(rides, ride_id))
                after_commit.append(partial(self._notifications.notify_state_change, snapshot))
                logger.info(f"Ride {ride_id} assigned to driver {candidate.driver_id}")
                return
            metrics.ridehail_unmatched_requests_total.inc()
            logger.info(f"All drivers near ride {ride_id} are busy, waiting for a driver to accept")
            return

        nearest = nearby[0]
        offered = self._snapshot(session, self._require_ride(rides, ride_id))
        after_commit.append(
            partial(
                self._notifications.send_ride_offer,
                offered,
                nearest.driver_id,
                nearest.distance_m,
            )
        )
        logger.info(f"Ride {ride_id} offered to driver {nearest.driver_id}")

    def _assign(self, session: Session, ride_id: str, driver_id: str) -> bool:
        """Claim the driver, then the ride.

        Raises StateError when the driver is already on a ride. Returns False
        when the ride left the requested state; the caller must then abort the
        transaction so the driver claim is rolled back.
        """
        if not AccountRepository(session).set_driver_status(
            driver_id, DRIVER_ON_RIDE, unless_status=DRIVER_ON_RIDE
        ):
            raise StateError(
                f"Driver {driver_id} already has an active ride",
                details={"driver_id": driver_id},
            )
        assigned = RideRepository(session).transition(
            ride_id,
            {RideStatus.REQUESTED},
            RideStatus.ASSIGNED,
            driver_id=driver_id,
            accepted_at=self._clock(),
        )
        if assigned:
            metrics.ridehail_ride_transitions_total.labels(status=RideStatus.ASSIGNED.value).inc()
        return assigned

    def _cancel(
        self,
        session: Session,
        ride: Ride,
        cancelled_by: CancelledBy,
        is_driver_late: bool,
        reason: str | None,
        after_commit: AfterCommit,
    ) -> RideCancellation:
        ride.check_transition(RideStatus.CANCELLED)

        fare = ride.fare_estimated
        if is_driver_late or cancelled_by != "customer":
            penalty = 0
        else:
            penalty = round_currency(
                fare * self._settings.wallet.cancellation_penalty_percentage / 100
            )
        refund = fare - penalty

        rides = RideRepository(session)
        if not rides.transition(
            ride.ride_id,
            CANCELLABLE_STATES,
            RideStatus.CANCELLED,
            cancelled_at=self._clock(),
            cancelled_by=cancelled_by,
            cancellation_reason=reason or f"Cancelled by {cancelled_by}",
            refund_amount=refund,
            cancellation_penalty=penalty,
        ):
            raise InvalidTransitionError(
                f"Ride {ride.ride_id} can no longer be cancelled",
                details={"ride_id": ride.ride_id},
            )
        metrics.ridehail_ride_transitions_total.labels(status=RideStatus.CANCELLED.value).inc()

        refund_entry = None
        if refund > 0:
            refund_entry = self._ledger(session).credit(
                ride.customer_id,
                refund,
                LedgerEntryType.REFUND,
                description=f"Refund for ride {ride.ride_id}",
                ride_id=ride.ride_id,
            )
        if ride.driver_id is not None and ride.status in ACTIVE_STATES:
            self._release_driver(session, ride.driver_id)

        snapshot = self._snapshot(session, self._require_ride(rides, ride.ride_id))
        after_commit.append(partial(self._notifications.notify_state_change, snapshot))
        return RideCancellation(
            ride=snapshot,
            refund_amount=refund,
            cancellation_penalty=penalty,
            refund_entry=refund_entry,
        )

    def _release_driver(self, session: Session, driver_id: str) -> None:
        """Return a driver to online, or offline if they went offline mid-ride."""
        location = DriverLocationRepository(session).get(driver_id)
        status = DRIVER_ONLINE if location is not None and location.is_online else DRIVER_OFFLINE
        AccountRepository(session).set_driver_status(driver_id, status)

    def _snapshot(self, session: Session, ride: Ride) -> Ride:
        accounts = AccountRepository(session)
        return ride.model_copy(
            update={
                "customer": accounts.summary(ride.customer_id),
                "driver": accounts.summary(ride.driver_id),
            }
        )

    @staticmethod
    def _require_ride(rides: RideRepository, ride_id: str) -> Ride:
        ride = rides.get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found", details={"ride_id": ride_id})
        return ride

    @staticmethod
    def _require_party(ride: Ride, account_id: str) -> CancelledBy:
        role = ride.party_role(account_id)
        if role is None:
            raise UnauthorizedError(
                "Not authorized for this ride",
                details={"ride_id": ride.ride_id, "account_id": account_id},
            )
        return role
