from fastapi import APIRouter, Depends

from ridehail.api.auth import verify_api_key
from ridehail.api.dependencies import (
    AccountIdDep,
    GeoIndexDep,
    LifecycleDep,
    SessionFactoryDep,
)
from ridehail.api.models.drivers import ActiveRideResponse, DriverStatusResponse, PositionRequest
from ridehail.api.models.rides import RideResponse
from ridehail.core.exceptions import UnauthorizedError
from ridehail.db.repositories import AccountRepository
from ridehail.matching.driver_geospatial_index import DriverAvailability
from ridehail.rides.models import RideSettlement
from ridehail.wallet.ledger import EarningsSummary

router = APIRouter(dependencies=[Depends(verify_api_key)])


def require_driver(account_id: AccountIdDep, session_factory: SessionFactoryDep) -> str:
    """Reject callers whose account does not carry the driver role."""
    with session_factory() as session:
        account = AccountRepository(session).require(account_id)
        if not account.is_driver:
            raise UnauthorizedError(
                "Driver access required", details={"account_id": account_id}
            )
    return account_id


@router.post("/online", response_model=DriverStatusResponse)
def go_online(
    body: PositionRequest,
    geo_index: GeoIndexDep,
    driver_id: str = Depends(require_driver),
) -> DriverStatusResponse:
    availability = geo_index.set_online(driver_id, body.lat, body.lon)
    return DriverStatusResponse(
        message="You are now online", status="online", availability=availability
    )


@router.post("/offline", response_model=DriverStatusResponse)
def go_offline(
    geo_index: GeoIndexDep,
    driver_id: str = Depends(require_driver),
) -> DriverStatusResponse:
    geo_index.set_offline(driver_id)
    return DriverStatusResponse(message="You are now offline", status="offline")


@router.post("/location", response_model=DriverAvailability)
def update_location(
    body: PositionRequest,
    geo_index: GeoIndexDep,
    driver_id: str = Depends(require_driver),
) -> DriverAvailability:
    return geo_index.update_position(driver_id, body.lat, body.lon)


@router.post("/rides/{ride_id}/accept", response_model=RideResponse)
def accept_ride(
    ride_id: str,
    lifecycle: LifecycleDep,
    driver_id: str = Depends(require_driver),
) -> RideResponse:
    ride = lifecycle.accept_ride(ride_id, driver_id)
    return RideResponse(message="Ride accepted successfully", ride=ride)


@router.post("/rides/{ride_id}/start", response_model=RideResponse)
def start_ride(
    ride_id: str,
    lifecycle: LifecycleDep,
    driver_id: str = Depends(require_driver),
) -> RideResponse:
    return RideResponse(message="Ride started", ride=lifecycle.start_trip(ride_id, driver_id))


@router.post("/rides/{ride_id}/complete", response_model=RideSettlement)
def complete_ride(
    ride_id: str,
    lifecycle: LifecycleDep,
    driver_id: str = Depends(require_driver),
) -> RideSettlement:
    return lifecycle.complete_trip(ride_id, driver_id)


@router.get("/active-ride", response_model=ActiveRideResponse)
def get_active_ride(
    lifecycle: LifecycleDep,
    driver_id: str = Depends(require_driver),
) -> ActiveRideResponse:
    return ActiveRideResponse(ride=lifecycle.get_active_ride(driver_id))


@router.get("/earnings", response_model=EarningsSummary)
def get_earnings(
    lifecycle: LifecycleDep,
    driver_id: str = Depends(require_driver),
) -> EarningsSummary:
    return lifecycle.driver_earnings(driver_id)
