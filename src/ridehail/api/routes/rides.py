from fastapi import APIRouter, Depends, Query

from ridehail.api.auth import verify_api_key
from ridehail.api.dependencies import AccountIdDep, FareCalculatorDep, LifecycleDep
from ridehail.api.models.rides import (
    CancelRideRequest,
    ClearHistoryResponse,
    RateRideRequest,
    RideCreateRequest,
    RideListResponse,
    RideResponse,
)
from ridehail.fare import FareEstimate
from ridehail.ride import VehicleType
from ridehail.rides.models import RideCancellation, RideSettlement

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.get("/fare-estimate", response_model=FareEstimate)
def get_fare_estimate(
    fares: FareCalculatorDep,
    pickup_lat: float = Query(...),
    pickup_lon: float = Query(...),
    dropoff_lat: float = Query(...),
    dropoff_lon: float = Query(...),
    vehicle_type: VehicleType = Query(default=VehicleType.CAR),
) -> FareEstimate:
    """Price a trip without requesting it."""
    return fares.breakdown((pickup_lat, pickup_lon), (dropoff_lat, dropoff_lon), vehicle_type)


@router.post("", response_model=RideResponse, status_code=201)
def create_ride(
    body: RideCreateRequest,
    account_id: AccountIdDep,
    lifecycle: LifecycleDep,
) -> RideResponse:
    ride = lifecycle.request_ride(
        account_id,
        body.pickup,
        body.dropoff,
        vehicle_type=body.vehicle_type,
        scheduled_time=body.scheduled_time,
    )
    return RideResponse(message="Ride requested successfully", ride=ride)


@router.get("", response_model=RideListResponse)
def get_ride_history(
    account_id: AccountIdDep,
    lifecycle: LifecycleDep,
    limit: int = Query(default=50, ge=1, le=50),
) -> RideListResponse:
    return RideListResponse(rides=lifecycle.ride_history(account_id, limit=limit))


@router.delete("/history", response_model=ClearHistoryResponse)
def clear_ride_history(account_id: AccountIdDep, lifecycle: LifecycleDep) -> ClearHistoryResponse:
    """Delete the caller's completed and cancelled rides."""
    removed = lifecycle.clear_history(account_id)
    return ClearHistoryResponse(message="Ride history cleared", removed=removed)


@router.get("/{ride_id}", response_model=RideResponse)
def get_ride(ride_id: str, account_id: AccountIdDep, lifecycle: LifecycleDep) -> RideResponse:
    return RideResponse(ride=lifecycle.get_ride(ride_id, account_id))


@router.post("/{ride_id}/cancel", response_model=RideCancellation)
def cancel_ride(
    ride_id: str,
    account_id: AccountIdDep,
    lifecycle: LifecycleDep,
    body: CancelRideRequest | None = None,
) -> RideCancellation:
    body = body or CancelRideRequest()
    return lifecycle.cancel_ride(
        ride_id, account_id, is_driver_late=body.is_driver_late, reason=body.reason
    )


@router.post("/{ride_id}/start", response_model=RideResponse)
def start_ride(ride_id: str, account_id: AccountIdDep, lifecycle: LifecycleDep) -> RideResponse:
    return RideResponse(message="Ride started", ride=lifecycle.start_trip(ride_id, account_id))


@router.post("/{ride_id}/complete", response_model=RideSettlement)
def complete_ride(
    ride_id: str, account_id: AccountIdDep, lifecycle: LifecycleDep
) -> RideSettlement:
    return lifecycle.complete_trip(ride_id, account_id)


@router.post("/{ride_id}/rate", response_model=RideResponse)
def rate_ride(
    ride_id: str,
    body: RateRideRequest,
    account_id: AccountIdDep,
    lifecycle: LifecycleDep,
) -> RideResponse:
    ride = lifecycle.rate_ride(ride_id, account_id, body.rating, body.comment)
    return RideResponse(message="Rating submitted successfully", ride=ride)
