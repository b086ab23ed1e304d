"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from ridehail.fare import FareCalculator
from ridehail.matching.driver_geospatial_index import DriverGeospatialIndex
from ridehail.rides.lifecycle import RideLifecycle
from ridehail.settings import Settings

from .auth import get_account_id


def get_lifecycle(request: Request) -> RideLifecycle:
    """Retrieve RideLifecycle from app state."""
    return request.app.state.lifecycle  # type: ignore[no-any-return]


def get_geo_index(request: Request) -> DriverGeospatialIndex:
    return request.app.state.geo_index  # type: ignore[no-any-return]


def get_session_factory(request: Request) -> sessionmaker[Session]:
    return request.app.state.session_factory  # type: ignore[no-any-return]


def get_fare_calculator(request: Request) -> FareCalculator:
    return request.app.state.fare_calculator  # type: ignore[no-any-return]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


LifecycleDep = Annotated[RideLifecycle, Depends(get_lifecycle)]
GeoIndexDep = Annotated[DriverGeospatialIndex, Depends(get_geo_index)]
SessionFactoryDep = Annotated[sessionmaker[Session], Depends(get_session_factory)]
FareCalculatorDep = Annotated[FareCalculator, Depends(get_fare_calculator)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
AccountIdDep = Annotated[str, Depends(get_account_id)]
