"""FastAPI application factory for the ride-hailing API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from sqlalchemy import text

from ridehail.api.middleware.security_headers import SecurityHeadersMiddleware
from ridehail.api.models.health import HealthResponse
from ridehail.api.routes import drivers, rides, wallet
from ridehail.core.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    RideHailError,
    StateError,
    TransientError,
    UnauthorizedError,
    ValidationError,
)
from ridehail.db.repositories import RideRepository
from ridehail.fare import FareCalculator
from ridehail.metrics import prometheus_exporter
from ridehail.ride import RideStatus

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from ridehail.matching.driver_geospatial_index import DriverGeospatialIndex
    from ridehail.rides.lifecycle import RideLifecycle
    from ridehail.settings import Settings

logger = logging.getLogger(__name__)


class UnmatchedRideSweeper:
    """Periodically dispatches due scheduled rides and refunds rides nobody accepted."""

    def __init__(self, lifecycle: RideLifecycle, interval: float) -> None:
        self._lifecycle = lifecycle
        self._task: asyncio.Task[None] | None = None
        self._interval = interval

    async def start(self) -> None:
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval)
                dispatched = await asyncio.to_thread(self._lifecycle.dispatch_scheduled_rides)
                if dispatched:
                    logger.info(f"Dispatched {len(dispatched)} scheduled rides")
                expired = await asyncio.to_thread(self._lifecycle.expire_unmatched_rides)
                if expired:
                    logger.info(f"Expired {len(expired)} unmatched rides")
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in unmatched ride sweep loop")


def error_status_code(exc: RideHailError) -> int:
    """Map the core exception taxonomy onto HTTP status codes."""
    if isinstance(exc, ValidationError | InsufficientFundsError):
        return 400
    if isinstance(exc, UnauthorizedError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, StateError):
        return 409
    if isinstance(exc, TransientError):
        return 503
    return 500


async def ridehail_error_handler(request: Request, exc: RideHailError) -> JSONResponse:
    status_code = error_status_code(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "details": exc.details},
    )


def create_app(
    lifecycle: RideLifecycle,
    geo_index: DriverGeospatialIndex,
    session_factory: sessionmaker[Session],
    settings: Settings,
) -> FastAPI:
    """Create FastAPI application with injected dependencies.

    Args:
        lifecycle: RideLifecycle driving ride state and settlement
        geo_index: DriverGeospatialIndex for driver presence
        session_factory: SQLAlchemy sessionmaker for wallet reads and writes
        settings: Loaded service settings
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        """Manage application startup and shutdown."""
        sweeper = UnmatchedRideSweeper(
            lifecycle, settings.matching.unmatched_sweep_interval_seconds
        )
        app.state.sweeper = sweeper

        await sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(
        title="Ride-Hailing API",
        version="1.0.0",
        description="Ride requests, driver presence and wallet operations",
        lifespan=lifespan,
    )

    app.add_exception_handler(RideHailError, ridehail_error_handler)  # type: ignore[arg-type]

    # Set core dependencies immediately (not in lifespan) so they're available for testing
    app.state.settings = settings
    app.state.lifecycle = lifecycle
    app.state.geo_index = geo_index
    app.state.session_factory = session_factory
    app.state.fare_calculator = FareCalculator(settings.fare)

    origins = settings.cors.origins.split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(rides.router, prefix="/rides", tags=["rides"])
    app.include_router(drivers.router, prefix="/drivers", tags=["drivers"])
    app.include_router(wallet.router, prefix="/wallet", tags=["wallet"])

    @app.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        """Health check endpoint for monitoring (unauthenticated for infrastructure)."""
        try:
            with session_factory() as session:
                session.execute(text("SELECT 1"))
            database = "connected"
        except Exception:
            logger.exception("Health check database query failed")
            database = "unavailable"

        return HealthResponse(
            status="healthy" if database == "connected" else "unhealthy",
            database=database,  # type: ignore[arg-type]
            timestamp=datetime.now(UTC).isoformat(),
        )

    @app.get("/metrics")
    def metrics() -> Response:
        """Prometheus scrape endpoint."""
        with session_factory() as session:
            repo = RideRepository(session)
            rides_active = repo.count_by_status(RideStatus.ASSIGNED) + repo.count_by_status(
                RideStatus.EN_ROUTE
            )
            rides_waiting = repo.count_by_status(RideStatus.REQUESTED)
        prometheus_exporter.update_gauges(
            drivers_online=geo_index.count_online(),
            rides_active=rides_active,
            rides_waiting=rides_waiting,
        )
        return Response(
            content=prometheus_exporter.generate_prometheus_metrics(),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app
