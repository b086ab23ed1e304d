"""
Ride-Hailing Core - Service Entry Point

Wires the database, driver index, notification sink and ride lifecycle from
settings and serves the HTTP API with uvicorn.
"""

import logging
import signal
import sys

import uvicorn
from fastapi import FastAPI

from ridehail.api.app import create_app
from ridehail.db.database import init_database
from ridehail.events.sink import EventSink, InMemoryEventSink, RedisEventSink
from ridehail.fare import FareCalculator
from ridehail.matching.driver_geospatial_index import DriverGeospatialIndex
from ridehail.matching.notification_dispatch import NotificationDispatch
from ridehail.ride_logging import setup_logging
from ridehail.rides.lifecycle import RideLifecycle
from ridehail.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_event_sink(settings: Settings) -> EventSink:
    """Redis pub/sub when enabled, otherwise an in-process recorder."""
    if settings.redis.enabled:
        logger.info(f"Publishing notifications to Redis at {settings.redis.host}:{settings.redis.port}")
        return RedisEventSink(settings.redis)
    logger.warning("Redis disabled, notifications are kept in memory only")
    return InMemoryEventSink()


def build_app(settings: Settings) -> FastAPI:
    """Build the fully wired application from settings."""
    session_factory = init_database(settings.database.url, echo=settings.database.echo)
    logger.info(f"Database initialized: {settings.database.url.split('://', 1)[0]}")

    sink = create_event_sink(settings)
    notifications = NotificationDispatch(sink)
    geo_index = DriverGeospatialIndex(
        session_factory,
        notifications,
        h3_resolution=settings.matching.matching_h3_resolution,
        availability_ttl_seconds=settings.matching.driver_availability_ttl,
    )
    lifecycle = RideLifecycle(
        session_factory,
        FareCalculator(settings.fare),
        geo_index,
        notifications,
        settings=settings,
    )
    app = create_app(lifecycle, geo_index, session_factory, settings)
    app.state.event_sink = sink
    return app


def main() -> None:
    """Main entry point - initializes and runs the API service."""
    settings = get_settings()

    setup_logging(
        level=settings.log.level,
        json_output=settings.log.format == "json",
        environment=settings.log.environment,
    )
    logger.info("Starting ride-hailing service...")

    app = build_app(settings)

    def shutdown_handler(signum: int, frame: object) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        sink = app.state.event_sink
        if isinstance(sink, RedisEventSink):
            sink.close()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_handler)

    logger.info(f"Starting ride-hailing API on port {settings.api.port}")
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log.level.lower(),
    )


if __name__ == "__main__":
    main()
