"""Fans ride lifecycle events out to ride participants through an EventSink."""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from ridehail.db.utils import utc_now
from ridehail.events.schemas import RideEvent, RideEventType
from ridehail.events.sink import EventSink
from ridehail.metrics import prometheus_exporter as metrics
from ridehail.ride import Ride, RideStatus

logger = logging.getLogger(__name__)


def topic_for(account_id: str) -> str:
    """Per-account channel a client subscribes to."""
    return f"rides.{account_id}"


class NotificationDispatch:
    """Dispatches ride notifications to customers and drivers.

    Called only after the owning transaction has committed, so a recipient
    never sees an event for a change that was rolled back.
    """

    def __init__(
        self,
        sink: EventSink,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sink = sink
        self._clock = clock

    @property
    def sink(self) -> EventSink:
        return self._sink

    def send_ride_offer(self, ride: Ride, driver_id: str, distance_m: int) -> RideEvent | None:
        """Offer a requested ride to a nearby driver."""
        return self._publish(
            "ride_request",
            ride,
            driver_id,
            {"ride": ride.model_dump(mode="json"), "distance_m": distance_m},
        )

    def notify_state_change(self, ride: Ride) -> list[RideEvent]:
        """Notify both parties of the ride's current status."""
        event_type: RideEventType = ride.status.to_event_type()  # type: ignore[assignment]
        if ride.status == RideStatus.REQUESTED:
            logger.warning(f"No state notification for requested ride {ride.ride_id}")
            return []

        payload = {"ride": ride.model_dump(mode="json")}
        return self.dispatch(event_type, ride, self._recipients(ride), payload)

    def notify_driver_location(
        self, ride: Ride, driver_id: str, lat: float, lon: float
    ) -> RideEvent | None:
        """Relay the assigned driver's position to the waiting customer."""
        return self._publish(
            "driver_location",
            ride,
            ride.customer_id,
            {"driver_id": driver_id, "lat": lat, "lon": lon, "status": ride.status.value},
        )

    def dispatch(
        self,
        event_type: RideEventType,
        ride: Ride,
        recipients: Iterable[str],
        payload: dict[str, Any],
    ) -> list[RideEvent]:
        events = []
        for recipient_id in recipients:
            event = self._publish(event_type, ride, recipient_id, payload)
            if event is not None:
                events.append(event)
        return events

    def _publish(
        self,
        event_type: RideEventType,
        ride: Ride,
        recipient_id: str,
        payload: dict[str, Any],
    ) -> RideEvent | None:
        event = RideEvent(
            event_type=event_type,
            ride_id=ride.ride_id,
            recipient_id=recipient_id,
            payload=payload,
            timestamp=self._clock().isoformat(),
            correlation_id=ride.ride_id,
        )
        try:
            self._sink.publish(topic_for(recipient_id), event.to_message())
        except Exception:
            metrics.ridehail_event_publish_errors_total.inc()
            logger.exception(f"Failed to deliver {event_type} for ride {ride.ride_id}")
            return None

        metrics.ridehail_events_published_total.labels(event_type=event_type).inc()
        return event

    @staticmethod
    def _recipients(ride: Ride) -> list[str]:
        recipients = [ride.customer_id]
        if ride.driver_id is not None:
            recipients.append(ride.driver_id)
        return recipients
