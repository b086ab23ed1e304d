"""Ride notification events and the sinks that carry them."""

from .schemas import RideEvent, RideEventType
from .sink import EventSink, InMemoryEventSink, RedisEventSink

__all__ = [
    "EventSink",
    "InMemoryEventSink",
    "RedisEventSink",
    "RideEvent",
    "RideEventType",
]
