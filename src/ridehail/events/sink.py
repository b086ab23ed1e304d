"""Outbound event sinks.

The core only knows the EventSink protocol. Delivery is best-effort: a sink
failure is logged and counted, never raised back into a ride operation.
"""

import json
import logging
import threading
import time
from typing import Any, Protocol, runtime_checkable

import redis
from opentelemetry import trace
from redis.exceptions import ConnectionError, TimeoutError

from ridehail.metrics import prometheus_exporter as metrics
from ridehail.ride_logging import LogContext
from ridehail.settings import RedisSettings

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer(__name__)


@runtime_checkable
class EventSink(Protocol):
    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class InMemoryEventSink:
    """Records published events. Used by tests and local runs without Redis."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._events.append((topic, payload))

    @property
    def events(self) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            return list(self._events)

    def for_topic(self, topic: str) -> list[dict[str, Any]]:
        with self._lock:
            return [payload for t, payload in self._events if t == topic]

    def event_types(self, topic: str) -> list[str]:
        return [payload.get("event_type", "") for payload in self.for_topic(topic)]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class RedisEventSink:
    """Publishes events to Redis pub/sub channels as JSON.

    Uses the sync Redis client so it can be called from worker threads and
    from FastAPI handlers alike.
    """

    def __init__(
        self,
        settings: RedisSettings | None = None,
        client: redis.Redis | None = None,
    ):
        if client is None:
            settings = settings or RedisSettings()
            client = redis.Redis(
                host=settings.host,
                port=settings.port,
                db=settings.db,
                password=settings.password or None,
                decode_responses=True,
            )
        self._client = client

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        with _tracer.start_as_current_span("redis.publish") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("db.redis.channel", topic)

            correlation_id = LogContext.get().get("correlation_id")
            if correlation_id:
                span.set_attribute("correlation_id", correlation_id)

            start_time = time.perf_counter()
            try:
                self._client.publish(topic, json.dumps(payload, default=str))
                metrics.observe_redis_latency((time.perf_counter() - start_time) * 1000)
            except (ConnectionError, TimeoutError) as e:
                span.record_exception(e)
                metrics.ridehail_event_publish_errors_total.inc()
                logger.error(f"Failed to publish to channel {topic}: {e}")

    def close(self) -> None:
        self._client.close()
