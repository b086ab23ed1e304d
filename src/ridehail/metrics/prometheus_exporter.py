"""Prometheus metrics for the ride-hailing core.

Counters are incremented inline by the ledger, the lifecycle and the event
sinks. Gauges are refreshed from the database just before each scrape.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Use a separate registry to avoid default Python metrics
REGISTRY = CollectorRegistry()

# --- Gauges (point-in-time values) ---

ridehail_drivers_online = Gauge(
    "ridehail_drivers_online",
    "Number of drivers currently online and not stale",
    registry=REGISTRY,
)

ridehail_rides_active = Gauge(
    "ridehail_rides_active",
    "Number of rides assigned or en route",
    registry=REGISTRY,
)

ridehail_rides_waiting = Gauge(
    "ridehail_rides_waiting",
    "Number of rides requested and not yet matched",
    registry=REGISTRY,
)

# --- Counters (cumulative values) ---

ridehail_rides_requested_total = Counter(
    "ridehail_rides_requested_total",
    "Total ride requests accepted by vehicle type",
    ["vehicle_type"],
    registry=REGISTRY,
)

ridehail_ride_transitions_total = Counter(
    "ridehail_ride_transitions_total",
    "Total ride state transitions by target status",
    ["status"],
    registry=REGISTRY,
)

ridehail_unmatched_requests_total = Counter(
    "ridehail_unmatched_requests_total",
    "Ride requests for which no nearby driver was found",
    registry=REGISTRY,
)

ridehail_ledger_entries_total = Counter(
    "ridehail_ledger_entries_total",
    "Total ledger entries written by type",
    ["entry_type"],
    registry=REGISTRY,
)

ridehail_events_published_total = Counter(
    "ridehail_events_published_total",
    "Total notification events published by type",
    ["event_type"],
    registry=REGISTRY,
)

ridehail_event_publish_errors_total = Counter(
    "ridehail_event_publish_errors_total",
    "Notification publishes that failed",
    registry=REGISTRY,
)

# --- Histograms (latency distributions) ---

REDIS_LATENCY_BUCKETS = (0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, float("inf"))

ridehail_redis_latency_seconds = Histogram(
    "ridehail_redis_latency_seconds",
    "Redis publish latency in seconds",
    buckets=REDIS_LATENCY_BUCKETS,
    registry=REGISTRY,
)


def update_gauges(*, drivers_online: int, rides_active: int, rides_waiting: int) -> None:
    """Set point-in-time gauges. Call this before generating Prometheus output."""
    ridehail_drivers_online.set(drivers_online)
    ridehail_rides_active.set(rides_active)
    ridehail_rides_waiting.set(rides_waiting)


def observe_redis_latency(latency_ms: float) -> None:
    ridehail_redis_latency_seconds.observe(latency_ms / 1000.0)


def generate_prometheus_metrics() -> bytes:
    """Generate Prometheus format metrics output.

    Returns:
        Prometheus text format as bytes
    """
    result: bytes = generate_latest(REGISTRY)
    return result
