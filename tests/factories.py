"""Shared test data: fixed coordinates, locations and a controllable clock."""

from datetime import datetime, timedelta

from ridehail.ride import Location

# Kolkata coordinates for testing
PARK_STREET = (22.5448, 88.3426)
SHYAMBAZAR = (22.5851, 88.3468)
ESPLANADE = (22.5646, 88.3511)
HOWRAH = (22.5958, 88.2636)

PICKUP = Location(address="Park Street", lat=PARK_STREET[0], lon=PARK_STREET[1])
DROPOFF = Location(address="Shyambazar", lat=SHYAMBAZAR[0], lon=SHYAMBAZAR[1])

# Park Street -> Shyambazar: 4.5 km, 50 + 4.5 * 15 = 117.5 -> 118
KOLKATA_FARE = 118


class FakeClock:
    """Controllable clock returning naive UTC datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 10, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)
