from .driver_geospatial_index import DriverAvailability, DriverGeospatialIndex, NearbyDriver
from .notification_dispatch import NotificationDispatch, topic_for

__all__ = [
    "DriverAvailability",
    "DriverGeospatialIndex",
    "NearbyDriver",
    "NotificationDispatch",
    "topic_for",
]
