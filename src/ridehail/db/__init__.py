"""Database persistence module."""

from .database import init_database
from .schema import Account, DriverLocation, LedgerEntry, Ride, ServiceMetadata
from .transaction import savepoint, transaction
from .utils import utc_now

__all__ = [
    "init_database",
    "Account",
    "DriverLocation",
    "LedgerEntry",
    "Ride",
    "ServiceMetadata",
    "savepoint",
    "transaction",
    "utc_now",
]
