from pydantic import BaseModel

from ridehail.ride import Ride
from ridehail.wallet.ledger import LedgerEntry


class RideSettlement(BaseModel):
    """Outcome of completing a ride."""

    ride: Ride
    fare_final: int
    platform_fee: int
    driver_earning: int
    earning_entry: LedgerEntry | None = None


class RideCancellation(BaseModel):
    """Outcome of cancelling a ride."""

    ride: Ride
    refund_amount: int
    cancellation_penalty: int
    refund_entry: LedgerEntry | None = None
