"""Ride-hailing core: matching, fares, wallet ledger and ride lifecycle."""

__version__ = "0.1.0"
