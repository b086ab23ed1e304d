"""HTTP API over the ride-hailing core."""
