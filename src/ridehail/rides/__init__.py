from .lifecycle import RideLifecycle
from .models import RideCancellation, RideSettlement

__all__ = ["RideCancellation", "RideLifecycle", "RideSettlement"]
