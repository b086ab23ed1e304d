from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

from ridehail.core.exceptions import ValidationError
from ridehail.geo.distance import haversine_distance_km, validate_coordinate
from ridehail.ride import VehicleType
from ridehail.settings import FareSettings


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero, unlike the built-in banker's rounding."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_currency(value: float) -> int:
    """Round to the nearest whole currency unit."""
    return int(round_half_up(value))


class FareEstimate(BaseModel):
    """Detailed breakdown of fare components."""

    distance_km: float = Field(ge=0)
    estimated_duration_min: int = Field(ge=0)
    vehicle_type: VehicleType
    base_fare: float = Field(ge=0)
    distance_charge: float = Field(ge=0)
    subtotal: float = Field(ge=0)
    vehicle_multiplier: float = Field(gt=0)
    total_fare: int = Field(ge=0)


class FareCalculator:
    """Calculates ride fares from straight-line distance and vehicle type.

    Fare is calculated once at request time; there is no metered adjustment,
    so the completed fare always equals the estimate.
    """

    def __init__(self, settings: FareSettings | None = None) -> None:
        self._settings = settings or FareSettings()

    @property
    def settings(self) -> FareSettings:
        return self._settings

    def distance(
        self, pickup: tuple[float, float], dropoff: tuple[float, float]
    ) -> float:
        """Great-circle distance in km, rounded to one decimal place."""
        validate_coordinate(*pickup)
        validate_coordinate(*dropoff)
        return round_half_up(haversine_distance_km(*pickup, *dropoff), 1)

    def estimate(self, distance_km: float, vehicle_type: VehicleType | str) -> int:
        """Fare in whole currency units for a distance and vehicle type."""
        if distance_km < 0:
            raise ValidationError("Distance must be non-negative", {"distance_km": distance_km})
        vehicle = self._vehicle(vehicle_type)

        subtotal = self._settings.base_fare + distance_km * self._settings.per_km_rate
        base_total = max(subtotal, self._settings.minimum_fare)
        return round_currency(base_total * self._settings.vehicle_multiplier(vehicle.value))

    def estimate_duration_min(self, distance_km: float) -> int:
        return round_currency(distance_km / self._settings.average_speed_kmh * 60)

    def breakdown(
        self,
        pickup: tuple[float, float],
        dropoff: tuple[float, float],
        vehicle_type: VehicleType | str = VehicleType.CAR,
    ) -> FareEstimate:
        vehicle = self._vehicle(vehicle_type)
        distance_km = self.distance(pickup, dropoff)
        distance_charge = distance_km * self._settings.per_km_rate

        return FareEstimate(
            distance_km=distance_km,
            estimated_duration_min=self.estimate_duration_min(distance_km),
            vehicle_type=vehicle,
            base_fare=self._settings.base_fare,
            distance_charge=distance_charge,
            subtotal=self._settings.base_fare + distance_charge,
            vehicle_multiplier=self._settings.vehicle_multiplier(vehicle.value),
            total_fare=self.estimate(distance_km, vehicle),
        )

    @staticmethod
    def _vehicle(vehicle_type: VehicleType | str) -> VehicleType:
        try:
            return VehicleType(vehicle_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown vehicle type: {vehicle_type}",
                {"vehicle_type": str(vehicle_type)},
            ) from e
