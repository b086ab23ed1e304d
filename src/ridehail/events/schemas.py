from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

RideEventType = Literal[
    "ride_request",
    "ride_assigned",
    "ride_started",
    "ride_completed",
    "ride_cancelled",
    "driver_location",
]


class RideEvent(BaseModel):
    """Notification delivered to one ride participant."""

    event_id: UUID = Field(default_factory=uuid4)
    event_type: RideEventType
    ride_id: str
    recipient_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    correlation_id: str | None = Field(
        default=None, description="Primary correlation ID (the ride_id)"
    )

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
