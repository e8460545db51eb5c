"""
Error taxonomy for the scheduling and adherence core.

These are returned inside Result values at the service boundary rather than
raised across it. Each carries an end-user message plus structured context
for logging.
"""

from datetime import datetime
from typing import Any


class TrackingError(Exception):
    """Base class for expected, user-facing failures."""

    user_message: str = "could not complete medication action"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def to_log(self) -> dict[str, Any]:
        return {"error_type": type(self).__name__, "error": str(self), **self.context}


class InvalidFrequency(TrackingError):
    """Frequency specification does not resolve to any dose time."""

    user_message = "could not schedule medication: frequency has no dose times"


class UnknownPrescription(TrackingError):
    """Prescription id is unknown or no longer active."""

    user_message = "could not log dose: prescription not found or inactive"

    def __init__(self, prescription_id: str) -> None:
        super().__init__(
            f"Unknown or inactive prescription {prescription_id}", prescription_id=prescription_id
        )
        self.prescription_id = prescription_id


class OutOfWindow(TrackingError):
    """Timestamp does not match a slot the schedule would produce."""

    user_message = "could not log dose: not a scheduled time"

    def __init__(self, prescription_id: str, scheduled_at: datetime) -> None:
        super().__init__(
            f"{scheduled_at.isoformat()} is not a scheduled dose of prescription {prescription_id}",
            prescription_id=prescription_id,
            scheduled_at=scheduled_at.isoformat(),
        )
        self.prescription_id = prescription_id
        self.scheduled_at = scheduled_at


class InventoryNotTracked(TrackingError):
    """Prescription has no inventory record."""

    user_message = "inventory tracking is not enabled for this medication"

    def __init__(self, prescription_id: str) -> None:
        super().__init__(
            f"No inventory record for prescription {prescription_id}",
            prescription_id=prescription_id,
        )
        self.prescription_id = prescription_id
