"""
Typed errors raised by the scheduling core.

Every error carries the HTTP status the adapter layer should answer with, so
request handlers never need to inspect messages to pick a response code.
"""

from datetime import datetime
from typing import Optional


class BookingError(Exception):
    """Base class for all domain errors"""

    status_code = 400
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error": self.__class__.__name__}


class ValidationError(BookingError):
    """Malformed input, empty recurrence expansion or disallowed status transition"""

    status_code = 400


class PendingRequestExistsError(ValidationError):
    """A change request is already waiting for a decision on this appointment"""

    status_code = 409


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """The requested interval overlaps an existing non-cancelled appointment"""

    status_code = 409

    def __init__(
        self,
        detail: str,
        conflicting_start: Optional[datetime] = None,
        conflicting_end: Optional[datetime] = None,
        conflicting_appointment_ids: Optional[list[int]] = None,
    ):
        super().__init__(detail)
        self.conflicting_start = conflicting_start
        self.conflicting_end = conflicting_end
        self.conflicting_appointment_ids = conflicting_appointment_ids or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.conflicting_start:
            data["conflictingStart"] = self.conflicting_start.isoformat()
        if self.conflicting_end:
            data["conflictingEnd"] = self.conflicting_end.isoformat()
        if self.conflicting_appointment_ids:
            data["conflictingAppointmentIds"] = self.conflicting_appointment_ids
        return data


class PolicyError(BookingError):
    """Change request violates the provider-configured policy"""

    status_code = 403


class IdempotencyError(BookingError):
    """Decision attempted on an already-decided or unknown change request"""

    status_code = 409


class StoreError(BookingError):
    """Transient infrastructure failure (lock timeout, lost connection)"""

    status_code = 503
    retryable = True
