"""
Conflict detector.

The overlap check always runs as a live query inside the caller's
transaction. It is the only guard against double-booking, so nothing here may
be cached between requests.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError
from ...models import Appointment
from ..appointments.repository import AppointmentRepository

logger = logging.getLogger(__name__)


def find_conflicts(
    db: Session,
    tenant_id: int,
    provider_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
) -> list[Appointment]:
    return AppointmentRepository.find_overlapping(
        db, tenant_id, provider_id, start, end, exclude_id=exclude_appointment_id
    )


def has_conflict(
    db: Session,
    tenant_id: int,
    provider_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    """True iff a non-cancelled appointment of the provider overlaps [start, end)"""
    return bool(find_conflicts(db, tenant_id, provider_id, start, end, exclude_appointment_id))


def ensure_no_conflict(
    db: Session,
    tenant_id: int,
    provider_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[int] = None,
    message: str = "This time slot is no longer available",
) -> None:
    """Raise ConflictError naming the requested interval and the appointments in the way"""
    conflicts = find_conflicts(db, tenant_id, provider_id, start, end, exclude_appointment_id)
    if conflicts:
        ids = [c.id for c in conflicts]
        logger.info(
            f"⛔ Conflict for provider {provider_id} at {start.isoformat()}-{end.isoformat()}: appointments {ids}"
        )
        raise ConflictError(
            message,
            conflicting_start=start,
            conflicting_end=end,
            conflicting_appointment_ids=ids,
        )
