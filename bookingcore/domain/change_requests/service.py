"""Change request service - Client reschedule/cancel requests and provider decisions"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import transaction, with_db_retry
from ...errors import (
    BookingError,
    IdempotencyError,
    NotFoundError,
    PendingRequestExistsError,
    PolicyError,
    ValidationError,
)
from ...models import (
    EVENT_CANCEL_APPROVED,
    EVENT_CHANGE_REQUEST_CREATED,
    EVENT_CHANGE_REQUEST_REJECTED,
    EVENT_RESCHEDULE_APPROVED,
    REQUEST_APPROVED,
    REQUEST_CANCEL,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    REQUEST_RESCHEDULE,
    STATUS_CANCELLED,
    STATUS_DONE,
    TERMINAL_STATUSES,
    AppointmentChangeRequest,
)
from ...services.notification_service import Notifier, dispatch_notification, get_default_notifier
from ...shared.timeutils import Clock, to_local_naive
from ...shared.validators import parse_payload
from ..appointments.repository import AppointmentRepository
from ..appointments.service import interval_payload
from ..scheduling.conflicts import ensure_no_conflict
from ..scheduling.schedule import Interval
from ..scheduling.schemas import ChangeRequestPolicy, TenantSettings
from ..scheduling.settings import load_tenant_settings, resolve_clock
from .repository import ChangeRequestRepository
from .schemas import (
    CancelChangeRequest,
    ChangeRequestCreate,
    ChangeRequestDecision,
    RescheduleChangeRequest,
)

logger = logging.getLogger(__name__)

DECIDED_BY_DASHBOARD = "dashboard"
DECIDED_BY_AUTO = "auto"

# "ALL" lifts the status filter when listing
LIST_STATUSES = (REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED, "ALL")


def check_policy(policy: ChangeRequestPolicy, request_type: str) -> None:
    """
    Raises:
        PolicyError: Client changes are disabled or this request type is not allowed
    """
    if not policy.enabled:
        raise PolicyError("Client changes to appointments are disabled for this business")
    if request_type == REQUEST_RESCHEDULE and not policy.allowReschedule:
        raise PolicyError("Rescheduling is disabled for this business")
    if request_type == REQUEST_CANCEL and not policy.allowCancel:
        raise PolicyError("Cancellation is disabled for this business")


class ChangeRequestService:
    """Service layer for client change request arbitration"""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None, clock: Optional[Clock] = None):
        self.db = db
        self.notifier = notifier if notifier is not None else get_default_notifier()
        self.clock = clock
        self.repo = ChangeRequestRepository()
        self.appointments = AppointmentRepository()

    def _now(self, settings: TenantSettings) -> datetime:
        return resolve_clock(settings, self.clock)()

    def _notify(self, tenant_id: int, appointment_id: int, event_type: str, payload: dict[str, Any]) -> None:
        dispatch_notification(self.notifier, tenant_id, appointment_id, event_type, payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_change_request(self, tenant_id: int, request_id: int) -> AppointmentChangeRequest:
        change_request = with_db_retry(lambda: self.repo.get_request(self.db, tenant_id, request_id), db=self.db)
        if not change_request:
            raise NotFoundError(f"Change request {request_id} not found")
        return change_request

    def list_change_requests(
        self, tenant_id: int, status: Optional[str] = REQUEST_PENDING
    ) -> list[AppointmentChangeRequest]:
        """List requests newest first; status defaults to PENDING, "ALL" returns every status"""
        status = (status or REQUEST_PENDING).strip().upper()
        if status not in LIST_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(LIST_STATUSES)}")
        status_filter = None if status == "ALL" else status
        return with_db_retry(lambda: self.repo.list_requests(self.db, tenant_id, status_filter), db=self.db)

    # ------------------------------------------------------------------
    # Filing
    # ------------------------------------------------------------------

    def file_change_request(self, tenant_id: int, payload) -> AppointmentChangeRequest:
        """
        File a client's reschedule or cancel request against the live calendar.

        Checks run in a fixed order: appointment exists, appointment not
        Cancelled/Done, policy allows the request type, enough lead time before
        the visit, no other pending request, and for reschedules a valid and
        free target interval.

        When the business does not require provider approval the request is
        approved immediately with decided_by "auto".

        Raises:
            NotFoundError: Unknown appointment
            ValidationError: Terminal appointment or invalid target interval
            PolicyError: Disabled by policy or too close to the visit
            PendingRequestExistsError: A request is already awaiting a decision
            ConflictError: The requested interval is taken
        """
        if isinstance(payload, (RescheduleChangeRequest, CancelChangeRequest)):
            data = payload
        else:
            data = parse_payload(ChangeRequestCreate, payload).root
        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            policy = settings.clientChangeRequests

            current = self.appointments.get_appointment(self.db, tenant_id, data.appointmentId)
            if not current:
                raise NotFoundError(f"Appointment {data.appointmentId} not found")

            self.appointments.lock_provider(self.db, tenant_id, current.provider_id)
            appointment = self.appointments.get_appointment(self.db, tenant_id, data.appointmentId, for_update=True)

            if appointment.status == STATUS_CANCELLED:
                raise ValidationError("This appointment has already been cancelled")
            if appointment.status == STATUS_DONE:
                raise ValidationError("This appointment has already been completed and cannot be changed")

            check_policy(policy, data.type)

            now = self._now(settings)
            if appointment.start_time < now + timedelta(hours=policy.minHoursBefore):
                raise PolicyError(
                    f"Changes are only possible at least {policy.minHoursBefore} hours before the visit"
                )

            if self.repo.find_pending(self.db, tenant_id, appointment.id):
                raise PendingRequestExistsError(
                    "There is already an active change request for this appointment. Please wait for a reply."
                )

            requested_start = requested_end = None
            if data.type == REQUEST_RESCHEDULE:
                requested_start = to_local_naive(data.requestedStartTime, settings.timeZone)
                if data.requestedEndTime is not None:
                    requested_end = to_local_naive(data.requestedEndTime, settings.timeZone)
                elif data.durationMinutes is not None:
                    requested_end = requested_start + timedelta(minutes=data.durationMinutes)
                else:
                    requested_end = requested_start + (appointment.end_time - appointment.start_time)
                target = Interval(requested_start, requested_end)

                ensure_no_conflict(
                    self.db,
                    tenant_id,
                    appointment.provider_id,
                    target.start,
                    target.end,
                    exclude_appointment_id=appointment.id,
                    message="Another appointment already takes this time. Please choose another slot.",
                )

            try:
                change_request = self.repo.insert(
                    self.db,
                    tenant_id=tenant_id,
                    appointment_id=appointment.id,
                    provider_id=appointment.provider_id,
                    type=data.type,
                    status=REQUEST_PENDING,
                    requested_start_time=requested_start,
                    requested_end_time=requested_end,
                    client_note=data.note,
                )
            except IntegrityError as e:
                raise PendingRequestExistsError(
                    "There is already an active change request for this appointment. Please wait for a reply."
                ) from e

            event_payload = {"requestId": change_request.id, "type": change_request.type}
            if requested_start is not None:
                event_payload.update(interval_payload(requested_start, requested_end))
            self.appointments.record_event(
                self.db, tenant_id, appointment.id, EVENT_CHANGE_REQUEST_CREATED, event_payload, now
            )

        logger.info(f"📨 Change request {change_request.id} ({change_request.type}) filed for appointment {appointment.id}")
        self._notify(tenant_id, appointment.id, EVENT_CHANGE_REQUEST_CREATED, event_payload)

        if not policy.requireMasterApproval:
            try:
                return self.decide(tenant_id, change_request.id, "approve", decided_by=DECIDED_BY_AUTO)
            except BookingError as e:
                # Left PENDING for the provider to decide by hand
                logger.warning(f"⚠️ Auto-approval of change request {change_request.id} failed: {e}")

        return change_request

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        tenant_id: int,
        request_id: int,
        action: str,
        note: Optional[str] = None,
        decided_by: str = DECIDED_BY_DASHBOARD,
    ) -> AppointmentChangeRequest:
        """
        Approve or reject a pending change request.

        The request status is re-read under lock, so of two concurrent decisions
        only the first applies. Approving a reschedule re-runs the conflict
        check against the current calendar; on conflict nothing changes and the
        request stays PENDING.

        Raises:
            ValidationError: Unknown action, or approving a change to a Done/Cancelled appointment
            IdempotencyError: Request missing or already decided
            ConflictError: Requested interval is no longer free
        """
        decision = parse_payload(ChangeRequestDecision, {"action": action, "decisionNote": note})
        with transaction(self.db):
            settings = load_tenant_settings(self.db, tenant_id)
            change_request = self.repo.get_request(self.db, tenant_id, request_id)
            if not change_request or change_request.status != REQUEST_PENDING:
                raise IdempotencyError("Request not found or already processed")

            self.appointments.lock_provider(self.db, tenant_id, change_request.provider_id)
            change_request = self.repo.get_request(self.db, tenant_id, request_id, for_update=True)
            if change_request.status != REQUEST_PENDING:
                raise IdempotencyError("Request already processed")

            appointment = self.appointments.get_appointment(
                self.db, tenant_id, change_request.appointment_id, for_update=True
            )
            if not appointment:
                raise NotFoundError(f"Appointment {change_request.appointment_id} not found")

            now = self._now(settings)
            event_payload: dict[str, Any] = {"requestId": change_request.id, "type": change_request.type}

            if decision.action == "reject":
                self.repo.record_decision(
                    self.db, change_request, REQUEST_REJECTED, now, decided_by, decision.decisionNote
                )
                event_type = EVENT_CHANGE_REQUEST_REJECTED
                if decision.decisionNote:
                    event_payload["decisionNote"] = decision.decisionNote
            else:
                if appointment.status in TERMINAL_STATUSES:
                    raise ValidationError(
                        f"Cannot apply a change to an appointment with status {appointment.status}"
                    )

                if change_request.type == REQUEST_CANCEL:
                    self.appointments.update_status(self.db, appointment, STATUS_CANCELLED)
                    event_type = EVENT_CANCEL_APPROVED
                else:
                    if not change_request.requested_start_time or not change_request.requested_end_time:
                        raise ValidationError("Change request has no requested time")
                    new_start = change_request.requested_start_time
                    new_end = change_request.requested_end_time
                    ensure_no_conflict(
                        self.db,
                        tenant_id,
                        appointment.provider_id,
                        new_start,
                        new_end,
                        exclude_appointment_id=appointment.id,
                        message="The requested time is no longer available",
                    )
                    event_payload["from"] = interval_payload(appointment.start_time, appointment.end_time)
                    event_payload["to"] = interval_payload(new_start, new_end)
                    self.appointments.update_interval(self.db, appointment, new_start, new_end)
                    event_type = EVENT_RESCHEDULE_APPROVED

                self.repo.record_decision(
                    self.db, change_request, REQUEST_APPROVED, now, decided_by, decision.decisionNote
                )

            self.appointments.record_event(self.db, tenant_id, appointment.id, event_type, event_payload, now)

        logger.info(f"✅ Change request {request_id} {change_request.status} by {decided_by}")
        self._notify(tenant_id, appointment.id, event_type, event_payload)
        return change_request
