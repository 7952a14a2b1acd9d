"""Change request repository - Database operations for client change requests"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...database import apply_lock_timeout
from ...models import REQUEST_PENDING, AppointmentChangeRequest


class ChangeRequestRepository:
    """Repository for change request database operations"""

    @staticmethod
    def get_request(
        db: Session, tenant_id: int, request_id: int, for_update: bool = False
    ) -> Optional[AppointmentChangeRequest]:
        query = db.query(AppointmentChangeRequest).filter(
            AppointmentChangeRequest.id == request_id,
            AppointmentChangeRequest.tenant_id == tenant_id,
        )
        if for_update:
            apply_lock_timeout(db)
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def find_pending(db: Session, tenant_id: int, appointment_id: int) -> Optional[AppointmentChangeRequest]:
        return (
            db.query(AppointmentChangeRequest)
            .filter(
                AppointmentChangeRequest.tenant_id == tenant_id,
                AppointmentChangeRequest.appointment_id == appointment_id,
                AppointmentChangeRequest.status == REQUEST_PENDING,
            )
            .first()
        )

    @staticmethod
    def list_requests(
        db: Session,
        tenant_id: int,
        status: Optional[str] = None,
        appointment_id: Optional[int] = None,
    ) -> list[AppointmentChangeRequest]:
        """Newest first; status None means every status"""
        query = db.query(AppointmentChangeRequest).filter(AppointmentChangeRequest.tenant_id == tenant_id)
        if status:
            query = query.filter(AppointmentChangeRequest.status == status)
        if appointment_id is not None:
            query = query.filter(AppointmentChangeRequest.appointment_id == appointment_id)
        return query.order_by(AppointmentChangeRequest.created_at.desc(), AppointmentChangeRequest.id.desc()).all()

    @staticmethod
    def insert(db: Session, **request_data) -> AppointmentChangeRequest:
        """Flushes immediately so the one-pending index is enforced inside the caller's transaction"""
        change_request = AppointmentChangeRequest(**request_data)
        db.add(change_request)
        db.flush()
        return change_request

    @staticmethod
    def record_decision(
        db: Session,
        change_request: AppointmentChangeRequest,
        status: str,
        decided_at: datetime,
        decided_by: str,
        note: Optional[str] = None,
    ) -> AppointmentChangeRequest:
        change_request.status = status
        change_request.decision_note = note or None
        change_request.decided_at = decided_at
        change_request.decided_by = decided_by
        db.flush()
        return change_request
