"""Change request router - FastAPI endpoints for client change requests"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import Notifier, get_default_notifier
from ...shared.timeutils import Clock, get_request_clock
from .schemas import ChangeRequestBody, ChangeRequestDecision, ChangeRequestResponse
from .service import ChangeRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/change-requests", tags=["Change Requests"])


def get_change_request_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_default_notifier),
    clock: Optional[Clock] = Depends(get_request_clock),
) -> ChangeRequestService:
    """Dependency injection for ChangeRequestService"""
    return ChangeRequestService(db, notifier=notifier, clock=clock)


@router.get("", response_model=list[ChangeRequestResponse])
def list_change_requests(
    tenant_id: int,
    status: Optional[str] = "PENDING",
    service: ChangeRequestService = Depends(get_change_request_service),
):
    """Change requests newest first; status=ALL lists every status"""
    return [ChangeRequestResponse.from_model(r) for r in service.list_change_requests(tenant_id, status)]


@router.get("/{request_id}", response_model=ChangeRequestResponse)
def get_change_request(
    tenant_id: int,
    request_id: int,
    service: ChangeRequestService = Depends(get_change_request_service),
):
    return ChangeRequestResponse.from_model(service.get_change_request(tenant_id, request_id))


@router.post("", response_model=ChangeRequestResponse, status_code=201)
def file_change_request(
    tenant_id: int,
    data: ChangeRequestBody = Body(...),
    service: ChangeRequestService = Depends(get_change_request_service),
):
    return ChangeRequestResponse.from_model(service.file_change_request(tenant_id, data))


@router.patch("/{request_id}", response_model=ChangeRequestResponse)
def decide_change_request(
    tenant_id: int,
    request_id: int,
    data: ChangeRequestDecision,
    service: ChangeRequestService = Depends(get_change_request_service),
):
    """Provider approves or rejects a pending request"""
    return ChangeRequestResponse.from_model(
        service.decide(tenant_id, request_id, data.action, data.decisionNote)
    )
