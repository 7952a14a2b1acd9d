"""Scheduling router - FastAPI endpoint for provider availability"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...shared.timeutils import Clock, get_request_clock
from ...shared.validators import parse_payload
from .schemas import SlotQuery, SlotResponse
from .slots import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["Scheduling"])


def get_slot_service(
    db: Session = Depends(get_db), clock: Optional[Clock] = Depends(get_request_clock)
) -> SlotService:
    """Dependency injection for SlotService"""
    return SlotService(db, clock=clock)


@router.get("/providers/{provider_id}/slots", response_model=SlotResponse)
def get_available_slots(
    tenant_id: int,
    provider_id: int,
    dateFrom: date,
    dateTo: Optional[date] = None,
    durationMinutes: int = Query(30, ge=5, le=24 * 60),
    stepMinutes: Optional[int] = Query(None),
    bufferMinutes: Optional[int] = Query(None, ge=0),
    minAdvanceMinutes: Optional[int] = Query(None, ge=0),
    maxDaysAhead: Optional[int] = Query(None, ge=0),
    service: SlotService = Depends(get_slot_service),
):
    """Bookable start times for a provider, recomputed from the live calendar"""
    query = parse_payload(
        SlotQuery,
        {
            "dateFrom": dateFrom,
            "dateTo": dateTo,
            "durationMinutes": durationMinutes,
            "stepMinutes": stepMinutes,
            "bufferMinutes": bufferMinutes,
            "minAdvanceMinutes": minAdvanceMinutes,
            "maxDaysAhead": maxDaysAhead,
        },
    )
    return service.get_slots(tenant_id, provider_id, query)
