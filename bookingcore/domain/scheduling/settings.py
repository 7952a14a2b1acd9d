"""Tenant settings lookup shared by the scheduling services"""

from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...shared.timeutils import Clock, tenant_clock
from ..appointments.repository import AppointmentRepository
from .schemas import TenantSettings


def load_tenant_settings(db: Session, tenant_id: int) -> TenantSettings:
    tenant = AppointmentRepository.get_tenant(db, tenant_id)
    if not tenant:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return TenantSettings.from_raw(tenant.settings)


def resolve_clock(settings: TenantSettings, clock: Optional[Clock] = None) -> Clock:
    """Injected clock wins; otherwise wall-clock time of the tenant's zone"""
    return clock or tenant_clock(settings.timeZone)
