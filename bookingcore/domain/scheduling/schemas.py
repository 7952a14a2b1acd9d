"""Scheduling schemas - Pydantic value objects for tenant settings, slot queries and recurrence"""

import json
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ...errors import ValidationError
from ...shared.validators import parse_payload


class BookingSlotsSettings(BaseModel):
    """Tenant defaults for slot generation"""

    model_config = ConfigDict(extra="ignore")

    slotStepMinutes: Literal[15, 30, 60] = 30
    bufferMinutes: int = Field(0, ge=0, le=30)
    minAdvanceBookingMinutes: int = Field(60, ge=0, le=10080)
    maxDaysAhead: int = Field(60, ge=1, le=365)


class ChangeRequestPolicy(BaseModel):
    """Provider-configured rules for client reschedule/cancel requests"""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    allowReschedule: bool = True
    allowCancel: bool = True
    minHoursBefore: int = Field(3, ge=0)
    requireMasterApproval: bool = True


class TenantSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bookingSlots: BookingSlotsSettings = Field(default_factory=BookingSlotsSettings)
    clientChangeRequests: ChangeRequestPolicy = Field(default_factory=ChangeRequestPolicy)
    timeZone: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "TenantSettings":
        """Parse the stored settings column (object or legacy JSON string)

        Raises:
            ValidationError: If the payload is not valid JSON or fails validation
        """
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Malformed tenant settings: {e.msg}") from e
        return parse_payload(cls, raw)


class SlotConfig(BaseModel):
    """Resolved slot generation parameters"""

    step_minutes: Literal[15, 30, 60] = 30
    buffer_minutes: int = Field(0, ge=0)
    min_advance_minutes: int = Field(60, ge=0)
    max_days_ahead: int = Field(60, ge=0)
    service_duration_minutes: int = Field(30, ge=5, le=24 * 60)

    @classmethod
    def from_settings(cls, settings: BookingSlotsSettings, **overrides) -> "SlotConfig":
        values = {
            "step_minutes": settings.slotStepMinutes,
            "buffer_minutes": settings.bufferMinutes,
            "min_advance_minutes": settings.minAdvanceBookingMinutes,
            "max_days_ahead": settings.maxDaysAhead,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return parse_payload(cls, values)


class SlotQuery(BaseModel):
    """Availability request; unset fields fall back to tenant settings"""

    dateFrom: date
    dateTo: Optional[date] = None
    durationMinutes: int = Field(30, ge=5, le=24 * 60)
    stepMinutes: Optional[Literal[15, 30, 60]] = None
    bufferMinutes: Optional[int] = Field(None, ge=0)
    minAdvanceMinutes: Optional[int] = Field(None, ge=0)
    maxDaysAhead: Optional[int] = Field(None, ge=0)


class SlotResponse(BaseModel):
    providerId: int
    dateFrom: date
    dateTo: date
    durationMinutes: int
    availableSlots: list[datetime]


class RecurrencePattern(BaseModel):
    """Recurrence rule; days_of_week uses 0 = Sunday … 6 = Saturday"""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["daily", "weekly", "monthly"]
    days_of_week: Optional[list[int]] = Field(
        default=None,
        validation_alias=AliasChoices("daysOfWeek", "days", "days_of_week"),
        serialization_alias="daysOfWeek",
    )

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v):
        if v is None:
            return v
        for day in v:
            if day < 0 or day > 6:
                raise ValueError("daysOfWeek values must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v))

    def to_json(self) -> dict:
        data: dict = {"type": self.type}
        if self.days_of_week is not None:
            data["daysOfWeek"] = self.days_of_week
        return data
