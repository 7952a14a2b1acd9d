"""Change request schemas - Pydantic models for client change requests and provider decisions"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, RootModel, field_validator


class _ChangeRequestBase(BaseModel):
    appointmentId: int
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator("note")
    @classmethod
    def strip_note(cls, v):
        if v is None:
            return v
        return v.strip() or None


class RescheduleChangeRequest(_ChangeRequestBase):
    """Client asks to move the appointment; the end defaults to the current duration"""

    type: Literal["RESCHEDULE"]
    requestedStartTime: datetime
    requestedEndTime: Optional[datetime] = None
    durationMinutes: Optional[int] = Field(None, ge=15, le=480)


class CancelChangeRequest(_ChangeRequestBase):
    type: Literal["CANCEL"]


ChangeRequestBody = Annotated[
    Union[RescheduleChangeRequest, CancelChangeRequest],
    Field(discriminator="type"),
]


class ChangeRequestCreate(RootModel[ChangeRequestBody]):
    """Client change request, discriminated on type"""


class ChangeRequestDecision(BaseModel):
    action: Literal["approve", "reject"]
    decisionNote: Optional[str] = Field(None, max_length=2000)

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class ChangeRequestResponse(BaseModel):
    """Schema for change request response"""

    id: int
    appointmentId: int
    providerId: int
    type: str
    status: str
    requestedStartTime: Optional[datetime] = None
    requestedEndTime: Optional[datetime] = None
    clientNote: Optional[str] = None
    decisionNote: Optional[str] = None
    decidedAt: Optional[datetime] = None
    decidedBy: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, change_request) -> "ChangeRequestResponse":
        return cls(
            id=change_request.id,
            appointmentId=change_request.appointment_id,
            providerId=change_request.provider_id,
            type=change_request.type,
            status=change_request.status,
            requestedStartTime=change_request.requested_start_time,
            requestedEndTime=change_request.requested_end_time,
            clientNote=change_request.client_note,
            decisionNote=change_request.decision_note,
            decidedAt=change_request.decided_at,
            decidedBy=change_request.decided_by,
            createdAt=change_request.created_at,
        )
