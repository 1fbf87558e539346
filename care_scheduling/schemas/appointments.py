"""Appointment schemas"""

from typing import Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field, field_validator


class AppointmentCreate(BaseModel):
    provider_id: UUID
    payer_id: UUID
    service_instance_id: UUID
    start: datetime = Field(..., description="Slot start with explicit offset")
    patient_id: Optional[UUID] = None

    @field_validator("start")
    @classmethod
    def require_offset(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("start must include a timezone offset")
        return v


class AppointmentResponse(BaseModel):
    id: UUID
    provider_id: UUID
    billing_provider_id: Optional[UUID]
    payer_id: Optional[UUID]
    patient_id: Optional[UUID]
    service_instance_id: Optional[UUID]
    start_time: datetime
    end_time: datetime
    status: str
    requires_co_visit: bool

    model_config = {"from_attributes": True}
