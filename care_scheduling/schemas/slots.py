"""Slot schemas"""

from typing import List, Optional
from datetime import datetime, date
from uuid import UUID
from pydantic import BaseModel, Field


class SlotResponse(BaseModel):
    """Offerable appointment slot; start and end always carry a UTC offset"""
    provider_id: UUID
    billing_provider_id: UUID
    start: datetime
    end: datetime
    requires_co_visit: bool
    service_instance_id: Optional[UUID] = None
    via: Optional[str] = None


class AcceptanceResponse(BaseModel):
    payer_id: UUID
    status: str = Field(..., description="not-accepted, waitlist, future or active")
    message: str
    effective_date: Optional[date] = None
    days_until_effective: Optional[int] = None


class PayerSlotsResponse(BaseModel):
    payer_id: UUID
    timezone: str
    start_date: date
    end_date: date
    acceptance: AcceptanceResponse
    service_instance_id: Optional[UUID] = None
    duration_minutes: Optional[int] = None
    bookability_source: Optional[str] = None
    truncated: bool = False
    slots: List[SlotResponse]


class ProviderSlotsResponse(BaseModel):
    provider_id: UUID
    service_instance_id: UUID
    timezone: str
    truncated: bool = False
    slots: List[SlotResponse]
