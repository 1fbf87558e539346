"""Bookability schemas"""

from typing import List, Optional, Dict, Any
from datetime import date
from uuid import UUID
from pydantic import BaseModel, Field


class BookableEntryResponse(BaseModel):
    """Resolved bookability for one provider under a payer"""
    provider_id: UUID
    payer_id: UUID
    via: str = Field(..., description="direct or supervised")
    billing_provider_id: UUID = Field(..., description="Provider who is billed")
    rendering_provider_id: Optional[UUID] = Field(None, description="Provider who delivers care")
    requires_co_visit: bool
    bookable_from_date: Optional[date]


class BookabilityResponse(BaseModel):
    payer_id: UUID
    as_of: date
    source: str = Field(..., description="cache or live")
    source_reason: Optional[str] = Field(None, description="Why the live path served the read")
    snapshot_version: Optional[int] = None
    no_eligible_providers: bool
    entries: List[BookableEntryResponse]


class RefreshRequest(BaseModel):
    payer_id: Optional[UUID] = Field(None, description="Omit for a full refresh")
    as_of: Optional[date] = None


class RefreshError(BaseModel):
    payer_id: str
    error: str


class RefreshResponse(BaseModel):
    entries_processed: int
    added: int
    removed: int
    payers_refreshed: int
    errors: List[RefreshError]


class ReconciliationResponse(BaseModel):
    checked: int
    consistent: int
    diverged: int
    stale: int
    no_snapshot: int
    results: List[Dict[str, Any]]
