"""Bookability endpoints: read, refresh, reconciliation and coverage health"""

from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from care_scheduling.auth import verify_admin_key, verify_api_key
from care_scheduling.config import settings
from care_scheduling.database import get_db
from care_scheduling.schemas.bookability import (
    BookabilityResponse, BookableEntryResponse, ReconciliationResponse, RefreshRequest, RefreshResponse
)
from care_scheduling.services.availability import local_today
from care_scheduling.services.bookability import BookabilityService
from care_scheduling.services.reconciliation import BookabilityHealthService, ReconciliationService

router = APIRouter()


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_bookability(
    body: Optional[RefreshRequest] = None,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_admin_key)
):
    """Re-materialize bookability for one payer, or all payers when payer_id is omitted"""
    body = body or RefreshRequest()
    as_of = body.as_of or local_today(datetime.now(timezone.utc))
    return BookabilityService(db).refresh(payer_id=body.payer_id, as_of=as_of)


@router.get("/reconcile", response_model=ReconciliationResponse)
async def reconcile_bookability(
    payer_id: Optional[List[str]] = Query(None, description="Payers to check; defaults to a sample"),
    sample_size: Optional[int] = Query(None, gt=0, le=1000),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Compare cached snapshots with the live recompute"""
    return ReconciliationService(db).check(payer_ids=payer_id, sample_size=sample_size)


@router.get("/health")
async def bookability_health(
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Coverage gaps and expiring contracts"""
    as_of = as_of or local_today(datetime.now(timezone.utc))
    return BookabilityHealthService(db).report(as_of)


@router.get("/{payer_id}", response_model=BookabilityResponse)
async def get_bookability(
    payer_id: str,
    response: Response,
    as_of: Optional[date] = Query(None, description="Defaults to today in the default timezone"),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Bookable entries for a payer; served from the snapshot only when it is fresh"""
    as_of = as_of or local_today(datetime.now(timezone.utc))
    read = BookabilityService(db).read(payer_id, as_of)

    response.headers["Cache-Control"] = f"max-age={settings.bookability_cache_ttl_seconds}"
    return BookabilityResponse(
        payer_id=read.payer_id,
        as_of=read.as_of,
        source=read.source,
        source_reason=read.reason,
        snapshot_version=read.snapshot_version,
        no_eligible_providers=read.no_eligible_providers,
        entries=[BookableEntryResponse(**e.to_dict()) for e in read.entries],
    )
