"""Slot listing endpoints"""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from care_scheduling.auth import verify_api_key
from care_scheduling.config import settings
from care_scheduling.database import get_db
from care_scheduling.schemas.common import ErrorResponse
from care_scheduling.schemas.slots import (
    AcceptanceResponse, PayerSlotsResponse, ProviderSlotsResponse, SlotResponse
)
from care_scheduling.services.availability import DateRange, get_zone
from care_scheduling.services.slots import Deadline, SlotGenerator

router = APIRouter()


def _zone_or_400(tz_name: str) -> str:
    try:
        get_zone(tz_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return tz_name


@router.get("", response_model=PayerSlotsResponse, responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}})
async def list_payer_slots(
    payer_id: str = Query(...),
    service_category: str = Query("intake", min_length=1),
    start_date: date = Query(...),
    end_date: date = Query(...),
    timezone_name: str = Query(settings.default_timezone, alias="timezone"),
    location: Optional[str] = Query(None),
    timeout_ms: Optional[int] = Query(None, gt=0, le=60000),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Open slots across every provider bookable under the payer"""
    tz_name = _zone_or_400(timezone_name)
    result = SlotGenerator(db).generate_payer_slots(
        payer_id,
        service_category,
        DateRange(start_date, end_date),
        tz_name,
        now=datetime.now(timezone.utc),
        deadline=Deadline(timeout_ms or settings.slot_generation_timeout_ms),
        location=location,
    )

    return PayerSlotsResponse(
        payer_id=result.payer_id,
        timezone=tz_name,
        start_date=start_date,
        end_date=end_date,
        acceptance=AcceptanceResponse(
            payer_id=result.payer_id,
            status=result.acceptance.status.value,
            message=result.acceptance.message,
            effective_date=result.acceptance.effective_date,
            days_until_effective=result.acceptance.days_until_effective,
        ),
        service_instance_id=result.service.service_instance_id if result.service else None,
        duration_minutes=result.service.duration_minutes if result.service else None,
        bookability_source=result.bookability_source,
        truncated=result.truncated,
        slots=[SlotResponse(**s.to_dict()) for s in result.slots],
    )


@router.get("/providers/{provider_id}", response_model=ProviderSlotsResponse)
async def list_provider_slots(
    provider_id: str,
    service_instance_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    timezone_name: str = Query(settings.default_timezone, alias="timezone"),
    timeout_ms: Optional[int] = Query(None, gt=0, le=60000),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Open slots for a single provider, without payer filtering"""
    tz_name = _zone_or_400(timezone_name)
    batch = SlotGenerator(db).generate_slots(
        provider_id,
        service_instance_id,
        DateRange(start_date, end_date),
        tz_name,
        now=datetime.now(timezone.utc),
        deadline=Deadline(timeout_ms or settings.slot_generation_timeout_ms),
    )
    return ProviderSlotsResponse(
        provider_id=provider_id,
        service_instance_id=service_instance_id,
        timezone=tz_name,
        truncated=batch.truncated,
        slots=[SlotResponse(**s.to_dict()) for s in batch.slots],
    )
