"""Payer acceptance endpoint"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from care_scheduling.auth import verify_api_key
from care_scheduling.database import get_db
from care_scheduling.errors import UnknownEntity, parse_uuid
from care_scheduling.models import Payer
from care_scheduling.schemas.slots import AcceptanceResponse
from care_scheduling.services.acceptance import classify_acceptance
from care_scheduling.services.availability import local_today

router = APIRouter()


@router.get("/{payer_id}/acceptance", response_model=AcceptanceResponse)
async def get_acceptance(
    payer_id: str,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Whether patients with this insurance can book now, later, or not at all"""
    payer_id = parse_uuid(payer_id, "payer_id")
    payer = db.get(Payer, payer_id)
    if payer is None:
        raise UnknownEntity("Payer", payer_id)

    acceptance = classify_acceptance(payer, local_today(datetime.now(timezone.utc)))
    return AcceptanceResponse(
        payer_id=payer.id,
        status=acceptance.status.value,
        message=acceptance.message,
        effective_date=acceptance.effective_date,
        days_until_effective=acceptance.days_until_effective,
    )
