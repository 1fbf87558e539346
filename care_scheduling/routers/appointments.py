"""Appointment booking endpoints"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from care_scheduling.auth import verify_api_key
from care_scheduling.database import get_db
from care_scheduling.schemas.appointments import AppointmentCreate, AppointmentResponse
from care_scheduling.schemas.common import ErrorResponse
from care_scheduling.services.booking import BookingService

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_appointment(
    body: AppointmentCreate,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Book a slot. 409 SLOT_CONFLICT means the slot was taken; re-fetch slots."""
    appointment = BookingService(db).book(
        provider_id=body.provider_id,
        payer_id=body.payer_id,
        service_instance_id=body.service_instance_id,
        start=body.start,
        now=datetime.now(timezone.utc),
        patient_id=body.patient_id,
    )
    return AppointmentResponse.model_validate(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Cancel an appointment and release its time"""
    appointment = BookingService(db).cancel(appointment_id, now=datetime.now(timezone.utc))
    return AppointmentResponse.model_validate(appointment)
