"""Appointments and the storage-level booking exclusivity blocks"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Boolean, ForeignKey, Index, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from care_scheduling.database import Base, UTCDateTime, utcnow


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    COMPLETED = "completed"


# Statuses that occupy provider time
BLOCKING_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


class Appointment(Base):
    """Booked visit over the half-open interval [start_time, end_time)"""

    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    billing_provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=True)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=True)
    patient_id = Column(Uuid, nullable=True)
    service_instance_id = Column(Uuid, ForeignKey("service_instances.id"), nullable=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    requires_co_visit = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    cancelled_at = Column(UTCDateTime, nullable=True)

    blocks = relationship("AppointmentBlock", back_populates="appointment", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_appointments_provider_start", "provider_id", "start_time"),
    )


class AppointmentBlock(Base):
    """One booking-granularity grain of provider time held by a live appointment"""

    __tablename__ = "appointment_blocks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id = Column(Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    block_start = Column(UTCDateTime, nullable=False)

    appointment = relationship("Appointment", back_populates="blocks")

    __table_args__ = (
        UniqueConstraint("provider_id", "block_start", name="uq_appointment_blocks_provider_start"),
    )
