"""Provider and payer models"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Boolean, Index, Uuid

from care_scheduling.database import Base, UTCDateTime, utcnow


class ProviderRole(str, Enum):
    """Billing role of a clinician"""
    ATTENDING = "attending"
    RESIDENT = "resident"
    OTHER = "other"


class Provider(Base):
    """Clinician who can render (and possibly bill) care"""

    __tablename__ = "providers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default=ProviderRole.OTHER.value)
    timezone = Column(String(64), nullable=True)  # IANA name, falls back to settings.default_timezone
    is_active = Column(Boolean, nullable=False, default=True)
    is_bookable = Column(Boolean, nullable=False, default=True)
    accepts_new_patients = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_providers_flags", "is_active", "is_bookable"),
    )

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or str(self.id)


class Payer(Base):
    """Insurance entity; acceptance is derived from status and dates, never stored"""

    __tablename__ = "payers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    status_code = Column(String(40), nullable=True, index=True)  # approved, denied, in_progress, on_pause, ...
    effective_date = Column(Date, nullable=True)
    projected_effective_date = Column(Date, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
