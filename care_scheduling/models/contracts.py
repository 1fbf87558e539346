"""Direct provider-payer billing contracts"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from care_scheduling.database import Base, UTCDateTime, utcnow


class ContractStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    TERMINATED = "terminated"
    SUSPENDED = "suspended"


class Contract(Base):
    """Provider x payer billing relationship. Terminated explicitly, never deleted."""

    __tablename__ = "contracts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False, index=True)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ContractStatus.PENDING.value)
    effective_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)  # exclusive
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utcnow)

    provider = relationship("Provider")
    payer = relationship("Payer")

    __table_args__ = (
        Index("idx_contracts_payer_status", "payer_id", "status"),
        Index("idx_contracts_pair", "provider_id", "payer_id"),
    )
