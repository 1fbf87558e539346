"""Supervisee to supervisor relationships per payer"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Integer, ForeignKey, Index, Uuid, CheckConstraint
from sqlalchemy.orm import relationship

from care_scheduling.database import Base, UTCDateTime, utcnow


class Designation(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SupervisionLevel(str, Enum):
    SIGN_OFF_ONLY = "sign_off_only"
    FIRST_VISIT_IN_PERSON = "first_visit_in_person"
    CO_VISIT_REQUIRED = "co_visit_required"


class SupervisionRelationship(Base):
    """Care rendered by the supervisee is billed through the supervisor"""

    __tablename__ = "supervision_relationships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    supervisee_id = Column(Uuid, ForeignKey("providers.id"), nullable=False, index=True)
    supervisor_id = Column(Uuid, ForeignKey("providers.id"), nullable=False, index=True)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False, index=True)
    designation = Column(String(20), nullable=False, default=Designation.PRIMARY.value)
    supervision_level = Column(String(40), nullable=False, default=SupervisionLevel.SIGN_OFF_ONLY.value)
    effective_date = Column(Date, nullable=False)
    expiration_date = Column(Date, nullable=True)  # exclusive
    concurrency_cap = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    supervisee = relationship("Provider", foreign_keys=[supervisee_id])
    supervisor = relationship("Provider", foreign_keys=[supervisor_id])

    __table_args__ = (
        CheckConstraint("supervisee_id <> supervisor_id", name="ck_supervision_not_self"),
        Index("idx_supervision_payer", "payer_id", "supervisee_id"),
    )

    @property
    def requires_co_visit(self) -> bool:
        return self.supervision_level == SupervisionLevel.CO_VISIT_REQUIRED.value
