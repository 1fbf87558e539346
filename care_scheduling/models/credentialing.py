"""Payer credentialing workflow templates, applications and tasks"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Integer, Text, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from care_scheduling.database import Base, UTCDateTime, utcnow


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class PayerCredentialingWorkflow(Base):
    """Declarative onboarding template: an ordered list of task definitions"""

    __tablename__ = "payer_credentialing_workflows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False, unique=True)
    workflow_type = Column(String(50), nullable=False, default="standard")
    task_templates = Column(JSON, nullable=True)  # [{title, description, order, estimated_days, task_type}]
    updated_at = Column(UTCDateTime, nullable=True, default=utcnow, onupdate=utcnow)


class ProviderPayerApplication(Base):
    """One application record per (provider, payer) credentialing run"""

    __tablename__ = "provider_payer_applications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False)
    application_status = Column(String(30), nullable=False, default="not_started")
    workflow_type = Column(String(50), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    tasks = relationship("CredentialingTask", back_populates="application", cascade="all, delete-orphan",
                         order_by="CredentialingTask.task_order")

    __table_args__ = (
        Index("idx_applications_pair", "provider_id", "payer_id"),
    )


class CredentialingTask(Base):
    """Checklist item generated verbatim from a payer template"""

    __tablename__ = "credentialing_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid, ForeignKey("provider_payer_applications.id", ondelete="CASCADE"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False)
    task_type = Column(String(50), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    task_status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    task_order = Column(Integer, nullable=False)
    estimated_days = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=True)
    completed_date = Column(Date, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    application = relationship("ProviderPayerApplication", back_populates="tasks")

    __table_args__ = (
        Index("idx_credentialing_tasks_pair_order", "provider_id", "payer_id", "task_order"),
    )
