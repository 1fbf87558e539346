"""Service catalog models"""

import uuid

from sqlalchemy import Column, String, Integer, ForeignKey, Index, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from care_scheduling.database import Base


class Service(Base):
    """Clinical service definition (e.g. "New Patient Intake")"""

    __tablename__ = "services"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    duration_minutes = Column(Integer, nullable=True)

    instances = relationship("ServiceInstance", back_populates="service")


class ServiceInstance(Base):
    """Service x payer x delivery location. payer_id NULL applies to all payers."""

    __tablename__ = "service_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False, index=True)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=True, index=True)
    location = Column(String(50), nullable=True)  # telehealth, in_person
    duration_minutes = Column(Integer, nullable=True)  # overrides the service duration

    service = relationship("Service", back_populates="instances")
    integrations = relationship("ServiceInstanceIntegration", back_populates="service_instance",
                                cascade="all, delete-orphan")

    @property
    def resolved_duration(self):
        if self.duration_minutes is not None:
            return self.duration_minutes
        return self.service.duration_minutes if self.service is not None else None


class ServiceInstanceIntegration(Base):
    """External billing-system mapping for a service instance"""

    __tablename__ = "service_instance_integrations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_instance_id = Column(Uuid, ForeignKey("service_instances.id"), nullable=False)
    system = Column(String(40), nullable=False)
    external_id = Column(String(100), nullable=True)

    service_instance = relationship("ServiceInstance", back_populates="integrations")

    __table_args__ = (
        UniqueConstraint("service_instance_id", "system", name="uq_service_instance_system"),
        Index("idx_service_integrations_instance", "service_instance_id"),
    )
