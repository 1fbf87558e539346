"""Provider availability rules and exceptions"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Time, Boolean, Integer, ForeignKey, Index, Uuid

from care_scheduling.database import Base


class ExceptionType(str, Enum):
    UNAVAILABLE = "unavailable"
    CUSTOM_HOURS = "custom_hours"


class AvailabilityRule(Base):
    """Weekly (or one-off) block of working time in the rule's local timezone"""

    __tablename__ = "availability_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)  # at or before start_time means next day
    is_recurring = Column(Boolean, nullable=False, default=True)
    specific_date = Column(Date, nullable=True)  # non-recurring rules
    effective_date = Column(Date, nullable=True)  # NULL = no start bound
    expiration_date = Column(Date, nullable=True)  # inclusive last day; NULL = open-ended
    timezone = Column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_availability_rules_provider", "provider_id", "day_of_week"),
        Index("idx_availability_rules_window", "provider_id", "effective_date", "expiration_date"),
    )


class AvailabilityException(Base):
    """Date-specific override: removes (unavailable) or adds (custom_hours) time"""

    __tablename__ = "availability_exceptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    exception_date = Column(Date, nullable=False)
    exception_type = Column(String(20), nullable=False, default=ExceptionType.UNAVAILABLE.value)
    start_time = Column(Time, nullable=True)  # both NULL on unavailable = whole day
    end_time = Column(Time, nullable=True)
    timezone = Column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_availability_exceptions_provider_date", "provider_id", "exception_date"),
    )
