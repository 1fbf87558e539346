"""Materialized bookability snapshots and their entries"""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Date, Boolean, Integer, ForeignKey, Index, Uuid, UniqueConstraint, text
from sqlalchemy.orm import relationship

from care_scheduling.database import Base, UTCDateTime, utcnow


class BookableVia(str, Enum):
    DIRECT = "direct"
    SUPERVISED = "supervised"


class BookabilitySnapshot(Base):
    """Versioned, digest-stamped bookability projection for one payer

    Exactly one snapshot per payer has is_current set. Readers only see a
    snapshot's entries through that flag, so a refresh swaps whole snapshots.
    """

    __tablename__ = "bookability_snapshots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payer_id = Column(Uuid, ForeignKey("payers.id"), nullable=False)
    version = Column(Integer, nullable=False)
    as_of_date = Column(Date, nullable=False)
    digest = Column(String(64), nullable=False)  # SHA256 of the canonical entry set
    entry_count = Column(Integer, nullable=False, default=0)
    is_current = Column(Boolean, nullable=False, default=False)
    is_stale = Column(Boolean, nullable=False, default=False)
    stale_reason = Column(String(200), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    entries = relationship("BookableEntry", back_populates="snapshot", cascade="all, delete-orphan",
                           order_by="BookableEntry.provider_id")

    __table_args__ = (
        UniqueConstraint("payer_id", "version", name="uq_bookability_snapshots_payer_version"),
        Index("idx_bookability_snapshots_current", "payer_id", "is_current"),
        Index("uq_bookability_snapshots_one_current", "payer_id", unique=True,
              postgresql_where=text("is_current"), sqlite_where=text("is_current")),
    )


class BookableEntry(Base):
    """Derived statement that a provider may be booked under a payer"""

    __tablename__ = "bookable_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    snapshot_id = Column(Uuid, ForeignKey("bookability_snapshots.id", ondelete="CASCADE"), nullable=False)
    provider_id = Column(Uuid, nullable=False)
    payer_id = Column(Uuid, nullable=False)
    via = Column(String(20), nullable=False)
    billing_provider_id = Column(Uuid, nullable=False)
    rendering_provider_id = Column(Uuid, nullable=True)  # NULL when same as billing
    requires_co_visit = Column(Boolean, nullable=False, default=False)
    bookable_from_date = Column(Date, nullable=True)

    snapshot = relationship("BookabilitySnapshot", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("snapshot_id", "provider_id", name="uq_bookable_entries_snapshot_provider"),
        Index("idx_bookable_entries_payer_provider", "payer_id", "provider_id"),
    )
