"""Bookability Resolver

Two paths answer "who can be booked under this payer on this date":

* the live recompute (BookabilityResolver), a staged pipeline over contracts
  and supervision relationships; this is the source of truth
* the materialized snapshot (BookabilityService), a versioned read
  optimization that is swapped whole on refresh and never served when stale
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import SchedulingError, UnknownEntity, parse_uuid
from care_scheduling.metrics import BOOKABILITY_DIVERGENCE, BOOKABILITY_READS, BOOKABILITY_REFRESHES
from care_scheduling.models import (
    BookabilitySnapshot, BookableEntry, BookableVia, Contract, ContractStatus, Designation, Payer,
    SupervisionRelationship
)
from care_scheduling.services.effective_dates import EffectiveDateRecord, EffectiveDateSelector, covers

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedEntry:
    """One (provider, payer) bookability determination"""
    provider_id: UUID
    payer_id: UUID
    via: str
    billing_provider_id: UUID
    rendering_provider_id: Optional[UUID]
    requires_co_visit: bool
    bookable_from_date: Optional[date]

    @property
    def supervisor_id(self) -> Optional[UUID]:
        if self.via == BookableVia.SUPERVISED.value:
            return self.billing_provider_id
        return None

    def key(self) -> tuple:
        return (
            str(self.provider_id),
            self.via,
            str(self.billing_provider_id),
            str(self.rendering_provider_id) if self.rendering_provider_id else None,
            self.requires_co_visit,
            self.bookable_from_date.isoformat() if self.bookable_from_date else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_id": str(self.provider_id),
            "payer_id": str(self.payer_id),
            "via": self.via,
            "billing_provider_id": str(self.billing_provider_id),
            "rendering_provider_id": str(self.rendering_provider_id) if self.rendering_provider_id else None,
            "requires_co_visit": self.requires_co_visit,
            "bookable_from_date": self.bookable_from_date.isoformat() if self.bookable_from_date else None,
        }

    @classmethod
    def from_row(cls, row: BookableEntry) -> "ResolvedEntry":
        return cls(
            provider_id=row.provider_id,
            payer_id=row.payer_id,
            via=row.via,
            billing_provider_id=row.billing_provider_id,
            rendering_provider_id=row.rendering_provider_id,
            requires_co_visit=row.requires_co_visit,
            bookable_from_date=row.bookable_from_date,
        )


def entries_digest(entries: List[ResolvedEntry]) -> str:
    """SHA256 over the canonical (sorted) entry set"""
    canonical = json.dumps(sorted(e.key() for e in entries), separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _max_date(*values: Optional[date]) -> Optional[date]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


@dataclass
class LiveResolution:
    entries: List[ResolvedEntry]
    trace: Dict[str, Any] = field(default_factory=dict)


class BookabilityResolver:
    """Live recompute from contracts and supervision relationships"""

    def __init__(self, db: Session):
        self.db = db
        self.selector = EffectiveDateSelector()
        self.logger = logger.bind(service="bookability_resolver")

    def resolve_live(self, payer_id, as_of: date) -> List[ResolvedEntry]:
        return self.resolve(payer_id, as_of).entries

    def resolve(self, payer_id, as_of: date) -> LiveResolution:
        """
        Resolve bookable entries for a payer on a date.

        Stages:
            1. direct entries from active contracts in force on as_of
            2. supervised candidates whose supervisor has a direct entry
            3. direct wins over supervised for the same provider
            4. bookable_from_date = latest of the governing effective dates

        Returns:
            LiveResolution with entries sorted by provider id and a per-stage trace
        """
        payer_id = parse_uuid(payer_id, "payer_id")
        payer = self.db.get(Payer, payer_id)
        if payer is None:
            raise UnknownEntity("Payer", payer_id)

        trace: Dict[str, Any] = {"payer_id": str(payer_id), "as_of": as_of.isoformat()}

        direct = self._direct_stage(payer_id, as_of)
        trace["direct"] = {"contracts": len(direct)}

        supervised = self._supervised_stage(payer_id, as_of, direct)
        trace["supervised"] = {"candidates": len(supervised)}

        supervised = {pid: rel for pid, rel in supervised.items() if pid not in direct}
        trace["supervised"]["after_direct_wins"] = len(supervised)

        entries: List[ResolvedEntry] = []
        for provider_id, contract in direct.items():
            entries.append(ResolvedEntry(
                provider_id=provider_id,
                payer_id=payer_id,
                via=BookableVia.DIRECT.value,
                billing_provider_id=provider_id,
                rendering_provider_id=provider_id,
                requires_co_visit=False,
                bookable_from_date=_max_date(contract.effective_date, payer.effective_date),
            ))
        for provider_id, relationship in supervised.items():
            supervisor_contract = direct[relationship.supervisor_id]
            entries.append(ResolvedEntry(
                provider_id=provider_id,
                payer_id=payer_id,
                via=BookableVia.SUPERVISED.value,
                billing_provider_id=relationship.supervisor_id,
                rendering_provider_id=provider_id,
                requires_co_visit=relationship.requires_co_visit,
                bookable_from_date=_max_date(
                    relationship.effective_date, supervisor_contract.effective_date, payer.effective_date
                ),
            ))

        entries.sort(key=lambda e: str(e.provider_id))
        trace["result"] = {"entries": len(entries)}
        self.logger.debug("Live bookability resolved", **trace)
        return LiveResolution(entries=entries, trace=trace)

    def _direct_stage(self, payer_id: UUID, as_of: date) -> Dict[UUID, Contract]:
        contracts = self.db.query(Contract).filter(
            Contract.payer_id == payer_id,
            Contract.status == ContractStatus.ACTIVE.value,
        ).all()

        by_provider: Dict[UUID, List[EffectiveDateRecord[Contract]]] = {}
        for contract in contracts:
            by_provider.setdefault(contract.provider_id, []).append(
                EffectiveDateRecord(contract, contract.effective_date, contract.termination_date)
            )

        direct: Dict[UUID, Contract] = {}
        for provider_id, records in by_provider.items():
            selected = self.selector.select_for_date(records, as_of)
            if selected is not None:
                direct[provider_id] = selected.data
        return direct

    def _supervised_stage(
        self, payer_id: UUID, as_of: date, direct: Dict[UUID, Contract]
    ) -> Dict[UUID, SupervisionRelationship]:
        relationships = self.db.query(SupervisionRelationship).filter(
            SupervisionRelationship.payer_id == payer_id,
        ).all()

        candidates: Dict[UUID, List[SupervisionRelationship]] = {}
        for rel in relationships:
            if not covers(rel.effective_date, rel.expiration_date, as_of):
                continue
            if rel.supervisor_id not in direct:
                continue
            candidates.setdefault(rel.supervisee_id, []).append(rel)

        chosen: Dict[UUID, SupervisionRelationship] = {}
        for supervisee_id, rels in candidates.items():
            rels.sort(key=lambda r: (
                r.designation != Designation.PRIMARY.value,
                r.effective_date,
                str(r.supervisor_id),
            ))
            chosen[supervisee_id] = rels[0]
        return chosen


@dataclass
class BookabilityRead:
    """Result of a bookability read, with the path that produced it"""
    payer_id: UUID
    as_of: date
    entries: List[ResolvedEntry]
    source: str  # cache | live
    reason: Optional[str] = None
    snapshot_version: Optional[int] = None

    @property
    def no_eligible_providers(self) -> bool:
        return not self.entries


class BookabilityService:
    """Materialized bookability snapshots with refresh, read and invalidation"""

    def __init__(self, db: Session, resolver: Optional[BookabilityResolver] = None):
        self.db = db
        self.resolver = resolver or BookabilityResolver(db)
        self.logger = logger.bind(service="bookability")

    def current_snapshot(self, payer_id) -> Optional[BookabilitySnapshot]:
        return self.db.query(BookabilitySnapshot).filter(
            BookabilitySnapshot.payer_id == payer_id,
            BookabilitySnapshot.is_current.is_(True),
        ).one_or_none()

    def refresh(self, payer_id=None, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Re-materialize snapshots for one payer or, when payer_id is omitted, all payers.

        Each payer refreshes in its own transaction; a failure for one payer is
        recorded in errors[] and does not stop the others. Unchanged payers are
        a no-op, so repeating a refresh yields the same entries.
        """
        as_of = as_of or date.today()
        if payer_id is not None:
            payer_ids = [parse_uuid(payer_id, "payer_id")]
        else:
            payer_ids = [row[0] for row in self.db.query(Payer.id).order_by(Payer.id).all()]

        result = {"entries_processed": 0, "added": 0, "removed": 0, "errors": [], "payers_refreshed": 0}
        for pid in payer_ids:
            try:
                stats = self._refresh_payer(pid, as_of)
                self.db.commit()
            except (SchedulingError, SQLAlchemyError) as exc:
                self.db.rollback()
                BOOKABILITY_REFRESHES.labels(outcome="error").inc()
                self.logger.error("Bookability refresh failed", payer_id=str(pid), as_of=as_of,
                                  error=str(exc), exc_info=True)
                result["errors"].append({"payer_id": str(pid), "error": str(exc)})
                continue

            BOOKABILITY_REFRESHES.labels(outcome="changed" if stats["changed"] else "unchanged").inc()
            result["entries_processed"] += stats["entries"]
            result["added"] += stats["added"]
            result["removed"] += stats["removed"]
            result["payers_refreshed"] += 1

        self.logger.info("Bookability refresh completed", as_of=as_of, payers=len(payer_ids),
                         **{k: v for k, v in result.items() if k != "errors"}, error_count=len(result["errors"]))
        return result

    def _refresh_payer(self, payer_id: UUID, as_of: date) -> Dict[str, Any]:
        # Row lock serializes concurrent refreshes of one payer (no-op on SQLite)
        payer = self.db.query(Payer).filter(Payer.id == payer_id).with_for_update().one_or_none()
        if payer is None:
            raise UnknownEntity("Payer", payer_id)

        live = self.resolver.resolve_live(payer_id, as_of)
        digest = entries_digest(live)
        current = self.current_snapshot(payer_id)
        before = current.entry_count if current else 0

        if current is not None and current.digest == digest and current.as_of_date == as_of:
            if current.is_stale:
                self.logger.info("Stale bookability snapshot revalidated", payer_id=str(payer_id),
                                 version=current.version, stale_reason=current.stale_reason)
                current.is_stale = False
                current.stale_reason = None
            return {"entries": len(live), "added": 0, "removed": 0, "changed": False}

        old_keys = {ResolvedEntry.from_row(e).key() for e in current.entries} if current else set()
        new_keys = {e.key() for e in live}

        last_version = self.db.query(func.max(BookabilitySnapshot.version)).filter(
            BookabilitySnapshot.payer_id == payer_id
        ).scalar() or 0

        snapshot = BookabilitySnapshot(
            payer_id=payer_id,
            version=last_version + 1,
            as_of_date=as_of,
            digest=digest,
            entry_count=len(live),
            is_current=False,
        )
        snapshot.entries = [
            BookableEntry(
                provider_id=e.provider_id,
                payer_id=e.payer_id,
                via=e.via,
                billing_provider_id=e.billing_provider_id,
                rendering_provider_id=e.rendering_provider_id,
                requires_co_visit=e.requires_co_visit,
                bookable_from_date=e.bookable_from_date,
            )
            for e in live
        ]
        self.db.add(snapshot)
        self.db.flush()

        # Swap in one transaction; the old flag clears first so one_current never sees two rows
        if current is not None:
            current.is_current = False
            self.db.flush()
        snapshot.is_current = True
        self.db.flush()
        if current is not None:
            current.entries.clear()
            self.db.flush()

        added = len(new_keys - old_keys)
        removed = len(old_keys - new_keys)
        self.logger.info(
            "Bookability snapshot refreshed",
            payer_id=str(payer_id),
            as_of=as_of,
            version=snapshot.version,
            count_before=before,
            count_after=len(live),
            added=added,
            removed=removed,
            digest=digest,
        )
        return {"entries": len(live), "added": added, "removed": removed, "changed": True}

    def read(self, payer_id, as_of: date) -> BookabilityRead:
        """Serve the snapshot when it is current, fresh and for as_of; otherwise recompute live"""
        payer_id = parse_uuid(payer_id, "payer_id")

        if settings.bookability_read_mode == "live_only":
            return self._live_read(payer_id, as_of, "live_only")

        snapshot = self.current_snapshot(payer_id)
        if snapshot is None:
            return self._live_read(payer_id, as_of, "missing")
        if snapshot.is_stale:
            return self._live_read(payer_id, as_of, "stale")
        if snapshot.as_of_date != as_of:
            return self._live_read(payer_id, as_of, "as_of_mismatch")

        entries = [ResolvedEntry.from_row(e) for e in snapshot.entries]
        if not entries:
            # An empty cache is confirmed live before it is reported
            live = self.resolver.resolve_live(payer_id, as_of)
            if live:
                BOOKABILITY_DIVERGENCE.labels(payer_id=str(payer_id)).inc()
                self.logger.warning(
                    "Empty bookability snapshot but live recompute found providers",
                    payer_id=str(payer_id),
                    as_of=as_of,
                    version=snapshot.version,
                    count_cache=0,
                    count_live=len(live),
                )
                BOOKABILITY_READS.labels(source="live", reason="empty_cache").inc()
                return BookabilityRead(payer_id, as_of, live, "live", "empty_cache", snapshot.version)

        BOOKABILITY_READS.labels(source="cache", reason="fresh").inc()
        return BookabilityRead(payer_id, as_of, entries, "cache", None, snapshot.version)

    def _live_read(self, payer_id: UUID, as_of: date, reason: str) -> BookabilityRead:
        entries = self.resolver.resolve_live(payer_id, as_of)
        BOOKABILITY_READS.labels(source="live", reason=reason).inc()
        self.logger.debug("Bookability served live", payer_id=str(payer_id), as_of=as_of, reason=reason)
        return BookabilityRead(payer_id, as_of, entries, "live", reason)

    def invalidate(self, payer_id, reason: str) -> bool:
        """Mark the payer's current snapshot stale; returns False when there was none to mark"""
        payer_id = parse_uuid(payer_id, "payer_id")
        snapshot = self.current_snapshot(payer_id)
        if snapshot is None or snapshot.is_stale:
            return False
        snapshot.is_stale = True
        snapshot.stale_reason = reason
        self.db.commit()
        self.logger.info("Bookability snapshot invalidated", payer_id=str(payer_id),
                         version=snapshot.version, entry_count=snapshot.entry_count, reason=reason)
        return True
