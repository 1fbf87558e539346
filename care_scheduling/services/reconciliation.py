"""Cache-vs-live reconciliation and bookability coverage health"""

from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import parse_uuid
from care_scheduling.metrics import BOOKABILITY_DIVERGENCE
from care_scheduling.models import BookabilitySnapshot, Contract, ContractStatus, Payer, Provider
from care_scheduling.services.acceptance import BOOKABLE_ACCEPTANCE, classify_acceptance
from care_scheduling.services.bookability import BookabilityResolver, ResolvedEntry
from care_scheduling.services.contracts import ContractStore
from care_scheduling.services.effective_dates import covers

logger = structlog.get_logger()


class ReconciliationService:
    """Compares materialized snapshots with the live recompute for a sample of payers"""

    def __init__(self, db: Session, resolver: Optional[BookabilityResolver] = None):
        self.db = db
        self.resolver = resolver or BookabilityResolver(db)
        self.logger = logger.bind(service="reconciliation")

    def check(self, payer_ids: Optional[List] = None, sample_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Compare each sampled payer's current snapshot with a live recompute for
        the snapshot's own as-of date.

        Statuses:
            consistent: key sets match
            diverged: fresh snapshot disagrees with live (operational alert)
            stale: snapshot already flagged stale and awaiting refresh
            no_snapshot: payer never materialized
        """
        query = self.db.query(BookabilitySnapshot).filter(BookabilitySnapshot.is_current.is_(True))
        if payer_ids:
            query = query.filter(BookabilitySnapshot.payer_id.in_([parse_uuid(p, "payer_id") for p in payer_ids]))
        snapshots = {s.payer_id: s for s in query.all()}

        if payer_ids:
            sample = [parse_uuid(p, "payer_id") for p in payer_ids]
        else:
            limit = sample_size or settings.reconciliation_sample_size
            sample = [row[0] for row in self.db.query(Payer.id).order_by(Payer.id).limit(limit).all()]

        results = []
        for payer_id in sample:
            results.append(self._check_payer(payer_id, snapshots.get(payer_id)))

        divergent = [r for r in results if r["status"] == "diverged"]
        summary = {
            "checked": len(results),
            "consistent": sum(1 for r in results if r["status"] == "consistent"),
            "diverged": len(divergent),
            "stale": sum(1 for r in results if r["status"] == "stale"),
            "no_snapshot": sum(1 for r in results if r["status"] == "no_snapshot"),
            "results": results,
        }
        self.logger.info("Reconciliation completed", **{k: v for k, v in summary.items() if k != "results"})
        return summary

    def _check_payer(self, payer_id, snapshot: Optional[BookabilitySnapshot]) -> Dict[str, Any]:
        if snapshot is None:
            return {"payer_id": str(payer_id), "status": "no_snapshot", "cache_count": None, "live_count": None}

        live = self.resolver.resolve_live(payer_id, snapshot.as_of_date)
        cache_keys = {ResolvedEntry.from_row(e).key() for e in snapshot.entries}
        live_keys = {e.key() for e in live}

        result = {
            "payer_id": str(payer_id),
            "snapshot_version": snapshot.version,
            "as_of": snapshot.as_of_date.isoformat(),
            "cache_count": len(cache_keys),
            "live_count": len(live_keys),
            "missing_from_cache": sorted(k[0] for k in live_keys - cache_keys),
            "unexpected_in_cache": sorted(k[0] for k in cache_keys - live_keys),
        }
        if cache_keys == live_keys:
            result["status"] = "consistent"
        elif snapshot.is_stale:
            result["status"] = "stale"
            result["stale_reason"] = snapshot.stale_reason
        else:
            result["status"] = "diverged"
            BOOKABILITY_DIVERGENCE.labels(payer_id=str(payer_id)).inc()
            self.logger.warning(
                "Bookability cache diverged from live recompute",
                payer_id=str(payer_id),
                version=snapshot.version,
                as_of=snapshot.as_of_date,
                count_cache=result["cache_count"],
                count_live=result["live_count"],
                missing_from_cache=result["missing_from_cache"],
                unexpected_in_cache=result["unexpected_in_cache"],
            )
        return result


class BookabilityHealthService:
    """Coverage report: who cannot be booked and what is about to lapse"""

    EXPIRY_WINDOWS = (30, 60, 90)

    def __init__(self, db: Session):
        self.db = db
        self.resolver = BookabilityResolver(db)
        self.contracts = ContractStore(db, on_change=lambda payer_id: None)

    def report(self, as_of: date) -> Dict[str, Any]:
        payers = self.db.query(Payer).order_by(Payer.name).all()
        providers = self.db.query(Provider).filter(
            Provider.is_active.is_(True), Provider.is_bookable.is_(True)
        ).all()

        payer_counts: Dict[Any, int] = {}
        provider_payers: Dict[Any, set] = {p.id: set() for p in providers}
        for payer in payers:
            entries = self.resolver.resolve_live(payer.id, as_of)
            payer_counts[payer.id] = len(entries)
            for entry in entries:
                if entry.provider_id in provider_payers:
                    provider_payers[entry.provider_id].add(payer.id)

        accepting_payers = [
            p for p in payers if classify_acceptance(p, as_of).status in BOOKABLE_ACCEPTANCE
        ]
        payers_without_providers = [
            {"payer_id": str(p.id), "name": p.name, "status_code": p.status_code}
            for p in accepting_payers if payer_counts.get(p.id, 0) == 0
        ]
        providers_without_payers = [
            {"provider_id": str(p.id), "name": p.display_name}
            for p in sorted(providers, key=lambda p: str(p.id)) if not provider_payers[p.id]
        ]

        effective_by_provider = set()
        for contract in self.db.query(Contract).filter(Contract.status == ContractStatus.ACTIVE.value).all():
            if covers(contract.effective_date, contract.termination_date, as_of):
                effective_by_provider.add(contract.provider_id)
        bookable_without_contract = [
            {"provider_id": str(p.id), "name": p.display_name}
            for p in sorted(providers, key=lambda p: str(p.id)) if p.id not in effective_by_provider
        ]

        expiring = {}
        for window in self.EXPIRY_WINDOWS:
            expiring[f"within_{window}_days"] = [
                {
                    "contract_id": str(c.id),
                    "provider_id": str(c.provider_id),
                    "payer_id": str(c.payer_id),
                    "termination_date": c.termination_date.isoformat(),
                }
                for c in self.contracts.expiring_contracts(as_of, window)
            ]

        issues = len(payers_without_providers) + len(providers_without_payers) + len(bookable_without_contract)
        return {
            "as_of": as_of.isoformat(),
            "status": "ok" if issues == 0 else "degraded",
            "summary": {
                "payers": len(payers),
                "accepting_payers": len(accepting_payers),
                "bookable_providers": len(providers),
                "issues": issues,
            },
            "payers_without_providers": payers_without_providers,
            "providers_without_payers": providers_without_payers,
            "bookable_providers_without_contract": bookable_without_contract,
            "expiring_contracts": expiring,
        }
