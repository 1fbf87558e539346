"""Tests for cache reconciliation and the bookability health report"""

import pytest
from datetime import date

from sqlalchemy import insert

from care_scheduling.models import Contract
from care_scheduling.services.bookability import BookabilityService
from care_scheduling.services.reconciliation import BookabilityHealthService, ReconciliationService

AS_OF = date(2025, 6, 1)


class TestReconciliation:

    def statuses(self, summary):
        return {r["payer_id"]: r["status"] for r in summary["results"]}

    def test_statuses(self, db_session, factory):
        consistent, diverged, stale, missing = (factory.payer(name=n) for n in ("A", "B", "C", "D"))
        for payer in (consistent, diverged, stale):
            factory.contract(factory.provider(), payer)
        service = BookabilityService(db_session)
        for payer in (consistent, diverged, stale):
            service.refresh(payer.id, AS_OF)

        # Bypasses the ORM listener, so the snapshot stays fresh but wrong
        db_session.execute(insert(Contract.__table__).values(
            provider_id=factory.provider().id, payer_id=diverged.id, status="active", effective_date=date(2024, 1, 1),
        ))
        db_session.commit()
        factory.contract(factory.provider(), stale)

        summary = ReconciliationService(db_session).check()

        assert self.statuses(summary) == {
            str(consistent.id): "consistent",
            str(diverged.id): "diverged",
            str(stale.id): "stale",
            str(missing.id): "no_snapshot",
        }
        assert (summary["checked"], summary["consistent"], summary["diverged"]) == (4, 1, 1)
        assert (summary["stale"], summary["no_snapshot"]) == (1, 1)

        detail = next(r for r in summary["results"] if r["status"] == "diverged")
        assert detail["cache_count"] == 1
        assert detail["live_count"] == 2
        assert len(detail["missing_from_cache"]) == 1

    def test_compares_at_snapshot_date(self, db_session, factory):
        payer = factory.payer()
        factory.contract(factory.provider(), payer, termination_date=date(2025, 6, 2))
        BookabilityService(db_session).refresh(payer.id, AS_OF)

        summary = ReconciliationService(db_session).check(payer_ids=[str(payer.id)])

        assert summary["results"][0]["status"] == "consistent"
        assert summary["results"][0]["as_of"] == "2025-06-01"

    def test_sample_size_limits_payers(self, db_session, factory):
        for n in range(4):
            factory.payer(name=f"Plan {n}")

        assert ReconciliationService(db_session).check(sample_size=2)["checked"] == 2


class TestBookabilityHealth:

    @pytest.fixture
    def report(self, db_session, factory):
        covered = factory.payer(name="Covered Plan")
        factory.payer(name="Empty Plan")
        factory.payer(name="Denied Plan", status_code="denied")
        contracted = factory.provider(last_name="Contracted")
        orphan = factory.provider(last_name="Orphan")
        factory.provider(last_name="Retired", is_active=False)
        expiring = factory.contract(contracted, covered, termination_date=date(2025, 7, 15))
        report = BookabilityHealthService(db_session).report(AS_OF)
        report["_ids"] = {"orphan": str(orphan.id), "expiring": str(expiring.id)}
        return report

    def test_status_degraded_when_gaps_exist(self, report):
        assert report["status"] == "degraded"
        assert report["summary"]["payers"] == 3
        assert report["summary"]["accepting_payers"] == 2
        assert report["summary"]["bookable_providers"] == 2

    def test_only_accepting_payers_reported_empty(self, report):
        assert [p["name"] for p in report["payers_without_providers"]] == ["Empty Plan"]

    def test_uncontracted_bookable_provider_flagged(self, report):
        assert [p["provider_id"] for p in report["providers_without_payers"]] == [report["_ids"]["orphan"]]
        assert [p["provider_id"] for p in report["bookable_providers_without_contract"]] == [report["_ids"]["orphan"]]

    def test_expiring_contract_windows(self, report):
        expiring = report["expiring_contracts"]
        assert expiring["within_30_days"] == []
        assert [c["contract_id"] for c in expiring["within_60_days"]] == [report["_ids"]["expiring"]]
        assert [c["contract_id"] for c in expiring["within_90_days"]] == [report["_ids"]["expiring"]]

    def test_clean_network_is_ok(self, db_session, factory):
        payer = factory.payer()
        factory.contract(factory.provider(), payer)

        report = BookabilityHealthService(db_session).report(AS_OF)

        assert report["status"] == "ok"
        assert report["summary"]["issues"] == 0
