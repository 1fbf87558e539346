"""Tests for the background worker pass and the management CLI"""

import json
from datetime import date

from click.testing import CliRunner
from sqlalchemy import insert

from care_scheduling.cli import cli
from care_scheduling.models import BookabilitySnapshot, Contract
from care_scheduling.services.bookability import BookabilityService
from care_scheduling.worker import Worker
from tests.helpers import denver


def current(db, payer):
    db.expire_all()
    return db.query(BookabilitySnapshot).filter_by(payer_id=payer.id, is_current=True).one_or_none()


class TestWorker:

    def test_rolls_outdated_snapshots_forward(self, db_session, factory):
        payer = factory.payer()
        factory.contract(factory.provider(), payer)
        BookabilityService(db_session).refresh(payer.id, date(2025, 6, 1))

        result = Worker().run_once(now=denver(2025, 6, 3, 12))

        assert result["refreshed"] == 1
        assert result["errors"] == []
        assert result["reconciliation"]["consistent"] == 1
        assert current(db_session, payer).as_of_date == date(2025, 6, 3)

    def test_refreshes_stale_snapshots(self, db_session, factory):
        payer = factory.payer()
        BookabilityService(db_session).refresh(payer.id, date(2025, 6, 3))
        factory.contract(factory.provider(), payer)

        result = Worker().run_once(now=denver(2025, 6, 3, 12))

        assert result["refreshed"] == 1
        snapshot = current(db_session, payer)
        assert snapshot.is_stale is False
        assert snapshot.entry_count == 1

    def test_fresh_snapshots_left_alone(self, db_session, factory):
        payer = factory.payer()
        BookabilityService(db_session).refresh(payer.id, date(2025, 6, 3))

        result = Worker().run_once(now=denver(2025, 6, 3, 12))

        assert result["refreshed"] == 0
        assert current(db_session, payer).version == 1


class TestCli:

    def test_refresh(self, db_session, factory):
        payer = factory.payer()
        factory.contract(factory.provider(), payer)

        result = CliRunner().invoke(cli, ["refresh", "--payer-id", str(payer.id), "--as-of", "2025-06-01"])

        assert result.exit_code == 0, result.output
        assert "Refreshed 1 payer(s)" in result.output
        assert current(db_session, payer).entry_count == 1

    def test_refresh_invalid_payer(self, db_session):
        result = CliRunner().invoke(cli, ["refresh", "--payer-id", "not-a-uuid"])

        assert result.exit_code == 1
        assert "Refresh failed" in result.output

    def test_reconcile_flags_divergence(self, db_session, factory):
        payer = factory.payer()
        BookabilityService(db_session).refresh(payer.id, date(2025, 6, 1))
        db_session.execute(insert(Contract.__table__).values(
            provider_id=factory.provider().id, payer_id=payer.id, status="active", effective_date=date(2024, 1, 1),
        ))
        db_session.commit()

        result = CliRunner().invoke(cli, ["reconcile"])

        assert result.exit_code == 2
        assert "1 diverged" in result.output

    def test_health_report_json(self, db_session, factory):
        factory.payer(name="Empty Plan")

        result = CliRunner().invoke(cli, ["health-report", "--date", "2025-06-01"])

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["status"] == "degraded"
        assert [p["name"] for p in report["payers_without_providers"]] == ["Empty Plan"]

    def test_instantiate_tasks(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        factory.workflow(payer, [{"title": "Submit application", "estimated_days": 7}])

        result = CliRunner().invoke(cli, ["instantiate-tasks", str(provider.id), str(payer.id)])

        assert result.exit_code == 0, result.output
        assert "Created 1 task(s)" in result.output

    def test_instantiate_tasks_without_template(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()

        result = CliRunner().invoke(cli, ["instantiate-tasks", str(provider.id), str(payer.id)])

        assert result.exit_code == 1
        assert "MISSING_CREDENTIALING_TEMPLATE" in result.output
