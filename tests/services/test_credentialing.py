"""Tests for credentialing checklist generation"""

import uuid
import pytest
from datetime import date

from care_scheduling.errors import MissingCredentialingTemplate, UnknownEntity
from care_scheduling.models import CredentialingTask, PayerCredentialingWorkflow, ProviderPayerApplication
from care_scheduling.services.credentialing import CredentialingEngine

TODAY = date(2025, 6, 2)

TEMPLATE = [
    {"title": "Submit CAQH attestation", "order": 2, "estimated_days": 5},
    {"title": "Request enrollment packet", "order": 1, "estimated_days": 3, "task_type": "outreach"},
    {"title": "Confirm effective date", "description": "Call provider relations"},
    {"title": "Sign participation agreement", "order": 2, "estimated_days": 10},
]


@pytest.fixture
def pair(factory):
    provider, payer = factory.provider(), factory.payer()
    factory.workflow(payer, TEMPLATE, workflow_type="standard_enrollment")
    return provider, payer


class TestInstantiateTasks:

    def test_tasks_follow_template_order(self, db_session, pair):
        tasks = CredentialingEngine(db_session).instantiate_tasks(*[p.id for p in pair], today=TODAY)

        assert [t.title for t in tasks] == [
            "Request enrollment packet",
            "Submit CAQH attestation",
            "Sign participation agreement",
            "Confirm effective date",
        ]
        assert [t.task_order for t in tasks] == [1, 2, 3, 4]
        assert all(t.task_status == "pending" for t in tasks)

    def test_due_dates_accumulate(self, db_session, pair):
        tasks = CredentialingEngine(db_session).instantiate_tasks(*[p.id for p in pair], today=TODAY)

        assert [t.due_date for t in tasks] == [date(2025, 6, 5), date(2025, 6, 10), date(2025, 6, 20), None]

    def test_task_type_defaults_to_workflow(self, db_session, pair):
        tasks = CredentialingEngine(db_session).instantiate_tasks(*[p.id for p in pair], today=TODAY)

        assert [t.task_type for t in tasks] == ["outreach"] + ["standard_enrollment"] * 3

    def test_application_created(self, db_session, pair):
        provider, payer = pair
        CredentialingEngine(db_session).instantiate_tasks(provider.id, payer.id, today=TODAY)

        application = db_session.query(ProviderPayerApplication).one()
        assert application.application_status == "not_started"
        assert application.workflow_type == "standard_enrollment"
        assert len(application.tasks) == 4

    def test_rerun_replaces_tasks(self, db_session, pair):
        provider, payer = pair
        engine = CredentialingEngine(db_session)
        engine.instantiate_tasks(provider.id, payer.id, today=TODAY)
        engine.instantiate_tasks(provider.id, payer.id, today=TODAY)

        assert db_session.query(CredentialingTask).count() == 4
        assert db_session.query(ProviderPayerApplication).count() == 1

    def test_missing_template(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()

        with pytest.raises(MissingCredentialingTemplate):
            CredentialingEngine(db_session).instantiate_tasks(provider.id, payer.id, today=TODAY)

    @pytest.mark.parametrize("templates", [
        [],
        {"title": "not a list"},
        [{"title": ""}],
        [{"title": "Negative", "estimated_days": -1}],
    ])
    def test_invalid_template(self, db_session, factory, templates):
        provider, payer = factory.provider(), factory.payer()
        factory.workflow(payer, templates)

        with pytest.raises(MissingCredentialingTemplate):
            CredentialingEngine(db_session).instantiate_tasks(provider.id, payer.id, today=TODAY)

    def test_invalid_template_keeps_existing_tasks(self, db_session, pair):
        provider, payer = pair
        engine = CredentialingEngine(db_session)
        engine.instantiate_tasks(provider.id, payer.id, today=TODAY)

        workflow = db_session.query(PayerCredentialingWorkflow).filter_by(payer_id=payer.id).one()
        workflow.task_templates = [{"title": ""}]
        db_session.commit()
        with pytest.raises(MissingCredentialingTemplate):
            engine.instantiate_tasks(provider.id, payer.id, today=TODAY)

        assert db_session.query(CredentialingTask).count() == 4

    def test_unknown_provider(self, db_session, pair):
        with pytest.raises(UnknownEntity):
            CredentialingEngine(db_session).instantiate_tasks(uuid.uuid4(), pair[1].id, today=TODAY)


class TestTaskStatus:

    def test_done_sets_completed_date(self, db_session, pair):
        engine = CredentialingEngine(db_session)
        task = engine.instantiate_tasks(*[p.id for p in pair], today=TODAY)[0]

        updated = engine.update_task_status(task.id, "done", today=date(2025, 6, 4))
        assert updated.completed_date == date(2025, 6, 4)

        reopened = engine.update_task_status(task.id, "in_progress", today=date(2025, 6, 5))
        assert reopened.completed_date is None

    def test_unknown_status(self, db_session, pair):
        engine = CredentialingEngine(db_session)
        task = engine.instantiate_tasks(*[p.id for p in pair], today=TODAY)[0]

        with pytest.raises(ValueError):
            engine.update_task_status(task.id, "archived", today=TODAY)

    def test_tasks_for_ordered(self, db_session, pair):
        engine = CredentialingEngine(db_session)
        engine.instantiate_tasks(*[p.id for p in pair], today=TODAY)

        assert [t.task_order for t in engine.tasks_for(*[p.id for p in pair])] == [1, 2, 3, 4]
