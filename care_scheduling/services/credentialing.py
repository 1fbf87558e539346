"""Credentialing Workflow Engine

Interprets a payer's declarative task template. There is no per-payer code
and no default template: a payer without one cannot be credentialed.
"""

from datetime import date, timedelta
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from care_scheduling.errors import MissingCredentialingTemplate, UnknownEntity, parse_uuid
from care_scheduling.models import (
    CredentialingTask, Payer, PayerCredentialingWorkflow, Provider, ProviderPayerApplication, TaskStatus
)

logger = structlog.get_logger()


class TaskTemplate(BaseModel):
    """One entry of a payer workflow template"""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    order: Optional[int] = None
    estimated_days: Optional[int] = Field(None, ge=0)
    task_type: Optional[str] = None


class CredentialingEngine:
    """Generates and maintains credentialing checklists"""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logger.bind(service="credentialing")

    def load_template(self, payer_id) -> tuple:
        workflow = self.db.query(PayerCredentialingWorkflow).filter(
            PayerCredentialingWorkflow.payer_id == payer_id
        ).one_or_none()
        if workflow is None or not workflow.task_templates:
            raise MissingCredentialingTemplate(
                "No credentialing workflow template for payer", {"payer_id": str(payer_id)}
            )
        if not isinstance(workflow.task_templates, list):
            raise MissingCredentialingTemplate(
                "Credentialing workflow template must be a list of tasks", {"payer_id": str(payer_id)}
            )

        templates = []
        for position, raw in enumerate(workflow.task_templates):
            try:
                templates.append((position, TaskTemplate.model_validate(raw)))
            except ValidationError as exc:
                raise MissingCredentialingTemplate(
                    f"Credentialing template entry {position} is invalid",
                    {"payer_id": str(payer_id), "position": position, "errors": exc.errors(include_url=False)},
                ) from None
        # Template order, then position for entries that tie or omit it
        templates.sort(key=lambda item: (item[1].order is None, item[1].order or 0, item[0]))
        return workflow, [t for _, t in templates]

    def instantiate_tasks(self, provider_id, payer_id, today: date, commit: bool = True) -> List[CredentialingTask]:
        """
        Replace the (provider, payer) checklist with a fresh one built from the payer template.

        Prior tasks and application for the pair are deleted in the same
        transaction, so re-running yields the same tasks rather than duplicates.
        Validation happens before anything is deleted.
        """
        provider_id = parse_uuid(provider_id, "provider_id")
        payer_id = parse_uuid(payer_id, "payer_id")
        if self.db.get(Provider, provider_id) is None:
            raise UnknownEntity("Provider", provider_id)
        if self.db.get(Payer, payer_id) is None:
            raise UnknownEntity("Payer", payer_id)

        workflow, templates = self.load_template(payer_id)

        previous = self.db.query(ProviderPayerApplication).filter(
            ProviderPayerApplication.provider_id == provider_id,
            ProviderPayerApplication.payer_id == payer_id,
        ).all()
        orphaned = self.db.query(CredentialingTask).filter(
            CredentialingTask.provider_id == provider_id,
            CredentialingTask.payer_id == payer_id,
        ).all()
        for task in orphaned:
            self.db.delete(task)
        for application in previous:
            self.db.delete(application)
        self.db.flush()

        application = ProviderPayerApplication(
            provider_id=provider_id,
            payer_id=payer_id,
            application_status="not_started",
            workflow_type=workflow.workflow_type,
        )
        self.db.add(application)
        self.db.flush()

        tasks = []
        due = today
        for index, template in enumerate(templates, start=1):
            if template.estimated_days is not None:
                due = due + timedelta(days=template.estimated_days)
            task = CredentialingTask(
                application_id=application.id,
                provider_id=provider_id,
                payer_id=payer_id,
                task_type=template.task_type or workflow.workflow_type,
                title=template.title,
                description=template.description,
                task_status=TaskStatus.PENDING.value,
                task_order=index,
                estimated_days=template.estimated_days,
                due_date=due if template.estimated_days is not None else None,
            )
            self.db.add(task)
            tasks.append(task)

        if commit:
            self.db.commit()
        else:
            self.db.flush()

        self.logger.info(
            "Credentialing tasks instantiated",
            provider_id=str(provider_id),
            payer_id=str(payer_id),
            application_id=str(application.id),
            tasks_created=len(tasks),
            tasks_replaced=len(orphaned),
        )
        return tasks

    def update_task_status(self, task_id, status: str, today: date) -> CredentialingTask:
        task_id = parse_uuid(task_id, "task_id")
        status = TaskStatus(status).value
        task = self.db.get(CredentialingTask, task_id)
        if task is None:
            raise UnknownEntity("CredentialingTask", task_id)

        task.task_status = status
        task.completed_date = today if status == TaskStatus.DONE.value else None
        self.db.commit()
        self.logger.info("Credentialing task updated", task_id=str(task_id), task_status=status)
        return task

    def tasks_for(self, provider_id, payer_id) -> List[CredentialingTask]:
        return self.db.query(CredentialingTask).filter(
            CredentialingTask.provider_id == parse_uuid(provider_id, "provider_id"),
            CredentialingTask.payer_id == parse_uuid(payer_id, "payer_id"),
        ).order_by(CredentialingTask.task_order).all()
