"""Credentialing schemas"""

from typing import Optional
from datetime import date
from uuid import UUID
from pydantic import BaseModel, Field


class InstantiateTasksRequest(BaseModel):
    provider_id: UUID
    payer_id: UUID


class TaskStatusUpdate(BaseModel):
    task_status: str = Field(..., pattern="^(pending|in_progress|done)$")


class CredentialingTaskResponse(BaseModel):
    id: UUID
    application_id: UUID
    provider_id: UUID
    payer_id: UUID
    task_type: Optional[str]
    title: str
    description: Optional[str]
    task_status: str
    task_order: int
    estimated_days: Optional[int]
    due_date: Optional[date]
    completed_date: Optional[date]

    model_config = {"from_attributes": True}
