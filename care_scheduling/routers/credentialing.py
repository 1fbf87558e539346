"""Credentialing task endpoints"""

from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from care_scheduling.auth import verify_admin_key, verify_api_key
from care_scheduling.database import get_db
from care_scheduling.schemas.credentialing import (
    CredentialingTaskResponse, InstantiateTasksRequest, TaskStatusUpdate
)
from care_scheduling.services.availability import local_today
from care_scheduling.services.credentialing import CredentialingEngine

router = APIRouter()


@router.post("/tasks", response_model=List[CredentialingTaskResponse], status_code=201)
async def instantiate_credentialing_tasks(
    body: InstantiateTasksRequest,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_admin_key)
):
    """Replace the provider's checklist for the payer with one built from the payer template"""
    tasks = CredentialingEngine(db).instantiate_tasks(
        body.provider_id, body.payer_id, today=local_today(datetime.now(timezone.utc))
    )
    return [CredentialingTaskResponse.model_validate(t) for t in tasks]


@router.get("/tasks", response_model=List[CredentialingTaskResponse])
async def list_credentialing_tasks(
    provider_id: str = Query(...),
    payer_id: str = Query(...),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    tasks = CredentialingEngine(db).tasks_for(provider_id, payer_id)
    return [CredentialingTaskResponse.model_validate(t) for t in tasks]


@router.patch("/tasks/{task_id}", response_model=CredentialingTaskResponse)
async def update_credentialing_task(
    task_id: str,
    body: TaskStatusUpdate,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_admin_key)
):
    task = CredentialingEngine(db).update_task_status(
        task_id, body.task_status, today=local_today(datetime.now(timezone.utc))
    )
    return CredentialingTaskResponse.model_validate(task)
