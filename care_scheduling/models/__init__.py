"""Database models for the Care Scheduling API"""

from .providers import Provider, ProviderRole, Payer
from .contracts import Contract, ContractStatus
from .supervision import SupervisionRelationship, Designation, SupervisionLevel
from .services import Service, ServiceInstance, ServiceInstanceIntegration
from .availability import AvailabilityRule, AvailabilityException, ExceptionType
from .appointments import Appointment, AppointmentBlock, AppointmentStatus, BLOCKING_STATUSES
from .bookability import BookabilitySnapshot, BookableEntry, BookableVia
from .credentialing import (
    PayerCredentialingWorkflow, ProviderPayerApplication, CredentialingTask, TaskStatus
)
from . import events  # noqa: F401  registers the snapshot invalidation listener

__all__ = [
    "Provider",
    "ProviderRole",
    "Payer",
    "Contract",
    "ContractStatus",
    "SupervisionRelationship",
    "Designation",
    "SupervisionLevel",
    "Service",
    "ServiceInstance",
    "ServiceInstanceIntegration",
    "AvailabilityRule",
    "AvailabilityException",
    "ExceptionType",
    "Appointment",
    "AppointmentBlock",
    "AppointmentStatus",
    "BLOCKING_STATUSES",
    "BookabilitySnapshot",
    "BookableEntry",
    "BookableVia",
    "PayerCredentialingWorkflow",
    "ProviderPayerApplication",
    "CredentialingTask",
    "TaskStatus",
]
