"""Pydantic schemas for API requests and responses"""

from .common import ErrorResponse
from .bookability import (
    BookableEntryResponse, BookabilityResponse, RefreshRequest, RefreshResponse, ReconciliationResponse
)
from .slots import SlotResponse, AcceptanceResponse, PayerSlotsResponse, ProviderSlotsResponse
from .appointments import AppointmentCreate, AppointmentResponse
from .credentialing import InstantiateTasksRequest, TaskStatusUpdate, CredentialingTaskResponse

__all__ = [
    "ErrorResponse",
    "BookableEntryResponse", "BookabilityResponse", "RefreshRequest", "RefreshResponse",
    "ReconciliationResponse",
    "SlotResponse", "AcceptanceResponse", "PayerSlotsResponse", "ProviderSlotsResponse",
    "AppointmentCreate", "AppointmentResponse",
    "InstantiateTasksRequest", "TaskStatusUpdate", "CredentialingTaskResponse",
]
