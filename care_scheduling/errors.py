"""Error taxonomy for bookability resolution and scheduling

Every error carries an HTTP status and a stable machine code so the API layer
can render it without knowing the concrete class.
"""

import uuid
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all scheduling engine errors"""

    status_code = 500
    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class InvalidIdentifier(SchedulingError):
    """Malformed identifier rejected at the boundary"""

    status_code = 400
    code = "INVALID_IDENTIFIER"

    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid {field}: {value!r}", {"field": field, "value": str(value)})
        self.field = field
        self.value = value


class InvalidDateRange(SchedulingError):
    status_code = 400
    code = "INVALID_DATE_RANGE"


class UnknownEntity(SchedulingError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class NoBookableServiceForPayer(SchedulingError):
    """No service instance survives the catalog stages for this payer"""

    status_code = 422
    code = "NO_BOOKABLE_SERVICE_FOR_PAYER"


class MissingDuration(SchedulingError):
    status_code = 422
    code = "MISSING_DURATION"


class AmbiguousServiceInstance(SchedulingError):
    """More than one candidate in the preferred tier"""

    status_code = 422
    code = "AMBIGUOUS_SERVICE_INSTANCE"


class MissingCredentialingTemplate(SchedulingError):
    status_code = 422
    code = "MISSING_CREDENTIALING_TEMPLATE"


class InvalidBookingInterval(SchedulingError):
    status_code = 422
    code = "INVALID_BOOKING_INTERVAL"


class SlotConflict(SchedulingError):
    """Storage-level uniqueness violation on booking; re-fetch slots and retry"""

    status_code = 409
    code = "SLOT_CONFLICT"


class ProviderNotBookable(SchedulingError):
    status_code = 409
    code = "PROVIDER_NOT_BOOKABLE"


class ContractOverlap(SchedulingError):
    status_code = 409
    code = "CONTRACT_OVERLAP"


class SupervisionConflict(SchedulingError):
    status_code = 409
    code = "SUPERVISION_CONFLICT"


def parse_uuid(value: Any, field: str) -> uuid.UUID:
    """Validate an identifier before it reaches any lookup"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise InvalidIdentifier(field, value) from None
