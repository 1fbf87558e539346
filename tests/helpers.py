"""
Test helpers for the Care Scheduling API suite: row factories and time helpers.
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from care_scheduling.models import (
    AvailabilityException, AvailabilityRule, Appointment, Contract, Payer, PayerCredentialingWorkflow,
    Provider, Service, ServiceInstance, ServiceInstanceIntegration, SupervisionRelationship
)

DENVER = ZoneInfo("America/Denver")


class Factory:
    """Builds committed rows with sensible defaults"""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def provider(self, **kwargs) -> Provider:
        kwargs.setdefault("first_name", "Test")
        kwargs.setdefault("last_name", "Provider")
        kwargs.setdefault("role", "attending")
        kwargs.setdefault("timezone", "America/Denver")
        return self._save(Provider(**kwargs))

    def payer(self, **kwargs) -> Payer:
        kwargs.setdefault("name", "Test Health Plan")
        kwargs.setdefault("status_code", "approved")
        kwargs.setdefault("effective_date", date(2024, 1, 1))
        return self._save(Payer(**kwargs))

    def contract(self, provider, payer, **kwargs) -> Contract:
        kwargs.setdefault("status", "active")
        kwargs.setdefault("effective_date", date(2024, 1, 1))
        return self._save(Contract(provider_id=provider.id, payer_id=payer.id, **kwargs))

    def supervision(self, supervisee, supervisor, payer, **kwargs) -> SupervisionRelationship:
        kwargs.setdefault("designation", "primary")
        kwargs.setdefault("supervision_level", "sign_off_only")
        kwargs.setdefault("effective_date", date(2024, 1, 1))
        return self._save(SupervisionRelationship(
            supervisee_id=supervisee.id, supervisor_id=supervisor.id, payer_id=payer.id, **kwargs
        ))

    def service_instance(self, name="New Patient Intake", duration=60, payer=None, systems=("intakeq",),
                         location="telehealth", instance_duration=None) -> ServiceInstance:
        service = self._save(Service(name=name, duration_minutes=duration))
        instance = ServiceInstance(
            service_id=service.id,
            payer_id=payer.id if payer is not None else None,
            location=location,
            duration_minutes=instance_duration,
        )
        instance.integrations = [
            ServiceInstanceIntegration(system=system, external_id=f"{system}-{name[:8]}") for system in systems
        ]
        return self._save(instance)

    def weekly_rule(self, provider, day_of_week, start="09:00", end="12:00", **kwargs) -> AvailabilityRule:
        return self._save(AvailabilityRule(
            provider_id=provider.id,
            day_of_week=day_of_week,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            is_recurring=True,
            **kwargs,
        ))

    def every_day(self, provider, start="09:00", end="17:00"):
        return [self.weekly_rule(provider, dow, start, end) for dow in range(7)]

    def exception(self, provider, exception_date, exception_type="unavailable", start=None, end=None, **kwargs):
        return self._save(AvailabilityException(
            provider_id=provider.id,
            exception_date=exception_date,
            exception_type=exception_type,
            start_time=time.fromisoformat(start) if start else None,
            end_time=time.fromisoformat(end) if end else None,
            **kwargs,
        ))

    def appointment(self, provider, start, minutes=60, status="scheduled", **kwargs) -> Appointment:
        return self._save(Appointment(
            provider_id=provider.id,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            status=status,
            **kwargs,
        ))

    def workflow(self, payer, templates, workflow_type="standard") -> PayerCredentialingWorkflow:
        return self._save(PayerCredentialingWorkflow(
            payer_id=payer.id, workflow_type=workflow_type, task_templates=templates
        ))


def denver(year, month, day, hour=0, minute=0) -> datetime:
    """Aware datetime in America/Denver"""
    return datetime(year, month, day, hour, minute, tzinfo=DENVER)




def upcoming_dates(days: int = 2) -> dict:
    """start_date/end_date query params beginning tomorrow in the default timezone"""
    start = datetime.now(DENVER).date() + timedelta(days=1)
    return {"start_date": start.isoformat(), "end_date": (start + timedelta(days=days - 1)).isoformat()}
