"""Appointment booking with storage-level exclusivity

Each live appointment holds one AppointmentBlock row per booking grain for
every provider it occupies. The UNIQUE (provider_id, block_start) constraint
makes the database the arbiter: of two concurrent bookings for overlapping
time, exactly one insert commits and the other becomes SlotConflict.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import (
    InvalidBookingInterval, ProviderNotBookable, SlotConflict, UnknownEntity, parse_uuid
)
from care_scheduling.metrics import SLOT_CONFLICTS
from care_scheduling.models import Appointment, AppointmentBlock, AppointmentStatus, Provider
from care_scheduling.services.availability import AvailabilityAggregator, DateRange, local_today
from care_scheduling.services.bookability import BookabilityResolver, ResolvedEntry
from care_scheduling.services.intervals import Interval, intersect
from care_scheduling.services.service_catalog import ServiceCatalogResolver
from care_scheduling.services.slots import EPOCH

logger = structlog.get_logger()


def grain_starts(start: datetime, end: datetime, grain_minutes: int) -> List[datetime]:
    """Grain boundaries covering [start, end); start must already be aligned"""
    grain = timedelta(minutes=grain_minutes)
    blocks = []
    cursor = start
    while cursor < end:
        blocks.append(cursor)
        cursor += grain
    return blocks


class BookingService:
    """Creates and cancels appointments"""

    def __init__(
        self,
        db: Session,
        resolver: Optional[BookabilityResolver] = None,
        catalog: Optional[ServiceCatalogResolver] = None,
        availability: Optional[AvailabilityAggregator] = None,
    ):
        self.db = db
        self.resolver = resolver or BookabilityResolver(db)
        self.catalog = catalog or ServiceCatalogResolver(db)
        self.availability = availability or AvailabilityAggregator(db)
        self.logger = logger.bind(service="booking")

    def book(
        self,
        provider_id,
        payer_id,
        service_instance_id,
        start: datetime,
        now: datetime,
        patient_id=None,
    ) -> Appointment:
        """
        Book a slot. Bookability is confirmed against the live recompute; time
        exclusivity is left to the storage constraint.

        Raises:
            InvalidBookingInterval: naive, misaligned or too-soon start, or time
                outside the open availability of every provider the visit occupies
            ProviderNotBookable: provider has no bookable entry for the payer on the
                local day of the visit
            SlotConflict: another live appointment already holds part of the interval
        """
        provider_id = parse_uuid(provider_id, "provider_id")
        payer_id = parse_uuid(payer_id, "payer_id")
        service_instance_id = parse_uuid(service_instance_id, "service_instance_id")
        if patient_id is not None:
            patient_id = parse_uuid(patient_id, "patient_id")

        grain = settings.booking_granularity_minutes
        if start.tzinfo is None:
            raise InvalidBookingInterval("start must carry a timezone offset", {"start": start.isoformat()})
        if (start - EPOCH) % timedelta(minutes=grain):
            raise InvalidBookingInterval(
                f"start must align to a {grain}-minute boundary", {"start": start.isoformat()}
            )
        if start < now:
            raise InvalidBookingInterval("start is in the past", {"start": start.isoformat()})
        floor = now + timedelta(minutes=settings.booking_lead_time_minutes)
        if start < floor:
            raise InvalidBookingInterval(
                f"start is inside the {settings.booking_lead_time_minutes}-minute booking lead time",
                {"start": start.isoformat(), "earliest": floor.isoformat()},
            )

        provider = self.db.get(Provider, provider_id)
        if provider is None:
            raise UnknownEntity("Provider", provider_id)

        duration = self.catalog.get_duration(service_instance_id)
        end = start + timedelta(minutes=duration)
        tz_name = provider.timezone or settings.default_timezone

        entry = self._bookable_entry(provider_id, payer_id, local_today(start, tz_name))
        if not (provider.is_active and provider.is_bookable):
            raise ProviderNotBookable("Provider is not currently bookable", {"provider_id": str(provider_id)})

        occupied = [provider_id]
        if entry.requires_co_visit and entry.supervisor_id is not None:
            occupied.append(entry.supervisor_id)
        self._check_open(occupied, Interval(start, end), tz_name)

        appointment = Appointment(
            provider_id=provider_id,
            billing_provider_id=entry.billing_provider_id,
            payer_id=payer_id,
            patient_id=patient_id,
            service_instance_id=service_instance_id,
            start_time=start,
            end_time=end,
            status=AppointmentStatus.SCHEDULED.value,
            requires_co_visit=entry.requires_co_visit,
        )
        # Blocks cover every grain the visit touches, so overlapping visits always share one
        last_grain_end = end + (-(end - EPOCH) % timedelta(minutes=grain))
        appointment.blocks = [
            AppointmentBlock(provider_id=pid, block_start=block)
            for pid in occupied
            for block in grain_starts(start, last_grain_end, grain)
        ]

        self.db.add(appointment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            SLOT_CONFLICTS.inc()
            self.logger.info(
                "Booking rejected: slot no longer available",
                provider_id=str(provider_id),
                start=start.isoformat(),
                end=end.isoformat(),
            )
            raise SlotConflict(
                "Slot is no longer available",
                {"provider_id": str(provider_id), "start": start.isoformat(), "end": end.isoformat()},
            ) from None

        self.logger.info(
            "Appointment booked",
            appointment_id=str(appointment.id),
            provider_id=str(provider_id),
            billing_provider_id=str(entry.billing_provider_id),
            payer_id=str(payer_id),
            start=start.isoformat(),
            end=end.isoformat(),
            requires_co_visit=entry.requires_co_visit,
        )
        return appointment

    def cancel(self, appointment_id, now: datetime) -> Appointment:
        """Cancel and release the held time; cancelling twice is a no-op"""
        appointment_id = parse_uuid(appointment_id, "appointment_id")
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise UnknownEntity("Appointment", appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            return appointment

        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = now
        appointment.blocks.clear()
        self.db.commit()
        self.logger.info("Appointment cancelled", appointment_id=str(appointment_id))
        return appointment

    def _bookable_entry(self, provider_id, payer_id, local_day: date) -> ResolvedEntry:
        for entry in self.resolver.resolve_live(payer_id, local_day):
            if entry.provider_id == provider_id:
                if entry.bookable_from_date and entry.bookable_from_date > local_day:
                    break
                return entry
        raise ProviderNotBookable(
            "Provider is not bookable for this payer on the requested date",
            {"provider_id": str(provider_id), "payer_id": str(payer_id), "date": local_day.isoformat()},
        )

    def _check_open(self, provider_ids: List[UUID], visit: Interval, tz_name: str) -> None:
        """The whole visit must sit inside open availability of every occupied provider"""
        days = DateRange(local_today(visit.start, tz_name), local_today(visit.end, tz_name))
        windows = None
        for provider_id in provider_ids:
            open_windows = self.availability.get_open_windows(provider_id, days, tz_name)
            windows = open_windows if windows is None else intersect(windows, open_windows)
        if not any(w.contains(visit) for w in windows or []):
            raise InvalidBookingInterval(
                "Requested time is outside the provider's open availability",
                {
                    "provider_ids": [str(pid) for pid in provider_ids],
                    "start": visit.start.isoformat(),
                    "end": visit.end.isoformat(),
                },
            )
