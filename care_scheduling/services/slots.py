"""Slot Generator

Turns open availability into discrete, bookable slots and merges them across
every eligible provider of a payer.
"""

import time as _time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import InvalidDateRange, UnknownEntity, parse_uuid
from care_scheduling.metrics import SLOT_GENERATION_DURATION, SLOT_GENERATION_TRUNCATED, SLOTS_GENERATED
from care_scheduling.models import Appointment, BLOCKING_STATUSES, Payer, Provider
from care_scheduling.services.acceptance import Acceptance, BOOKABLE_ACCEPTANCE, classify_acceptance
from care_scheduling.services.availability import AvailabilityAggregator, DateRange, get_zone, local_day_bounds, local_today
from care_scheduling.services.bookability import BookabilityService, ResolvedEntry
from care_scheduling.services.intervals import Interval, clip_start, intersect
from care_scheduling.services.service_catalog import ResolvedService, ServiceCatalogResolver

logger = structlog.get_logger()

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Deadline:
    """Caller-supplied time limit; generation stops early once it expires"""

    def __init__(self, timeout_ms: Optional[int], clock: Callable[[], float] = _time.monotonic):
        self.clock = clock
        self.expires_at = None if timeout_ms is None else clock() + timeout_ms / 1000.0

    def expired(self) -> bool:
        return self.expires_at is not None and self.clock() >= self.expires_at


def align_up(moment: datetime, grain_minutes: int) -> datetime:
    """Round up to the next booking grain boundary (grains are counted from the UTC epoch)"""
    grain = timedelta(minutes=grain_minutes)
    remainder = (moment - EPOCH) % grain
    return moment if not remainder else moment + (grain - remainder)


@dataclass(frozen=True)
class Slot:
    provider_id: UUID
    billing_provider_id: UUID
    start: datetime
    end: datetime
    requires_co_visit: bool = False
    service_instance_id: Optional[UUID] = None
    via: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_id": str(self.provider_id),
            "billing_provider_id": str(self.billing_provider_id),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "requires_co_visit": self.requires_co_visit,
            "service_instance_id": str(self.service_instance_id) if self.service_instance_id else None,
            "via": self.via,
        }


@dataclass
class SlotBatch:
    slots: List[Slot] = field(default_factory=list)
    truncated: bool = False


@dataclass
class PayerSlotResult:
    payer_id: UUID
    acceptance: Acceptance
    slots: List[Slot] = field(default_factory=list)
    service: Optional[ResolvedService] = None
    bookability_source: Optional[str] = None
    truncated: bool = False
    providers_considered: int = 0


class SlotGenerator:
    """Generates offerable appointment slots"""

    def __init__(
        self,
        db: Session,
        catalog: Optional[ServiceCatalogResolver] = None,
        availability: Optional[AvailabilityAggregator] = None,
        bookability: Optional[BookabilityService] = None,
    ):
        self.db = db
        self.catalog = catalog or ServiceCatalogResolver(db)
        self.availability = availability or AvailabilityAggregator(db)
        self.bookability = bookability or BookabilityService(db)
        self.logger = logger.bind(service="slot_generator")

    def generate_slots(
        self,
        provider_id,
        service_instance_id,
        date_range: DateRange,
        tz_name: Optional[str],
        now: datetime,
        entry: Optional[ResolvedEntry] = None,
        deadline: Optional[Deadline] = None,
        duration_minutes: Optional[int] = None,
    ) -> SlotBatch:
        """
        Slots for one provider across an inclusive local date range.

        Args:
            provider_id: Rendering provider
            service_instance_id: Service instance the slots are for (supplies duration)
            date_range: Local dates in tz_name
            tz_name: IANA timezone slots are expressed in
            now: Reference instant for the lead-time floor
            entry: Bookable entry for the provider; supervised co-visit entries
                also require the supervisor to be free
            deadline: Optional caller deadline
            duration_minutes: Pre-resolved duration, skips the catalog lookup

        Returns:
            SlotBatch of non-overlapping slots sorted by start
        """
        provider_id = parse_uuid(provider_id, "provider_id")
        service_instance_id = parse_uuid(service_instance_id, "service_instance_id")
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        self._check_range(date_range)
        request_tz = get_zone(tz_name)
        deadline = deadline or Deadline(None)
        started = _time.monotonic()

        duration = duration_minutes or self.catalog.get_duration(service_instance_id)
        windows = self.availability.get_open_windows(provider_id, date_range, tz_name)

        co_visit = entry is not None and entry.requires_co_visit and entry.supervisor_id is not None
        busy_providers = [provider_id]
        if co_visit:
            supervisor_windows = self.availability.get_open_windows(entry.supervisor_id, date_range, tz_name)
            windows = intersect(windows, supervisor_windows)
            busy_providers.append(entry.supervisor_id)

        if entry is not None and entry.bookable_from_date is not None:
            windows = clip_start(windows, local_day_bounds(entry.bookable_from_date, request_tz).start)

        bounds = Interval(
            local_day_bounds(date_range.start, request_tz).start,
            local_day_bounds(date_range.end, request_tz).end,
        )
        busy = self._busy_intervals(busy_providers, bounds)
        floor = now + timedelta(minutes=settings.booking_lead_time_minutes)

        batch = SlotBatch()
        for window in windows:
            if deadline.expired():
                batch.truncated = True
                break
            for start, end in self._tile(window, duration):
                candidate = Interval(start, end)
                if start < floor:
                    continue
                if any(candidate.overlaps(b) for b in busy):
                    continue
                batch.slots.append(Slot(
                    provider_id=provider_id,
                    billing_provider_id=entry.billing_provider_id if entry else provider_id,
                    start=start.astimezone(request_tz),
                    end=end.astimezone(request_tz),
                    requires_co_visit=bool(co_visit),
                    service_instance_id=service_instance_id,
                    via=entry.via if entry else None,
                ))

        if batch.truncated:
            SLOT_GENERATION_TRUNCATED.inc()
            self.logger.warning("Slot generation truncated by deadline", provider_id=str(provider_id),
                                slots_so_far=len(batch.slots))
        SLOT_GENERATION_DURATION.labels(scope="provider").observe(_time.monotonic() - started)
        return batch

    def generate_payer_slots(
        self,
        payer_id,
        service_category: str,
        date_range: DateRange,
        tz_name: Optional[str],
        now: datetime,
        deadline: Optional[Deadline] = None,
        location: Optional[str] = None,
    ) -> PayerSlotResult:
        """
        Chronologically merged slots for every eligible provider of a payer.

        Payers that are not accepted or only waitlisted get no slots. Bookability
        is read per day, from the snapshot when fresh and live otherwise.
        """
        payer_id = parse_uuid(payer_id, "payer_id")
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        self._check_range(date_range)
        get_zone(tz_name)
        deadline = deadline or Deadline(settings.slot_generation_timeout_ms)
        started = _time.monotonic()

        payer = self.db.get(Payer, payer_id)
        if payer is None:
            raise UnknownEntity("Payer", payer_id)

        acceptance = classify_acceptance(payer, local_today(now, tz_name))
        result = PayerSlotResult(payer_id=payer_id, acceptance=acceptance)
        if acceptance.status not in BOOKABLE_ACCEPTANCE:
            self.logger.info("Payer not bookable, no slots offered", payer_id=str(payer_id),
                             acceptance=acceptance.status.value)
            return result

        service = self.catalog.resolve_bookable_service(payer_id, service_category, location=location)
        result.service = service

        runs, sources = self._bookability_runs(payer_id, date_range)
        result.bookability_source = sources.pop() if len(sources) == 1 else "mixed"

        providers = self._eligible_providers({provider_id for provider_id, _, _ in runs})
        result.providers_considered = len(providers)

        slots: List[Slot] = []
        for provider_id, entry, run_range in runs:
            if provider_id not in providers:
                continue
            if deadline.expired():
                result.truncated = True
                break
            batch = self.generate_slots(
                provider_id, service.service_instance_id, run_range, tz_name, now,
                entry=entry, deadline=deadline, duration_minutes=service.duration_minutes,
            )
            slots.extend(batch.slots)
            if batch.truncated:
                result.truncated = True
                break

        result.slots = sorted(slots, key=lambda s: (s.start, str(s.provider_id)))
        SLOTS_GENERATED.labels(scope="payer").inc(len(result.slots))
        SLOT_GENERATION_DURATION.labels(scope="payer").observe(_time.monotonic() - started)
        self.logger.info(
            "Payer slots generated",
            payer_id=str(payer_id),
            service_instance_id=str(service.service_instance_id),
            start_date=date_range.start,
            end_date=date_range.end,
            providers=len(providers),
            slots=len(result.slots),
            bookability_source=result.bookability_source,
            truncated=result.truncated,
        )
        return result

    def _bookability_runs(self, payer_id: UUID, date_range: DateRange) -> Tuple[List[Tuple[UUID, ResolvedEntry, DateRange]], set]:
        """Group consecutive days with an identical entry into (provider, entry, range) runs"""
        runs: List[Tuple[UUID, ResolvedEntry, DateRange]] = []
        open_runs: Dict[UUID, Tuple[ResolvedEntry, date, date]] = {}
        sources = set()

        for day in date_range.dates():
            read = self.bookability.read(payer_id, day)
            sources.add(read.source)
            todays = {e.provider_id: e for e in read.entries}

            for provider_id in list(open_runs):
                entry, start, end = open_runs[provider_id]
                if todays.get(provider_id) != entry:
                    runs.append((provider_id, entry, DateRange(start, end)))
                    del open_runs[provider_id]
            for provider_id, entry in todays.items():
                if provider_id in open_runs:
                    open_runs[provider_id] = (entry, open_runs[provider_id][1], day)
                else:
                    open_runs[provider_id] = (entry, day, day)

        for provider_id, (entry, start, end) in open_runs.items():
            runs.append((provider_id, entry, DateRange(start, end)))
        runs.sort(key=lambda r: (str(r[0]), r[2].start))
        return runs, sources

    def _eligible_providers(self, provider_ids: Iterable[UUID]) -> set:
        provider_ids = list(provider_ids)
        if not provider_ids:
            return set()
        rows = self.db.query(Provider.id).filter(
            Provider.id.in_(provider_ids),
            Provider.is_active.is_(True),
            Provider.is_bookable.is_(True),
            Provider.accepts_new_patients.is_(True),
        ).all()
        return {row[0] for row in rows}

    def _busy_intervals(self, provider_ids: List[UUID], bounds: Interval) -> List[Interval]:
        """Booked time for the providers, including co-visits they supervise"""
        appointments = self.db.query(Appointment).filter(
            Appointment.status.in_(BLOCKING_STATUSES),
            Appointment.start_time < bounds.end,
            Appointment.end_time > bounds.start,
            or_(
                Appointment.provider_id.in_(provider_ids),
                and_(Appointment.requires_co_visit.is_(True), Appointment.billing_provider_id.in_(provider_ids)),
            ),
        ).all()
        return [Interval(a.start_time, a.end_time) for a in appointments]

    def _tile(self, window: Interval, duration_minutes: int):
        length = timedelta(minutes=duration_minutes)
        buffer = timedelta(minutes=settings.slot_buffer_minutes)
        grain = settings.booking_granularity_minutes
        start = align_up(window.start, grain)
        while start + length <= window.end:
            yield start, start + length
            start = align_up(start + length + buffer, grain)

    @staticmethod
    def _check_range(date_range: DateRange) -> None:
        if date_range.days > settings.max_slot_range_days:
            raise InvalidDateRange(
                f"Date range spans {date_range.days} days; the maximum is {settings.max_slot_range_days}",
                {"start_date": date_range.start.isoformat(), "end_date": date_range.end.isoformat()},
            )
