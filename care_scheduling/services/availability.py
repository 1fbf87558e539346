"""Availability Aggregator

Expands weekly rules and date-specific exceptions into open windows. Rules
and exceptions are interpreted in their own timezone, interval math happens
in UTC, and windows are returned in the caller's timezone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import InvalidDateRange, UnknownEntity, parse_uuid
from care_scheduling.models import AvailabilityException, AvailabilityRule, ExceptionType, Provider
from care_scheduling.services.intervals import Interval, clip, merge, subtract

logger = structlog.get_logger()


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of local calendar dates"""
    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidDateRange(f"end_date {self.end} is before start_date {self.start}",
                                   {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()})

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self):
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)


def get_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name}") from None


def js_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (day.weekday() + 1) % 7


def local_interval(day: date, start: time, end: time, tz: ZoneInfo) -> Interval:
    """Local wall-clock range on a day as a UTC interval; end at or before start rolls to the next day"""
    end_day = day + timedelta(days=1) if end <= start else day
    start_at = datetime.combine(day, start, tzinfo=tz).astimezone(timezone.utc)
    end_at = datetime.combine(end_day, end, tzinfo=tz).astimezone(timezone.utc)
    return Interval(start_at, end_at)


def local_day_bounds(day: date, tz: ZoneInfo) -> Interval:
    return Interval(
        datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc),
        datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc),
    )


class AvailabilityAggregator:
    """Computes open time windows for a provider"""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logger.bind(service="availability")

    def get_open_windows(self, provider_id, date_range: DateRange, tz_name: Optional[str] = None) -> List[Interval]:
        """
        Open windows for a provider across an inclusive local date range.

        Args:
            provider_id: Provider identifier
            date_range: Local calendar dates in the requested timezone
            tz_name: IANA timezone of the request (defaults to settings.default_timezone)

        Returns:
            Merged, non-overlapping windows expressed in the requested timezone
        """
        provider_id = parse_uuid(provider_id, "provider_id")
        provider = self.db.get(Provider, provider_id)
        if provider is None:
            raise UnknownEntity("Provider", provider_id)

        request_tz = get_zone(tz_name)
        provider_tz_name = provider.timezone or settings.default_timezone
        bounds = Interval(
            local_day_bounds(date_range.start, request_tz).start,
            local_day_bounds(date_range.end, request_tz).end,
        )

        rules = self.db.query(AvailabilityRule).filter(AvailabilityRule.provider_id == provider_id).all()
        exceptions = self.db.query(AvailabilityException).filter(
            AvailabilityException.provider_id == provider_id,
            AvailabilityException.exception_date >= date_range.start - timedelta(days=1),
            AvailabilityException.exception_date <= date_range.end + timedelta(days=1),
        ).all()

        # Rule days are local to each rule; widen by a day so offsets never drop a window
        scan = [date_range.start - timedelta(days=1)] + list(date_range.dates()) + [date_range.end + timedelta(days=1)]

        per_day: Dict[date, List[Interval]] = {}
        for rule in rules:
            rule_tz = get_zone(rule.timezone or provider_tz_name)
            for day in scan:
                if self._rule_applies(rule, day):
                    per_day.setdefault(day, []).append(local_interval(day, rule.start_time, rule.end_time, rule_tz))

        removals: Dict[date, List[Interval]] = {}
        additions: Dict[date, List[Interval]] = {}
        for exc in exceptions:
            exc_tz = get_zone(exc.timezone or provider_tz_name)
            if exc.exception_type == ExceptionType.CUSTOM_HOURS.value:
                if exc.start_time is None or exc.end_time is None:
                    self.logger.warning("custom_hours exception without times ignored", exception_id=str(exc.id))
                    continue
                additions.setdefault(exc.exception_date, []).append(
                    local_interval(exc.exception_date, exc.start_time, exc.end_time, exc_tz))
            elif exc.start_time is None or exc.end_time is None:
                removals.setdefault(exc.exception_date, []).append(local_day_bounds(exc.exception_date, exc_tz))
            else:
                removals.setdefault(exc.exception_date, []).append(
                    local_interval(exc.exception_date, exc.start_time, exc.end_time, exc_tz))

        rule_windows: List[Interval] = []
        for day in scan:
            rule_windows.extend(merge(per_day.get(day, [])))

        # Removals apply to every rule window they touch, including overnight rules from the day before
        all_removals = [r for rs in removals.values() for r in rs]
        all_additions = [a for adds in additions.values() for a in adds]
        result = clip(merge(subtract(rule_windows, all_removals) + all_additions), bounds)

        self.logger.debug(
            "Open windows computed",
            provider_id=str(provider_id),
            start_date=date_range.start,
            end_date=date_range.end,
            rules=len(rules),
            exceptions=len(exceptions),
            windows=len(result),
        )
        return [w.astimezone(request_tz) for w in result]

    @staticmethod
    def _rule_applies(rule: AvailabilityRule, day: date) -> bool:
        if rule.effective_date is not None and day < rule.effective_date:
            return False
        if rule.expiration_date is not None and day > rule.expiration_date:
            return False
        if rule.is_recurring:
            return rule.day_of_week is not None and rule.day_of_week == js_weekday(day)
        if rule.specific_date is not None:
            return rule.specific_date == day
        return False


def local_today(now: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar date of an instant in the given (or default) timezone"""
    return now.astimezone(get_zone(tz_name)).date()
