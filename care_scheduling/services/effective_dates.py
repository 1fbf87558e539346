"""Effective date handling for contracts and supervision relationships"""

from typing import List, Optional, TypeVar, Generic, Iterable
from datetime import date
from dataclasses import dataclass
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar('T')


@dataclass
class EffectiveDateRecord(Generic[T]):
    """Record with a half-open effective window [effective_from, effective_to)"""
    data: T
    effective_from: Optional[date]
    effective_to: Optional[date]


def covers(effective_from: Optional[date], effective_to: Optional[date], as_of: date) -> bool:
    """True when the window is in force on as_of. A missing start is never in force."""
    if effective_from is None or effective_from > as_of:
        return False
    return effective_to is None or effective_to > as_of


def windows_overlap(
    a_from: Optional[date], a_to: Optional[date], b_from: Optional[date], b_to: Optional[date]
) -> bool:
    """Overlap test for half-open windows; a missing start means "from the beginning"."""
    a_start = a_from or date.min
    b_start = b_from or date.min
    a_end = a_to or date.max
    b_end = b_to or date.max
    return a_start < b_end and b_start < a_end


class EffectiveDateSelector:
    """Selects records whose effective window covers an as-of date"""

    def __init__(self):
        self.logger = logger.bind(service="effective_dates")

    def select_covering(self, records: Iterable[EffectiveDateRecord[T]], as_of: date) -> List[EffectiveDateRecord[T]]:
        """All records in force on as_of, latest effective_from first"""
        covering = [r for r in records if covers(r.effective_from, r.effective_to, as_of)]
        covering.sort(key=lambda r: r.effective_from, reverse=True)
        return covering

    def select_for_date(
        self,
        records: List[EffectiveDateRecord[T]],
        as_of: date,
        strict_mode: bool = False
    ) -> Optional[EffectiveDateRecord[T]]:
        """
        Select the most recent record whose effective window covers the as-of date.

        Args:
            records: Records with effective date ranges
            as_of: Date for which to select
            strict_mode: If True, error when no record covers the date

        Returns:
            Selected record or None if no record covers the date
        """
        if not records:
            return None

        covering = self.select_covering(records, as_of)
        if not covering:
            if strict_mode:
                raise ValueError(f"No records cover date {as_of}")
            return None

        if len(covering) > 1:
            self.logger.warning(
                "Multiple records cover date",
                as_of=as_of,
                total_candidates=len(covering),
                selected_effective_from=covering[0].effective_from,
            )
        return covering[0]
