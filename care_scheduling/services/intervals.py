"""Half-open time interval arithmetic used by availability and slot generation"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional


@dataclass(frozen=True, order=True)
class Interval:
    """[start, end) between two timezone-aware datetimes"""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Interval bounds must be timezone-aware")
        if self.end < self.start:
            raise ValueError(f"Interval end {self.end} precedes start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def astimezone(self, tz) -> "Interval":
        return Interval(self.start.astimezone(tz), self.end.astimezone(tz))


def merge(intervals: Iterable[Interval]) -> List[Interval]:
    """Union overlapping or touching intervals, sorted by start"""
    result: List[Interval] = []
    for interval in sorted(i for i in intervals if not i.is_empty):
        if result and interval.start <= result[-1].end:
            last = result[-1]
            if interval.end > last.end:
                result[-1] = Interval(last.start, interval.end)
        else:
            result.append(interval)
    return result


def subtract(intervals: Iterable[Interval], removals: Iterable[Interval]) -> List[Interval]:
    """Remove every removal interval from the (merged) input set"""
    pending = merge(removals)
    result: List[Interval] = []
    for interval in merge(intervals):
        pieces = [interval]
        for cut in pending:
            next_pieces = []
            for piece in pieces:
                if not piece.overlaps(cut):
                    next_pieces.append(piece)
                    continue
                if piece.start < cut.start:
                    next_pieces.append(Interval(piece.start, cut.start))
                if cut.end < piece.end:
                    next_pieces.append(Interval(cut.end, piece.end))
            pieces = next_pieces
        result.extend(pieces)
    return result


def intersect(left: Iterable[Interval], right: Iterable[Interval]) -> List[Interval]:
    """Times covered by both interval sets"""
    a, b = merge(left), merge(right)
    result: List[Interval] = []
    i = j = 0
    while i < len(a) and j < len(b):
        start = max(a[i].start, b[j].start)
        end = min(a[i].end, b[j].end)
        if start < end:
            result.append(Interval(start, end))
        if a[i].end < b[j].end:
            i += 1
        else:
            j += 1
    return result


def clip(intervals: Iterable[Interval], bounds: Interval) -> List[Interval]:
    return intersect(intervals, [bounds])


def clip_start(intervals: Iterable[Interval], earliest: Optional[datetime]) -> List[Interval]:
    if earliest is None:
        return list(intervals)
    result = []
    for interval in intervals:
        if interval.end <= earliest:
            continue
        result.append(Interval(max(interval.start, earliest), interval.end))
    return result
