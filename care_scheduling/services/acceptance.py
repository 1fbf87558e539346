"""Payer acceptance classification

Acceptance is a pure function of (status_code, effective_date, now): nothing
here reads a clock or touches the database.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from care_scheduling.config import settings


class AcceptanceStatus(str, Enum):
    NOT_ACCEPTED = "not-accepted"
    WAITLIST = "waitlist"
    FUTURE = "future"
    ACTIVE = "active"


NOT_ACCEPTED_CODES = frozenset({"denied", "blocked", "withdrawn", "on_pause"})
IN_PROCESS_CODES = frozenset({"waiting_on_them", "in_progress", "not_started"})
APPROVED = "approved"

# Slots are only offered to payers in these states
BOOKABLE_ACCEPTANCE = frozenset({AcceptanceStatus.ACTIVE, AcceptanceStatus.FUTURE})


@dataclass(frozen=True)
class Acceptance:
    status: AcceptanceStatus
    message: str
    effective_date: Optional[date] = None
    days_until_effective: Optional[int] = None


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _format_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def classify(
    status_code: Optional[str],
    effective_date: Optional[date],
    now: Union[date, datetime],
    future_window_days: int = 21,
    projected_effective_date: Optional[date] = None,
) -> Acceptance:
    """Classify a payer's acceptance state.

    Args:
        status_code: Payer approval status (approved, denied, in_progress, ...)
        effective_date: Date the organization's contract with the payer begins
        now: Reference instant, always supplied by the caller
        future_window_days: An approved payer further out than this is waitlisted
        projected_effective_date: Estimate used only to word the waitlist message

    Returns:
        Acceptance with status and a patient-facing message
    """
    code = (status_code or "").strip().lower()
    today = _as_date(now)

    if code in NOT_ACCEPTED_CODES:
        return Acceptance(AcceptanceStatus.NOT_ACCEPTED, "We are not currently accepting this insurance.")

    if code == APPROVED:
        if effective_date is None:
            if projected_effective_date is not None:
                message = (
                    "We expect to be in network soon (estimated "
                    f"{_format_date(projected_effective_date)}). Join the waitlist to be notified."
                )
            else:
                message = "We expect to be in network soon, but timing is uncertain. Join the waitlist to be notified."
            return Acceptance(AcceptanceStatus.WAITLIST, message)

        if effective_date <= today:
            return Acceptance(
                AcceptanceStatus.ACTIVE,
                "We accept this insurance.",
                effective_date=effective_date,
                days_until_effective=0,
            )

        days = (effective_date - today).days
        if days > future_window_days:
            return Acceptance(
                AcceptanceStatus.WAITLIST,
                f"We will be in network starting {_format_date(effective_date)}. Join the waitlist to be notified.",
                effective_date=effective_date,
                days_until_effective=days,
            )
        return Acceptance(
            AcceptanceStatus.FUTURE,
            f"Available starting {_format_date(effective_date)}.",
            effective_date=effective_date,
            days_until_effective=days,
        )

    if code in IN_PROCESS_CODES:
        return Acceptance(
            AcceptanceStatus.WAITLIST,
            "We are working on getting in network with this insurance. Join the waitlist to be notified.",
        )

    return Acceptance(AcceptanceStatus.NOT_ACCEPTED, "We are not currently accepting this insurance.")


def classify_acceptance(payer, now: Union[date, datetime]) -> Acceptance:
    """Classify a Payer row (or any object with the same attributes)"""
    return classify(
        payer.status_code,
        payer.effective_date,
        now,
        future_window_days=settings.acceptance_future_window_days,
        projected_effective_date=getattr(payer, "projected_effective_date", None),
    )
