"""
Due-date arithmetic for recurring templates.

Calendar-month steps use dateutil's relativedelta, which clamps the
day to the end of a shorter month (Jan 31 + 1 month = Feb 28, or 29
in a leap year). Stepping again starts from the clamped date, so a
monthly series that starts on the 31st drifts to the 28th.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from dateutil.relativedelta import relativedelta

from finance_tracker.exceptions import InvalidInputError
from finance_tracker.models.enums import Frequency, IntervalUnit


MAX_OCCURRENCES = 100
HORIZON = relativedelta(years=1)

FIXED_STEPS: dict[Frequency, relativedelta] = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.BIWEEKLY: relativedelta(days=14),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.SEMIANNUALLY: relativedelta(months=6),
    Frequency.YEARLY: relativedelta(years=1),
}

FREQUENCY_LABELS: dict[Frequency, str] = {
    Frequency.DAILY: "Daily",
    Frequency.WEEKLY: "Weekly",
    Frequency.BIWEEKLY: "Bi-weekly",
    Frequency.MONTHLY: "Monthly",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.SEMIANNUALLY: "Semi-annually",
    Frequency.YEARLY: "Yearly",
}


@dataclass
class Occurrence:
    """One scheduled instance of a recurring template."""
    recurring_id: int
    due_date: date
    can_execute: bool = False


def _step(
    frequency: Frequency,
    interval: int | None,
    interval_unit: IntervalUnit | None,
) -> relativedelta:
    frequency = Frequency(frequency)
    if frequency != Frequency.CUSTOM:
        return FIXED_STEPS[frequency]

    if not interval or interval < 1 or not interval_unit:
        raise InvalidInputError(
            "Custom frequency requires interval and interval_unit"
        )
    unit = IntervalUnit(interval_unit)
    if unit == IntervalUnit.DAYS:
        return relativedelta(days=interval)
    if unit == IntervalUnit.WEEKS:
        return relativedelta(days=interval * 7)
    return relativedelta(months=interval)


def validate_frequency(
    frequency: Frequency,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
) -> None:
    """Raise InvalidInputError unless the frequency can be stepped."""
    _step(frequency, interval, interval_unit)


def next_due_date(
    current: date,
    frequency: Frequency,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
) -> date:
    """The due date one period after ``current``."""
    return current + _step(frequency, interval, interval_unit)


def is_occurrence(
    due_date: date,
    start_date: date,
    frequency: Frequency,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
    end_date: date | None = None,
) -> bool:
    """
    Whether ``due_date`` is reached by stepping from ``start_date``.

    Steps the same way generate_occurrences does, so month-end clamping
    carries forward.
    """
    if due_date < start_date:
        return False
    if end_date is not None and due_date > end_date:
        return False

    step = _step(frequency, interval, interval_unit)
    current = start_date
    while current < due_date:
        current = current + step
    return current == due_date


def initial_next_due_date(
    start_date: date,
    frequency: Frequency | None = None,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
) -> date:
    """
    First due date of a new template.

    Always the start date, even when it lies in the past: a backdated
    template shows up as overdue instead of silently skipping ahead.
    """
    return start_date


def days_until_due(next_due: date, today: date | None = None) -> int:
    """Calendar days until ``next_due``; negative when overdue."""
    today = today or date.today()
    return (_as_date(next_due) - today).days


def is_overdue(next_due: date, today: date | None = None) -> bool:
    return days_until_due(next_due, today) < 0


def generate_occurrences(
    start_date: date,
    frequency: Frequency,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
    end_date: date | None = None,
    last_executed_at: datetime | None = None,
    skipped_dates: Iterable[date] | None = None,
    today: date | None = None,
) -> list[date]:
    """
    Enumerate occurrence dates from ``start_date`` onward.

    Stops at the earlier of ``end_date`` and one year from today and
    never returns more than MAX_OCCURRENCES dates. Skipped dates are
    left out. Whether an occurrence was already executed is not
    considered here; ``last_executed_at`` is accepted for signature
    parity with callers that pass a full template.
    """
    today = today or date.today()
    limit = today + HORIZON
    if end_date is not None and end_date < limit:
        limit = end_date

    skipped = {_as_date(d) for d in (skipped_dates or ())}
    step = _step(frequency, interval, interval_unit)

    occurrences: list[date] = []
    current = start_date
    while current <= limit and len(occurrences) < MAX_OCCURRENCES:
        if current not in skipped:
            occurrences.append(current)
        current = current + step

    return occurrences


def mark_execute_eligibility(
    occurrences: list[Occurrence],
    today: date | None = None,
) -> list[Occurrence]:
    """
    Decide which pending occurrences may be executed.

    Everything due today or earlier is executable. A future occurrence
    is executable only when it is the earliest outstanding occurrence of
    its template; the rest are edit-only until everything before them
    is executed or skipped. Returns the occurrences sorted by due date.
    """
    today = today or date.today()
    ordered = sorted(occurrences, key=lambda o: (o.due_date, o.recurring_id))

    outstanding: set[int] = set()
    for occurrence in ordered:
        if occurrence.due_date <= today:
            occurrence.can_execute = True
        else:
            occurrence.can_execute = occurrence.recurring_id not in outstanding
        outstanding.add(occurrence.recurring_id)

    return ordered


def frequency_label(
    frequency: Frequency,
    interval: int | None = None,
    interval_unit: IntervalUnit | None = None,
) -> str:
    frequency = Frequency(frequency)
    if frequency != Frequency.CUSTOM:
        return FREQUENCY_LABELS[frequency]

    if not interval or not interval_unit:
        return "Custom"
    unit = IntervalUnit(interval_unit).value[:-1]
    return f"Every {interval} {unit}{'s' if interval > 1 else ''}"


def format_due_date(next_due: date, today: date | None = None) -> str:
    days = days_until_due(next_due, today)

    if days < 0:
        overdue = abs(days)
        return f"Overdue by {overdue} day{'s' if overdue > 1 else ''}"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    if days <= 7:
        return f"Due in {days} days"
    return _as_date(next_due).strftime("%b %d, %Y")


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
