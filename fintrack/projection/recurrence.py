"""
Recurrence Projection

Computes upcoming occurrences of recurring transactions on demand.
Nothing here is persisted: every call rebuilds the projection from the
definitions it is given.

GUARANTEES:
- Pure: "today" is always a parameter, never read from the clock
- Per definition, dates are strictly increasing, >= today and <= end_date
- Each step is taken from the previous occurrence, so month steps clamp
  at month end (Jan 31 -> Feb 28 -> Mar 28)
- Unrecognized frequencies fall back to Monthly with a warning log line
- Bounded: a walk never runs past its step budget
"""

import re
from datetime import date, datetime
from operator import attrgetter
from typing import Iterable, Optional, Union

import structlog
from dateutil.relativedelta import relativedelta

from fintrack.models.transaction import (
    NON_RECURRING,
    Frequency,
    ProjectedOccurrence,
    RecurringTransaction,
)


logger = structlog.get_logger(__name__)

DEFAULT_COUNT = 2

# Steps allowed per requested occurrence once the walk has reached today
SAFETY_FACTOR = 20

FALLBACK_FREQUENCY = Frequency.MONTHLY

FREQUENCY_STEPS: dict[Frequency, relativedelta] = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.BI_WEEKLY: relativedelta(weeks=2),
    Frequency.TRI_WEEKLY: relativedelta(weeks=3),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.BI_MONTHLY: relativedelta(months=2),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.SEMI_ANNUALLY: relativedelta(months=6),
    Frequency.ANNUALLY: relativedelta(years=1),
}

_FREQUENCY_LOOKUP = {frequency.value.lower(): frequency for frequency in Frequency}


class ProjectionError(Exception):
    """Base exception for projection contract violations."""
    pass


class InvalidCountError(ProjectionError, ValueError):
    """Requested occurrence count is not a positive integer."""
    pass


def resolve_frequency(value: Union[str, Frequency, None]) -> Optional[Frequency]:
    """
    Map a raw frequency value to a Frequency.

    Matching ignores case and surrounding whitespace, and treats spaces
    and underscores like hyphens ("bi_weekly", "Bi Weekly").
    Returns None for unknown values and for the "Never" sentinel.
    """
    if isinstance(value, Frequency):
        return value
    if not value:
        return None
    key = re.sub(r"[\s_]+", "-", str(value).strip()).lower()
    return _FREQUENCY_LOOKUP.get(key)


def is_recurring(definition: RecurringTransaction) -> bool:
    """False when the definition carries the one-time sentinel."""
    return definition.frequency.strip().lower() != NON_RECURRING.lower()


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _step_for(definition: RecurringTransaction) -> relativedelta:
    frequency = resolve_frequency(definition.frequency)
    if frequency is None:
        logger.warning(
            "recurrence_frequency_fallback",
            recurring_id=definition.id,
            raw_frequency=definition.frequency,
            fallback=FALLBACK_FREQUENCY.value,
            non_recurring=not is_recurring(definition),
        )
        frequency = FALLBACK_FREQUENCY
    return FREQUENCY_STEPS[frequency]


def _check_count(count: int) -> None:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidCountError(f"count must be a positive integer, got {count!r}")


def next_occurrences(
    definition: RecurringTransaction,
    count: int = DEFAULT_COUNT,
    *,
    today: Union[date, datetime],
    safety_factor: int = SAFETY_FACTOR,
) -> list[date]:
    """
    Compute up to `count` occurrence dates on or after `today`.

    Walks from start_date one step at a time, skipping dates before today
    and stopping at end_date (inclusive).

    The step budget is NOT a flat count * safety_factor. It is

        count * safety_factor + max((today - start_date).days, 0)

    so the catch-up walk from a past start_date is bounded by the number
    of days it has to cover (every step advances at least a day), and
    once the walk reaches today it may take at most count * safety_factor
    steps. A flat budget would leave old daily definitions with no result.

    Raises:
        InvalidCountError: If count is not positive
    """
    _check_count(count)

    today = _as_date(today)
    cursor = _as_date(definition.start_date)
    end_date = _as_date(definition.end_date) if definition.end_date else None
    step = _step_for(definition)

    max_steps = count * safety_factor + max((today - cursor).days, 0)
    occurrences: list[date] = []

    for _ in range(max_steps):
        if end_date is not None and cursor > end_date:
            break

        if cursor >= today:
            occurrences.append(cursor)
            if len(occurrences) == count:
                break

        following = cursor + step
        if following <= cursor:
            logger.warning(
                "recurrence_step_stalled",
                recurring_id=definition.id,
                cursor=cursor.isoformat(),
            )
            break
        cursor = following
    else:
        logger.warning(
            "recurrence_safety_bound_reached",
            recurring_id=definition.id,
            max_steps=max_steps,
            found=len(occurrences),
        )

    return occurrences


def project_transactions(
    definitions: Iterable[RecurringTransaction],
    count: int = DEFAULT_COUNT,
    *,
    today: Union[date, datetime],
    safety_factor: int = SAFETY_FACTOR,
) -> list[ProjectedOccurrence]:
    """
    Project upcoming transactions for many recurring transactions.

    The result is sorted by occurrence date. The sort is stable, so
    occurrences on the same day keep the order of their definitions.

    Callers should filter out non-recurring definitions first
    (see is_recurring); any that slip through are projected monthly.
    """
    _check_count(count)

    projected: list[ProjectedOccurrence] = []
    for definition in definitions:
        dates = next_occurrences(
            definition,
            count,
            today=today,
            safety_factor=safety_factor,
        )
        for index, occurrence_date in enumerate(dates):
            projected.append(
                ProjectedOccurrence.from_definition(definition, occurrence_date, index)
            )

    projected.sort(key=attrgetter("occurrence_date"))
    return projected
