"""Recurrence projection package."""

from fintrack.projection.recurrence import (
    DEFAULT_COUNT,
    FREQUENCY_STEPS,
    SAFETY_FACTOR,
    InvalidCountError,
    ProjectionError,
    is_recurring,
    next_occurrences,
    project_transactions,
    resolve_frequency,
)

__all__ = [
    "DEFAULT_COUNT",
    "FREQUENCY_STEPS",
    "SAFETY_FACTOR",
    "InvalidCountError",
    "ProjectionError",
    "is_recurring",
    "next_occurrences",
    "project_transactions",
    "resolve_frequency",
]
