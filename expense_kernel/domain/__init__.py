"""
Pure domain layer for the kernel.

No ORM, database, or I/O dependencies apart from SystemClock.
"""

from expense_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    end_of_day,
    ensure_utc,
    start_of_day,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "end_of_day",
    "ensure_utc",
    "start_of_day",
]
