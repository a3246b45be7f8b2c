"""
Schedule engine settings (``expense_schedules.config``).

Responsibility
--------------
Holds every tunable of the schedule engine in one frozen dataclass and
parses it from YAML.  Services receive a ``ScheduleSettings`` instance
through the orchestrator; nothing reads configuration files at call time.

File format
-----------
::

    expense_schedules:
      weekly_search_days: 14
      default_batch_size: 100
      default_currency: EUR

Omitted keys keep their defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, wrong type, or non-positive limit  -> ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from expense_kernel.db.types import is_valid_currency
from expense_kernel.exceptions import ConfigurationError

SETTINGS_SECTION = "expense_schedules"

# Shortest windows that still find every valid schedule day: a full week,
# the longest month (short months clamp to their last day), and the 8-year
# gap between two Feb 29ths across a skipped century leap year.
_SEARCH_MINIMUMS = (
    ("weekly_search_days", 7, "a full week"),
    ("monthly_search_days", 31, "a full month"),
    ("yearly_search_years", 9, "two consecutive February 29ths"),
)


@dataclass(frozen=True)
class ScheduleSettings:
    """Tunables for recurrence search, range expansion, and batch runs."""

    weekly_search_days: int = 14
    monthly_search_days: int = 62
    yearly_search_years: int = 9
    max_range_iterations: int = 2000
    default_batch_size: int = 100
    max_batch_size: int = 1000
    default_max_schedules: int = 10000
    max_schedules_limit: int = 100000
    max_errors_in_response: int = 100
    max_expenses_per_schedule: int = 5000
    default_currency: str = "USD"

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "default_currency":
                if not isinstance(value, str) or not is_valid_currency(value):
                    raise ConfigurationError(
                        f"default_currency must be an ISO 4217 code, got {value!r}",
                        key=f.name,
                    )
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(
                    f"{f.name} must be a positive integer, got {value!r}",
                    key=f.name,
                )
        for name, minimum, covers in _SEARCH_MINIMUMS:
            if getattr(self, name) < minimum:
                raise ConfigurationError(
                    f"{name} must cover {covers} (>= {minimum})", key=name
                )
        if self.default_batch_size > self.max_batch_size:
            raise ConfigurationError(
                "default_batch_size exceeds max_batch_size",
                key="default_batch_size",
            )
        if self.default_max_schedules > self.max_schedules_limit:
            raise ConfigurationError(
                "default_max_schedules exceeds max_schedules_limit",
                key="default_max_schedules",
            )

    def clamp_batch_size(self, requested: int | None) -> int:
        """Requested batch size bounded to [1, max_batch_size]; None -> default."""
        if requested is None:
            return self.default_batch_size
        return max(1, min(int(requested), self.max_batch_size))

    def clamp_max_schedules(self, requested: int | None) -> int:
        """Requested per-run cap bounded to [1, max_schedules_limit]; None -> default."""
        if requested is None:
            return self.default_max_schedules
        return max(1, min(int(requested), self.max_schedules_limit))


def settings_from_dict(data: dict[str, Any] | None) -> ScheduleSettings:
    """
    Parse settings from an already-loaded mapping.

    Accepts either the bare settings mapping or a document with an
    ``expense_schedules`` section.

    Raises:
        ConfigurationError: on unknown keys or invalid values.
    """
    if not data:
        return ScheduleSettings()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings must be a mapping, got {type(data).__name__}")
    section = data.get(SETTINGS_SECTION, data)
    if section is None:
        return ScheduleSettings()
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"'{SETTINGS_SECTION}' must be a mapping", key=SETTINGS_SECTION
        )

    known = {f.name for f in fields(ScheduleSettings)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown setting(s): {', '.join(unknown)}", key=unknown[0]
        )
    return ScheduleSettings(**section)


def load_settings(path: str | Path | None = None) -> ScheduleSettings:
    """
    Load settings from a YAML file, or return defaults when ``path`` is None.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: on unknown keys or invalid values.
    """
    if path is None:
        return ScheduleSettings()
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return settings_from_dict(data)
