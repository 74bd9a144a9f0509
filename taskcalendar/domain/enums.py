from __future__ import annotations

from enum import IntEnum, StrEnum


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PriorityLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SeriesRole(StrEnum):
    STANDALONE = "standalone"
    MASTER = "master"
    INSTANCE = "instance"


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class EndKind(StrEnum):
    NEVER = "never"
    AFTER_COUNT = "after_count"
    UNTIL_DATE = "until_date"


class EditScope(StrEnum):
    THIS = "this"
    THIS_AND_FUTURE = "this_and_future"
    ALL = "all"


class CalendarView(StrEnum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"
    LIST = "list"
    CUSTOM = "custom"


class Weekday(IntEnum):
    """Values match ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: str | int | "Weekday") -> "Weekday":
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown weekday: {value!r}") from None
        return cls(value)
