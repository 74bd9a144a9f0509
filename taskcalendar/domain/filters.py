from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from .enums import CalendarView, TaskStatus


@dataclass(frozen=True)
class TaskFilters:
    assignee_id: str | None = None
    business_id: str | None = None
    status: TaskStatus | None = None
    search: str | None = None


@dataclass(frozen=True)
class CalendarWindow:
    """A resolved calendar view.

    ``start`` is inclusive and ``end`` is exclusive (the day after the last
    visible day). Both are None for the list view. ``weeks`` is the rendering
    grid and may extend past the window to fill whole weeks.
    """

    view: CalendarView
    reference_date: date
    start: Optional[date] = None
    end: Optional[date] = None
    weeks: tuple[tuple[date, ...], ...] = field(default_factory=tuple)

    @property
    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def last_day(self) -> Optional[date]:
        return self.end - timedelta(days=1) if self.end else None

    @property
    def length(self) -> timedelta:
        if not self.is_bounded:
            return timedelta(0)
        return self.end - self.start

    @property
    def start_at(self) -> Optional[datetime]:
        return datetime.combine(self.start, time.min) if self.start else None

    @property
    def end_at(self) -> Optional[datetime]:
        return datetime.combine(self.end, time.min) if self.end else None

    def contains(self, moment: datetime) -> bool:
        if not self.is_bounded:
            return True
        return self.start_at <= moment < self.end_at
