"""Turns a calendar view request into a concrete date window and week grid."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from taskcalendar.config import SETTINGS
from taskcalendar.domain.enums import CalendarView, Weekday
from taskcalendar.domain.filters import CalendarWindow
from taskcalendar.domain.recurrence import add_months

ONE_DAY = timedelta(days=1)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _days(start: date, end: date) -> Iterable[date]:
    current = start
    while current < end:
        yield current
        current += ONE_DAY


class CalendarRangeResolver:
    def __init__(self, week_start: Weekday | str | int | None = None) -> None:
        if week_start is None:
            week_start = SETTINGS.calendar_week_start
        self._week_start = Weekday.parse(week_start)

    @property
    def week_start(self) -> Weekday:
        return self._week_start

    def resolve(
        self,
        view: CalendarView | str,
        reference_date: date | datetime,
        custom_range: Optional[tuple[date, date]] = None,
    ) -> CalendarWindow:
        view = CalendarView(view)
        reference = _as_date(reference_date)

        if view == CalendarView.MONTH:
            start = reference.replace(day=1)
            end = add_months(start, 1)
            grid_start = self._week_floor(start)
            grid_end = self._week_floor(end - ONE_DAY) + timedelta(days=7)
            return CalendarWindow(view, reference, start, end, self._grid(grid_start, grid_end))

        if view == CalendarView.WEEK:
            start = self._week_floor(reference)
            end = start + timedelta(days=7)
            return CalendarWindow(view, reference, start, end, self._grid(start, end))

        if view == CalendarView.DAY:
            return CalendarWindow(view, reference, reference, reference + ONE_DAY, ((reference,),))

        if view == CalendarView.CUSTOM:
            if not custom_range or custom_range[0] is None or custom_range[1] is None:
                raise ValueError("A custom view needs a start and end date")
            first, last = _as_date(custom_range[0]), _as_date(custom_range[1])
            if last < first:
                raise ValueError(f"Custom range ends ({last}) before it starts ({first})")
            end = last + ONE_DAY
            return CalendarWindow(view, first, first, end, self._chunk_weeks(first, end))

        return CalendarWindow(CalendarView.LIST, reference)

    def navigate(self, window: CalendarWindow, direction: str) -> CalendarWindow:
        if direction not in ("prev", "next"):
            raise ValueError(f"direction must be 'prev' or 'next', got {direction!r}")
        step = 1 if direction == "next" else -1

        if window.view == CalendarView.MONTH:
            return self.resolve(window.view, add_months(window.reference_date, step))
        if window.view == CalendarView.WEEK:
            return self.resolve(window.view, window.reference_date + timedelta(days=7 * step))
        if window.view == CalendarView.DAY:
            return self.resolve(window.view, window.reference_date + timedelta(days=step))
        if window.view == CalendarView.CUSTOM:
            shift = window.length * step
            return self.resolve(window.view, window.start + shift, (window.start + shift, window.last_day + shift))
        return window

    def _week_floor(self, day: date) -> date:
        return day - timedelta(days=(day.weekday() - self._week_start) % 7)

    @staticmethod
    def _grid(start: date, end: date) -> tuple[tuple[date, ...], ...]:
        days = list(_days(start, end))
        return tuple(tuple(days[i:i + 7]) for i in range(0, len(days), 7))

    def _chunk_weeks(self, start: date, end: date) -> tuple[tuple[date, ...], ...]:
        weeks: list[tuple[date, ...]] = []
        current: list[date] = []
        for day in _days(start, end):
            if day.weekday() == self._week_start and current:
                weeks.append(tuple(current))
                current = []
            current.append(day)
        if current:
            weeks.append(tuple(current))
        return tuple(weeks)
