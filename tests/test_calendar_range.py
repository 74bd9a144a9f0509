from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from taskcalendar.domain.enums import CalendarView, Weekday
from taskcalendar.services.calendar_range import CalendarRangeResolver


def test_month_window_and_padded_grid() -> None:
    window = CalendarRangeResolver("sunday").resolve("month", date(2024, 1, 17))

    assert window.start == date(2024, 1, 1)
    assert window.end == date(2024, 2, 1)
    assert window.last_day == date(2024, 1, 31)
    assert len(window.weeks) == 5
    assert window.weeks[0][0] == date(2023, 12, 31)
    assert window.weeks[-1][-1] == date(2024, 2, 3)
    assert all(len(week) == 7 for week in window.weeks)


def test_month_grid_follows_week_start() -> None:
    window = CalendarRangeResolver(Weekday.MONDAY).resolve(CalendarView.MONTH, date(2024, 1, 17))

    assert window.weeks[0][0] == date(2024, 1, 1)
    assert window.weeks[-1][-1] == date(2024, 2, 4)


def test_week_window() -> None:
    window = CalendarRangeResolver("sunday").resolve("week", datetime(2024, 1, 17, 15, 0))

    assert window.start == date(2024, 1, 14)
    assert window.end == date(2024, 1, 21)
    assert window.weeks == (tuple(date(2024, 1, 14) + timedelta(days=i) for i in range(7)),)


def test_day_window() -> None:
    window = CalendarRangeResolver().resolve("day", date(2024, 1, 17))

    assert (window.start, window.end) == (date(2024, 1, 17), date(2024, 1, 18))
    assert window.weeks == ((date(2024, 1, 17),),)
    assert window.contains(datetime(2024, 1, 17, 23, 59))
    assert not window.contains(datetime(2024, 1, 18))


def test_custom_range_is_chunked_at_week_start() -> None:
    resolver = CalendarRangeResolver(Weekday.MONDAY)

    window = resolver.resolve("custom", date(2024, 1, 3), (date(2024, 1, 3), date(2024, 1, 12)))

    assert window.start == date(2024, 1, 3)
    assert window.last_day == date(2024, 1, 12)
    assert [len(week) for week in window.weeks] == [5, 5]
    assert window.weeks[1][0] == date(2024, 1, 8)


def test_custom_range_pages_by_its_own_length() -> None:
    resolver = CalendarRangeResolver()
    window = resolver.resolve("custom", date(2024, 1, 3), (date(2024, 1, 3), date(2024, 1, 12)))

    following = resolver.navigate(window, "next")
    previous = resolver.navigate(window, "prev")

    assert (following.start, following.last_day) == (date(2024, 1, 13), date(2024, 1, 22))
    assert (previous.start, previous.last_day) == (date(2023, 12, 24), date(2024, 1, 2))


def test_navigation_by_view_unit() -> None:
    resolver = CalendarRangeResolver("sunday")

    month = resolver.navigate(resolver.resolve("month", date(2024, 1, 31)), "next")
    week = resolver.navigate(resolver.resolve("week", date(2024, 1, 17)), "prev")
    day = resolver.navigate(resolver.resolve("day", date(2024, 2, 29)), "next")

    assert (month.start, month.end) == (date(2024, 2, 1), date(2024, 3, 1))
    assert week.start == date(2024, 1, 7)
    assert day.start == date(2024, 3, 1)


def test_list_view_has_no_window() -> None:
    resolver = CalendarRangeResolver()
    window = resolver.resolve("list", date(2024, 1, 17))

    assert not window.is_bounded
    assert window.weeks == ()
    assert resolver.navigate(window, "next") is window


@pytest.mark.parametrize(
    "custom_range",
    [None, (date(2024, 1, 3), None), (date(2024, 1, 12), date(2024, 1, 3))],
)
def test_invalid_custom_range(custom_range) -> None:
    with pytest.raises(ValueError):
        CalendarRangeResolver().resolve("custom", date(2024, 1, 3), custom_range)


def test_unknown_direction_and_week_start() -> None:
    resolver = CalendarRangeResolver()

    with pytest.raises(ValueError):
        resolver.navigate(resolver.resolve("day", date(2024, 1, 1)), "sideways")
    with pytest.raises(ValueError):
        CalendarRangeResolver("funday")
