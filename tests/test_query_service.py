from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from taskcalendar.domain.entities import InstanceTask, MasterTask, StandaloneTask
from taskcalendar.domain.enums import CalendarView, TaskStatus
from taskcalendar.domain.filters import TaskFilters
from taskcalendar.domain.recurrence import EndCondition, RecurrenceRule
from taskcalendar.services.calendar_range import CalendarRangeResolver
from taskcalendar.services.query_service import TaskQueryService


@pytest.fixture
def resolver() -> CalendarRangeResolver:
    return CalendarRangeResolver("sunday")


def test_weekly_series_in_january(queries, make_master, resolver) -> None:
    make_master()

    tasks = queries.query(resolver.resolve(CalendarView.MONTH, date(2024, 1, 1)))

    assert [t.start_date.date() for t in tasks] == [
        date(2024, 1, 1),
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
        date(2024, 1, 29),
    ]
    assert all(isinstance(t, InstanceTask) for t in tasks)
    assert [t.sequence_index for t in tasks] == [0, 1, 2, 3, 4]


def test_query_is_deterministic(queries, make_master, resolver) -> None:
    make_master()
    window = resolver.resolve(CalendarView.MONTH, date(2024, 1, 1))

    first = queries.query(window)
    second = queries.query(window)

    assert first == second


def test_horizon_fills_a_lookahead_buffer(queries, repo, make_master, resolver) -> None:
    master = make_master()

    queries.query(resolver.resolve(CalendarView.WEEK, date(2024, 1, 3)))

    # the week of Dec 31 plus one more week of lookahead
    assert [i.start_date.date() for i in repo.list_instances(master.id)] == [date(2024, 1, 1), date(2024, 1, 8)]


def test_configured_lookahead(repo, materializer, resolver) -> None:
    service = TaskQueryService(repo, materializer, lookahead_days=14)
    window = resolver.resolve(CalendarView.DAY, date(2024, 1, 3))

    start, end = service.horizon_for(window)

    assert start == datetime(2024, 1, 3)
    assert end == datetime(2024, 1, 4) + timedelta(days=14)


def test_mixed_results_are_sorted_and_never_include_masters(queries, make_master, make_task, resolver) -> None:
    make_master()
    make_task("Dentist", datetime(2024, 1, 8, 8, 0))
    make_task("Lunch", datetime(2024, 1, 8, 12, 0))

    tasks = queries.query(resolver.resolve(CalendarView.WEEK, date(2024, 1, 8)))

    assert [t.title for t in tasks] == ["Dentist", "Weekly sync", "Lunch"]
    assert not any(isinstance(t, MasterTask) for t in tasks)


def test_filters(queries, make_master, make_task, resolver) -> None:
    make_master(assignee_id="user-1", business_id="biz-1")
    make_task("Quarterly REVIEW", datetime(2024, 1, 9, 10, 0), assignee_id="user-2", business_id="biz-1")
    make_task("Invoices", datetime(2024, 1, 10, 10, 0), status=TaskStatus.COMPLETED, business_id="biz-2")
    january = resolver.resolve(CalendarView.MONTH, date(2024, 1, 1))

    by_assignee = queries.query(january, TaskFilters(assignee_id="user-1"))
    by_business = queries.query(january, TaskFilters(business_id="biz-1"))
    by_status = queries.query(january, TaskFilters(status=TaskStatus.COMPLETED))
    by_text = queries.query(january, TaskFilters(search="review"))

    assert len(by_assignee) == 5
    assert len(by_business) == 6
    assert [t.title for t in by_status] == ["Invoices"]
    assert [t.title for t in by_text] == ["Quarterly REVIEW"]


def test_list_view_returns_stored_occurrences_only(queries, make_master, make_task, resolver) -> None:
    make_master()
    make_task()

    tasks = queries.query(resolver.resolve(CalendarView.LIST, date(2024, 1, 1)))

    assert [t.title for t in tasks] == ["One-off"]


def test_orphans_are_returned_as_standalone(queries, repo, make_master, materializer, resolver) -> None:
    master = make_master()
    materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))
    repo.delete_task(master.id)

    tasks = queries.query(resolver.resolve(CalendarView.MONTH, date(2024, 1, 1)))

    assert len(tasks) == 5
    assert all(isinstance(t, StandaloneTask) for t in tasks)
    assert all(isinstance(repo.get_task(t.id), StandaloneTask) for t in tasks)


def test_list_upcoming(queries, make_master, make_task) -> None:
    make_master()
    make_task("Done already", datetime(2024, 1, 12, 9, 0), status=TaskStatus.COMPLETED)
    make_task("Call bank", datetime(2024, 1, 12, 11, 0))

    upcoming = queries.list_upcoming(days_ahead=7, now=datetime(2024, 1, 10, 8, 0))

    assert [(t.title, t.start_date) for t in upcoming] == [
        ("Call bank", datetime(2024, 1, 12, 11, 0)),
        ("Weekly sync", datetime(2024, 1, 15, 9, 0)),
    ]


def test_list_expiring_series(queries, make_master) -> None:
    ending = make_master(rule=RecurrenceRule("weekly", end=EndCondition.until_date(date(2024, 1, 20))))
    make_master(rule=RecurrenceRule("weekly", end=EndCondition.until_date(date(2024, 6, 1))))
    make_master()

    expiring = queries.list_expiring_series(within_days=30, today=date(2024, 1, 1))

    assert [m.id for m in expiring] == [ending.id]
