from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from taskcalendar.config import SETTINGS
from taskcalendar.domain.entities import InstanceTask, TaskRecord
from taskcalendar.domain.enums import CalendarView, TaskStatus
from taskcalendar.domain.errors import TaskCalendarError
from taskcalendar.domain.filters import TaskFilters
from taskcalendar.infra.db import init_db
from taskcalendar.infra.logging import setup_logging
from taskcalendar.infra.repository import TaskRepository
from taskcalendar.services.calendar_range import CalendarRangeResolver
from taskcalendar.services.materializer import InstanceMaterializer
from taskcalendar.services.query_service import TaskQueryService

logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def _format_task(task: TaskRecord) -> str:
    when = task.start_date.strftime("%Y-%m-%d") if task.all_day else task.start_date.strftime("%Y-%m-%d %H:%M")
    marker = ""
    if isinstance(task, InstanceTask):
        marker = f" [series {task.parent_task_id} #{task.sequence_index}"
        if task.is_override:
            marker += f" override: {','.join(sorted(task.override_fields))}"
        marker += "]"
    return f"{when}  {task.id:>6}  {task.priority.value:<6} {task.status.value:<11} {task.title}{marker}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskcalendar", description="Recurring task calendar")
    parser.add_argument("--create-schema", action="store_true", help="create tables before running")
    parser.add_argument("--log-level", help="override LOG_LEVEL for this run")
    parser.add_argument("--no-log-file", action="store_true", help="log to the console only")
    sub = parser.add_subparsers(dest="command", required=True)

    cal = sub.add_parser("calendar", help="list occurrences for a calendar view")
    cal.add_argument("view", choices=[view.value for view in CalendarView])
    cal.add_argument("--date", type=_parse_date, default=None, help="reference date (default: today)")
    cal.add_argument("--start", type=_parse_date, help="custom range start")
    cal.add_argument("--end", type=_parse_date, help="custom range end (inclusive)")
    cal.add_argument("--assignee")
    cal.add_argument("--business")
    cal.add_argument("--status", choices=[status.value for status in TaskStatus])
    cal.add_argument("--search")

    extend = sub.add_parser("extend-horizons", help="materialize every series ahead of time")
    extend.add_argument("--days", type=int, default=SETTINGS.horizon_days)

    upcoming = sub.add_parser("upcoming", help="pending occurrences in the next days")
    upcoming.add_argument("--days", type=int, default=7)
    return parser


def run(args: argparse.Namespace, repo: TaskRepository) -> int:
    materializer = InstanceMaterializer(repo)
    queries = TaskQueryService(repo, materializer)

    if args.command == "calendar":
        resolver = CalendarRangeResolver()
        custom = (args.start, args.end) if args.view == CalendarView.CUSTOM.value else None
        window = resolver.resolve(args.view, args.date or date.today(), custom)
        filters = TaskFilters(
            assignee_id=args.assignee,
            business_id=args.business,
            status=TaskStatus(args.status) if args.status else None,
            search=args.search,
        )
        tasks = queries.query(window, filters)
        if window.is_bounded:
            print(f"{window.view.value}: {window.start.isoformat()} .. {window.last_day.isoformat()}")
        for task in tasks:
            print(_format_task(task))
        return 0

    if args.command == "extend-horizons":
        until = datetime.combine(date.today() + timedelta(days=args.days), datetime.min.time())
        extended = materializer.extend_horizons(until)
        print(f"Extended {len(extended)} series up to {until.date().isoformat()}")
        return 0

    if args.command == "upcoming":
        for task in queries.list_upcoming(args.days):
            print(_format_task(task))
        expiring = queries.list_expiring_series()
        for master in expiring:
            print(f"series {master.id} ends {master.recurrence.end.until.isoformat()}: {master.title}")
        return 0

    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, to_file=not args.no_log_file)
    try:
        init_db(create=args.create_schema)
    except SQLAlchemyError as exc:
        logger.error("Database unavailable: %s", exc)
        return 1

    try:
        return run(args, TaskRepository())
    except (TaskCalendarError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
