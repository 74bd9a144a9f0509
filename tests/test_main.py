from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from taskcalendar.domain.enums import EditScope
from taskcalendar.main import build_parser, run
from taskcalendar.services.series_editor import SeriesEditor


def test_calendar_command_prints_the_window(repo, make_master, make_task, capsys) -> None:
    make_master()
    make_task("Dentist", datetime(2024, 1, 9, 8, 0))
    args = build_parser().parse_args(["calendar", "week", "--date", "2024-01-08"])

    assert run(args, repo) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "week: 2024-01-07 .. 2024-01-13"
    assert "Weekly sync [series" in lines[1]
    assert lines[2].endswith("Dentist")


def test_extend_horizons_command(repo, make_master, capsys) -> None:
    master = make_master(start=datetime.combine(date.today(), datetime.min.time()).replace(hour=9))
    args = build_parser().parse_args(["extend-horizons", "--days", "14"])

    assert run(args, repo) == 0

    assert "Extended 1 series" in capsys.readouterr().out
    # today and a week from today
    assert len(repo.list_instances(master.id)) == 2


def test_bad_date_is_a_usage_error() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["calendar", "custom", "--start", "01/03/2024"])


def test_global_flags() -> None:
    args = build_parser().parse_args(["--no-log-file", "--log-level", "debug", "upcoming", "--days", "3"])

    assert args.no_log_file
    assert args.log_level == "debug"
    assert (args.command, args.days) == ("upcoming", 3)


def test_upcoming_command_lists_pending_work(repo, make_task, capsys) -> None:
    tomorrow = datetime.combine(date.today() + timedelta(days=1), datetime.min.time()).replace(hour=12)
    make_task("Renew passport", tomorrow)
    args = build_parser().parse_args(["upcoming", "--days", "2"])

    assert run(args, repo) == 0

    assert "Renew passport" in capsys.readouterr().out


def test_calendar_marks_overridden_fields(repo, make_master, materializer, capsys) -> None:
    master = make_master()
    monday = materializer.materialize(master, date(2024, 1, 8), date(2024, 1, 9))[0]
    SeriesEditor(repo).apply_edit(monday.id, {"title": "Planning", "priority": "high"}, EditScope.THIS)
    args = build_parser().parse_args(["calendar", "week", "--date", "2024-01-08"])

    assert run(args, repo) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[1].endswith(f"Planning [series {master.id} #1 override: priority,title]")
