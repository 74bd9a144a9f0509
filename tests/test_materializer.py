from __future__ import annotations

from datetime import date, datetime

from taskcalendar.domain.enums import EditScope, PriorityLevel, TaskStatus
from taskcalendar.domain.recurrence import EndCondition, RecurrenceRule
from taskcalendar.infra.repository import TaskRepository
from taskcalendar.services.materializer import InstanceMaterializer
from taskcalendar.services.series_deleter import SeriesDeleter
from taskcalendar.services.series_editor import SeriesEditor


class StaleListingRepo(TaskRepository):
    """Never sees existing instances, like a writer that read before another committed."""

    def list_instances(self, master_id, from_index=None, to_index=None):
        return []


def test_instances_copy_the_master_template(make_master, materializer) -> None:
    master = make_master(
        description="Agenda in the doc",
        priority=PriorityLevel.HIGH,
        assignee_id="user-7",
        business_id="biz-1",
    )

    instances = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    assert [i.start_date.date() for i in instances] == [
        date(2024, 1, 1),
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
        date(2024, 1, 29),
    ]
    first = instances[0]
    assert first.sequence_index == 0
    assert first.parent_task_id == master.id
    assert first.title == "Weekly sync"
    assert first.description == "Agenda in the doc"
    assert first.priority == PriorityLevel.HIGH
    assert first.assignee_id == "user-7"
    assert first.business_id == "biz-1"
    assert first.status == TaskStatus.PENDING
    assert first.end_date == datetime(2024, 1, 1, 10, 0)
    assert not first.is_override


def test_overlapping_horizons_never_duplicate(make_master, materializer, repo) -> None:
    master = make_master()

    first = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))
    second = materializer.materialize(master, date(2024, 1, 15), date(2024, 2, 15))

    assert [i.id for i in second[:3]] == [i.id for i in first[2:]]
    assert len(repo.list_instances(master.id)) == 7
    indexes = [i.sequence_index for i in repo.list_instances(master.id)]
    assert indexes == sorted(set(indexes))


def test_horizon_is_recorded_on_the_master(make_master, materializer, repo) -> None:
    master = make_master()

    materializer.materialize(master, date(2024, 1, 1), date(2024, 3, 1))
    materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    assert repo.get_task(master.id).materialized_until == datetime(2024, 3, 1)


def test_count_end_condition_stops_generation(make_master, materializer) -> None:
    master = make_master(
        start=datetime(2024, 1, 1, 9, 0),
        rule=RecurrenceRule("daily", end=EndCondition.after_count(3)),
    )

    instances = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    assert [i.start_date.day for i in instances] == [1, 2, 3]


def test_monthly_clamping_is_persisted(make_master, materializer) -> None:
    master = make_master(start=datetime(2024, 1, 31, 9, 0), rule=RecurrenceRule("monthly"))

    instances = materializer.materialize(master, date(2024, 1, 1), date(2024, 5, 1))

    assert [i.start_date.date() for i in instances] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]


def test_skipped_occurrences_are_not_regenerated(make_master, materializer, repo) -> None:
    master = make_master()
    instances = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    SeriesDeleter(repo).delete_chain(instances[2].id, EditScope.THIS)
    master = repo.get_task(master.id)
    again = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    assert master.exceptions == frozenset({2})
    assert date(2024, 1, 15) not in [i.start_date.date() for i in again]
    assert len(again) == 4


def test_overrides_are_returned_unchanged(make_master, materializer, repo) -> None:
    master = make_master()
    instances = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))
    SeriesEditor(repo).apply_edit(instances[1].id, {"title": "Moved to Thursday"}, EditScope.THIS)

    again = materializer.materialize(repo.get_task(master.id), date(2024, 1, 1), date(2024, 2, 1))

    assert again[1].id == instances[1].id
    assert again[1].title == "Moved to Thursday"
    assert again[1].is_override


def test_lost_insert_race_resolves_to_existing_row(make_master, materializer, repo) -> None:
    master = make_master()
    winner = materializer.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    loser = InstanceMaterializer(StaleListingRepo(repo._session_factory))
    result = loser.materialize(master, date(2024, 1, 1), date(2024, 2, 1))

    assert [i.id for i in result] == [i.id for i in winner]
    assert len(repo.list_instances(master.id)) == 5


def test_safety_cap_limits_one_call(make_master, repo) -> None:
    master = make_master(rule=RecurrenceRule("daily"))

    instances = InstanceMaterializer(repo, max_occurrences=10).materialize(
        master, date(2024, 1, 1), date(2024, 12, 31)
    )

    assert len(instances) == 10
    assert repo.get_task(master.id).materialized_until == datetime(2024, 1, 11, 9, 0)


def test_extend_horizons_materializes_every_series(make_master, materializer, repo) -> None:
    weekly = make_master()
    monthly = make_master(start=datetime(2024, 1, 5, 9, 0), rule=RecurrenceRule("monthly"))

    extended = materializer.extend_horizons(date(2024, 4, 1))

    assert extended == {weekly.id: 13, monthly.id: 3}
    assert repo.get_task(weekly.id).materialized_until == datetime(2024, 4, 1)
    assert materializer.extend_horizons(date(2024, 4, 1)) == {}


def test_capped_extension_resumes_where_it_stopped(make_master, repo) -> None:
    master = make_master(rule=RecurrenceRule("daily"))
    capped = InstanceMaterializer(repo, max_occurrences=10)

    rounds = []
    while extended := capped.extend_horizons(date(2024, 3, 1)):
        rounds.append(extended[master.id])

    assert rounds == [10] * 6
    instances = repo.list_instances(master.id)
    assert len(instances) == 60
    assert instances[-1].start_date == datetime(2024, 2, 29, 9, 0)
    assert repo.get_task(master.id).materialized_until == datetime(2024, 3, 1)
