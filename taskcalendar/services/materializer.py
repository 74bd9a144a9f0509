"""Turns a master's recurrence rule into persisted instance rows.

Materialization is demand-driven: callers name a horizon and only the
occurrences inside it are created. Calling it again for an overlapping
horizon returns the rows that already exist, overrides included.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time

from taskcalendar.config import SETTINGS
from taskcalendar.domain.entities import TEMPLATE_FIELDS, InstanceTask, MasterTask
from taskcalendar.domain.enums import TaskStatus
from taskcalendar.domain.errors import ConcurrentMaterializationConflict
from taskcalendar.domain.recurrence import index_on_or_after, iter_occurrences
from taskcalendar.infra.repository import TaskRepository

logger = logging.getLogger(__name__)


def as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def instance_values(master: MasterTask, occurrence: datetime) -> dict:
    """Template fields and dates an occurrence of ``master`` should carry."""
    values = {name: getattr(master, name) for name in TEMPLATE_FIELDS}
    values["start_date"] = occurrence
    duration = master.duration
    values["end_date"] = occurrence + duration if duration is not None else None
    return values


class InstanceMaterializer:
    def __init__(self, repo: TaskRepository, max_occurrences: int | None = None) -> None:
        self._repo = repo
        self._max_occurrences = max_occurrences or SETTINGS.max_occurrences

    def materialize(
        self,
        master: MasterTask,
        horizon_start: date | datetime,
        horizon_end: date | datetime,
    ) -> list[InstanceTask]:
        horizon_start = as_datetime(horizon_start)
        horizon_end = as_datetime(horizon_end)
        if horizon_end <= horizon_start:
            return []

        rule = master.recurrence
        first = index_on_or_after(master.start_date, rule, horizon_start)
        planned: list[tuple[int, datetime]] = []
        reached = horizon_end
        for index, occurrence in iter_occurrences(master.start_date, rule, first, before=horizon_end):
            if len(planned) >= self._max_occurrences:
                logger.warning(
                    "Master %s: stopped after %s occurrences in %s..%s",
                    master.id,
                    self._max_occurrences,
                    horizon_start,
                    horizon_end,
                )
                # only the planned prefix counts as covered
                reached = occurrence
                break
            planned.append((index, occurrence))

        if not planned:
            self._repo.advance_horizon(master.id, horizon_end)
            return []

        existing = {
            instance.sequence_index: instance
            for instance in self._repo.list_instances(master.id, planned[0][0], planned[-1][0])
        }

        instances: list[InstanceTask] = []
        created = 0
        for index, occurrence in planned:
            if index in master.exceptions:
                continue
            instance = existing.get(index)
            if instance is None:
                instance = self._create(master, index, occurrence)
                if instance is None:
                    continue
                created += 1
            instances.append(instance)

        self._repo.advance_horizon(master.id, reached)
        if created:
            logger.debug(
                "Master %s: created %s of %s occurrences up to %s",
                master.id,
                created,
                len(instances),
                reached,
            )
        return instances

    def materialize_window(self, horizon_start: date | datetime, horizon_end: date | datetime) -> int:
        """Materialize every master that may intersect the horizon; returns occurrences covered."""
        horizon_start = as_datetime(horizon_start)
        horizon_end = as_datetime(horizon_end)
        total = 0
        for master in self._repo.list_masters(horizon_start, horizon_end):
            total += len(self.materialize(master, horizon_start, horizon_end))
        return total

    def extend_horizons(self, until: date | datetime) -> dict[int, int]:
        """Push every master's horizon out to ``until``."""
        until = as_datetime(until)
        extended: dict[int, int] = {}
        for master in self._repo.list_masters(None, until):
            start = master.materialized_until or master.start_date
            if start >= until:
                continue
            extended[master.id] = len(self.materialize(master, start, until))
        logger.info("Extended %s series up to %s", len(extended), until.date().isoformat())
        return extended

    def _create(self, master: MasterTask, index: int, occurrence: datetime) -> InstanceTask | None:
        data = instance_values(master, occurrence)
        data.update(
            status=TaskStatus.PENDING,
            parent_task_id=master.id,
            sequence_index=index,
            is_override=False,
        )
        try:
            return self._repo.create_instance(data)
        except ConcurrentMaterializationConflict:
            existing = self._repo.get_instance(master.id, index)
            if existing is None:
                logger.warning(
                    "Master %s: occurrence %s conflicted but is no longer present",
                    master.id,
                    index,
                )
            return existing
