"""Drag-and-drop moves on the calendar.

A dropped occurrence keeps its time of day (midnight for all-day tasks) and
its duration. Moving one occurrence of a series only ever detaches that
occurrence; it never drags the rest of the series along.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time

from taskcalendar.domain.entities import InstanceTask, MasterTask, TaskRecord
from taskcalendar.domain.enums import EditScope
from taskcalendar.domain.errors import TaskNotFound
from taskcalendar.infra.repository import TaskRepository

from .series_editor import SeriesEditor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RescheduleResult:
    tasks: list[TaskRecord] = field(default_factory=list)
    scope: EditScope | None = None


def moved_dates(task: TaskRecord, new_date: date | datetime) -> dict:
    target = new_date.date() if isinstance(new_date, datetime) else new_date
    keep = time.min if task.all_day else task.start_date.time()
    start = datetime.combine(target, keep)
    changes = {"start_date": start}
    if task.end_date is not None:
        changes["end_date"] = start + task.duration
    return changes


class RescheduleService:
    def __init__(self, repo: TaskRepository, editor: SeriesEditor | None = None) -> None:
        self._repo = repo
        self._editor = editor or SeriesEditor(repo)

    def reschedule(self, task_id: int, new_date: date | datetime) -> RescheduleResult:
        task = self._repo.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        changes = moved_dates(task, new_date)
        if changes["start_date"] == task.start_date:
            return RescheduleResult(tasks=[task])

        if isinstance(task, InstanceTask):
            # overrides stay overrides; plain occurrences become one
            result = self._editor.apply_edit(task.id, changes, EditScope.THIS)
        elif isinstance(task, MasterTask):
            result = self._editor.apply_edit(task.id, changes, EditScope.ALL)
        else:
            result = self._editor.apply_edit(task.id, changes)

        logger.info(
            "Task %s moved from %s to %s",
            task_id,
            task.start_date.date().isoformat(),
            changes["start_date"].date().isoformat(),
        )
        return RescheduleResult(tasks=result.updated, scope=result.scope)
