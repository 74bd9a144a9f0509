from __future__ import annotations

import logging

from taskcalendar.domain.entities import StandaloneTask, TaskRecord
from taskcalendar.domain.enums import EditScope, PriorityLevel, SeriesRole, TaskStatus
from taskcalendar.domain.errors import InvalidRecurrenceRule, TaskNotFound
from taskcalendar.infra.repository import TaskRepository

from .series_deleter import DeleteResult, SeriesDeleter
from .series_editor import EditResult, SeriesEditor, normalize_changes

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        repo: TaskRepository,
        editor: SeriesEditor | None = None,
        deleter: SeriesDeleter | None = None,
    ) -> None:
        self._repo = repo
        self._editor = editor or SeriesEditor(repo)
        self._deleter = deleter or SeriesDeleter(repo)

    def get_task(self, task_id: int) -> TaskRecord | None:
        return self._repo.get_task(task_id)

    def create_task(self, data: dict) -> TaskRecord:
        data = dict(data)
        recurring = bool(data.pop("recurring", False))
        if "title" not in data or "start_date" not in data:
            raise ValueError("title and start_date are required")

        normalized = self._normalize_data(data)
        if recurring:
            rule = normalized.get("recurrence")
            if rule is None:
                raise InvalidRecurrenceRule("A recurring task needs a recurrence rule")
            rule.validate(normalized["start_date"])
            normalized["series_role"] = SeriesRole.MASTER
        elif "recurrence" in normalized:
            raise InvalidRecurrenceRule("Only recurring tasks carry a recurrence rule")
        else:
            normalized["series_role"] = SeriesRole.STANDALONE

        task = self._repo.create_task(normalized)
        logger.info("Created %s task %s", task.series_role.value, task.id)
        return task

    def update_task(
        self,
        task_id: int,
        data: dict,
        scope: EditScope | str | None = None,
    ) -> EditResult:
        return self._editor.apply_edit(task_id, data, scope)

    def delete_task(self, task_id: int) -> DeleteResult:
        task = self._repo.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if isinstance(task, StandaloneTask):
            return DeleteResult(self._repo.delete_task(task_id))
        return self._deleter.delete_chain(task_id, EditScope.THIS)

    def mark_done(self, task_id: int, scope: EditScope | str | None = None) -> EditResult:
        return self.update_task(task_id, {"status": TaskStatus.COMPLETED}, scope)

    def _normalize_data(self, data: dict) -> dict:
        normalized = normalize_changes(data)
        normalized.setdefault("description", "")
        normalized.setdefault("status", TaskStatus.PENDING)
        normalized.setdefault("priority", PriorityLevel.MEDIUM)
        normalized.setdefault("all_day", False)
        return normalized
