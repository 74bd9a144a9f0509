from __future__ import annotations

import logging
from dataclasses import dataclass

from taskcalendar.domain.entities import InstanceTask, MasterTask, StandaloneTask
from taskcalendar.domain.enums import EditScope
from taskcalendar.domain.errors import TaskNotFound
from taskcalendar.domain.recurrence import occurrence_at
from taskcalendar.infra.repository import TaskRepository

from .integrity import require_master

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeleteResult:
    deleted_count: int


class SeriesDeleter:
    def __init__(self, repo: TaskRepository) -> None:
        self._repo = repo

    def delete_chain(self, task_id: int, scope: EditScope | str = EditScope.ALL) -> DeleteResult:
        scope = EditScope(scope)
        task = self._repo.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        if isinstance(task, StandaloneTask):
            return DeleteResult(self._repo.delete_task(task.id))
        if isinstance(task, MasterTask):
            return self._delete_series(task)

        master = require_master(self._repo, task)
        if scope == EditScope.THIS:
            return self._delete_occurrence(master, task)
        if scope == EditScope.THIS_AND_FUTURE and task.sequence_index > 0:
            return self._delete_from(master, task)
        return self._delete_series(master)

    def _delete_series(self, master: MasterTask) -> DeleteResult:
        deleted = self._repo.delete_chain(master.id)
        logger.info("Deleted series %s: %s task(s) removed", master.id, deleted)
        return DeleteResult(deleted)

    def _delete_occurrence(self, master: MasterTask, instance: InstanceTask) -> DeleteResult:
        scheduled = occurrence_at(master.start_date, master.recurrence, instance.sequence_index)
        deleted = self._repo.delete_instance_with_exception(instance.id, scheduled.date())
        logger.info(
            "Deleted occurrence %s of series %s; skipped on future materialization",
            instance.sequence_index,
            master.id,
        )
        return DeleteResult(deleted)

    def _delete_from(self, master: MasterTask, instance: InstanceTask) -> DeleteResult:
        split_at = occurrence_at(master.start_date, master.recurrence, instance.sequence_index)
        rule = master.recurrence.ending_before(split_at.date())
        deleted = self._repo.truncate_series(master.id, instance.sequence_index, rule)
        logger.info(
            "Series %s truncated before %s: %s occurrence(s) removed",
            master.id,
            split_at.date().isoformat(),
            deleted,
        )
        return DeleteResult(deleted)
