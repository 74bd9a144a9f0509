"""Bulk delete/update over a selection of task rows.

Each selected id is handled on its own; a failure is recorded against that id
and the remaining ids are still processed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from taskcalendar.domain.entities import InstanceTask, MasterTask, StandaloneTask
from taskcalendar.domain.enums import EditScope
from taskcalendar.domain.errors import PartialBulkFailure, TaskCalendarError, TaskNotFound
from taskcalendar.infra.repository import TaskRepository

from .series_deleter import SeriesDeleter
from .series_editor import SeriesEditor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkFailure:
    task_id: int
    reason: str
    message: str = ""


@dataclass
class BulkResult:
    deleted_count: int = 0
    succeeded: list[int] = field(default_factory=list)
    failures: list[BulkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> "BulkResult":
        if self.failures:
            raise PartialBulkFailure(self)
        return self


class BulkActionService:
    def __init__(
        self,
        repo: TaskRepository,
        deleter: SeriesDeleter | None = None,
        editor: SeriesEditor | None = None,
    ) -> None:
        self._repo = repo
        self._deleter = deleter or SeriesDeleter(repo)
        self._editor = editor or SeriesEditor(repo)

    def delete_selected(self, task_ids: Iterable[int]) -> BulkResult:
        result = BulkResult()
        task_ids = list(dict.fromkeys(task_ids))
        selected = {task_id: self._repo.get_task(task_id) for task_id in task_ids}
        removed_chains: set[int] = set()

        def delete_one(task_id: int) -> None:
            task = selected[task_id]
            if task is None:
                raise TaskNotFound(task_id)
            if isinstance(task, StandaloneTask):
                result.deleted_count += self._repo.delete_task(task_id)
                return
            chain_id = task.id if isinstance(task, MasterTask) else task.parent_task_id
            if chain_id in removed_chains:
                # already gone with an earlier selection from the same series
                return
            deleted = self._deleter.delete_chain(task_id, EditScope.ALL).deleted_count
            removed_chains.add(chain_id)
            result.deleted_count += deleted

        self._run(task_ids, delete_one, result)
        logger.info(
            "Bulk delete: %s task(s) removed, %s failure(s)",
            result.deleted_count,
            len(result.failures),
        )
        return result

    def update_selected(self, task_ids: Iterable[int], changes: dict) -> BulkResult:
        result = BulkResult()

        def update_one(task_id: int) -> None:
            task = self._repo.get_task(task_id)
            if task is None:
                raise TaskNotFound(task_id)
            if isinstance(task, InstanceTask):
                self._editor.apply_edit(task_id, changes, EditScope.THIS)
            elif isinstance(task, MasterTask):
                self._editor.apply_edit(task_id, changes, EditScope.ALL)
            else:
                self._editor.apply_edit(task_id, changes)

        self._run(task_ids, update_one, result)
        return result

    @staticmethod
    def _run(task_ids: Iterable[int], action: Callable[[int], None], result: BulkResult) -> None:
        for task_id in dict.fromkeys(task_ids):
            try:
                action(task_id)
            except TaskCalendarError as exc:
                logger.warning("Bulk action failed for task %s: %s", task_id, exc)
                result.failures.append(BulkFailure(task_id, exc.kind, str(exc)))
                continue
            except (SQLAlchemyError, ValueError) as exc:
                logger.error("Bulk action failed for task %s", task_id, exc_info=True)
                result.failures.append(BulkFailure(task_id, type(exc).__name__, str(exc)))
                continue
            result.succeeded.append(task_id)
