from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from taskcalendar.config import SETTINGS
from taskcalendar.domain.entities import InstanceTask, MasterTask, TaskRecord
from taskcalendar.domain.enums import TaskStatus
from taskcalendar.domain.filters import CalendarWindow, TaskFilters
from taskcalendar.infra.repository import TaskRepository

from .integrity import report_orphan
from .materializer import InstanceMaterializer

logger = logging.getLogger(__name__)


class TaskQueryService:
    def __init__(
        self,
        repo: TaskRepository,
        materializer: InstanceMaterializer | None = None,
        lookahead_days: int | None = None,
    ) -> None:
        self._repo = repo
        self._materializer = materializer or InstanceMaterializer(repo)
        if lookahead_days is None:
            lookahead_days = SETTINGS.materialize_lookahead_days
        self._lookahead_days = lookahead_days

    def query(self, window: CalendarWindow, filters: TaskFilters | None = None) -> list[TaskRecord]:
        filters = filters or TaskFilters()
        if not window.is_bounded:
            return self._check_parents(self._repo.list_occurrences(filters))

        horizon_start, horizon_end = self.horizon_for(window)
        self._materializer.materialize_window(horizon_start, horizon_end)

        tasks = self._repo.list_occurrences(filters, window.start_at, window.end_at)
        return self._check_parents(tasks)

    def horizon_for(self, window: CalendarWindow) -> tuple[datetime, datetime]:
        """The visible window plus a lookahead buffer (one window length by default)."""
        lookahead = (
            timedelta(days=self._lookahead_days)
            if self._lookahead_days is not None
            else window.length
        )
        return window.start_at, window.end_at + lookahead

    def list_upcoming(self, days_ahead: int = 7, now: datetime | None = None) -> list[TaskRecord]:
        now = now or datetime.now()
        end = datetime.combine(now.date() + timedelta(days=days_ahead + 1), time.min)
        self._materializer.materialize_window(now, end)
        tasks = self._repo.list_occurrences(TaskFilters(status=TaskStatus.PENDING), now, end)
        return self._check_parents(tasks)

    def list_expiring_series(self, within_days: int = 30, today: date | None = None) -> list[MasterTask]:
        today = today or date.today()
        return self._repo.list_expiring_masters(today, today + timedelta(days=within_days))

    def _check_parents(self, tasks: list[TaskRecord]) -> list[TaskRecord]:
        parent_ids = {task.parent_task_id for task in tasks if isinstance(task, InstanceTask)}
        if not parent_ids:
            return tasks
        missing = parent_ids - self._repo.existing_master_ids(parent_ids)
        if not missing:
            return tasks

        checked: list[TaskRecord] = []
        for task in tasks:
            if isinstance(task, InstanceTask) and task.parent_task_id in missing:
                demoted = report_orphan(self._repo, task)
                if demoted is not None:
                    checked.append(demoted)
                continue
            checked.append(task)
        return checked
