from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import ClassVar, Optional, Union

from .enums import PriorityLevel, SeriesRole, TaskStatus
from .recurrence import RecurrenceRule

# Fields an instance copies from its master's template.
TEMPLATE_FIELDS = (
    "title",
    "description",
    "priority",
    "all_day",
    "assignee_id",
    "business_id",
)


@dataclass(frozen=True)
class TaskFields:
    id: int | None
    title: str
    description: str
    status: TaskStatus
    priority: PriorityLevel
    start_date: datetime
    end_date: Optional[datetime]
    all_day: bool
    assignee_id: str | None
    business_id: str | None
    created_at: datetime
    updated_at: datetime

    series_role: ClassVar[SeriesRole]

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_date is None:
            return None
        return self.end_date - self.start_date

    @property
    def is_series_member(self) -> bool:
        return self.series_role != SeriesRole.STANDALONE


@dataclass(frozen=True)
class StandaloneTask(TaskFields):
    series_role: ClassVar[SeriesRole] = SeriesRole.STANDALONE


@dataclass(frozen=True)
class MasterTask(TaskFields):
    recurrence: RecurrenceRule
    exceptions: frozenset[int] = frozenset()
    materialized_until: Optional[datetime] = None
    split_from_id: int | None = None
    split_date: Optional[date] = None

    series_role: ClassVar[SeriesRole] = SeriesRole.MASTER


@dataclass(frozen=True)
class InstanceTask(TaskFields):
    parent_task_id: int
    sequence_index: int
    is_override: bool = False
    override_fields: frozenset[str] = frozenset()

    series_role: ClassVar[SeriesRole] = SeriesRole.INSTANCE


TaskRecord = Union[StandaloneTask, MasterTask, InstanceTask]
