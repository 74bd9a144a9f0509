from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskcalendar.services.bulk_actions import BulkResult


class TaskCalendarError(Exception):
    """Base class for every error raised by the scheduling core."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidRecurrenceRule(TaskCalendarError, ValueError):
    pass


class SeriesScopeMismatch(TaskCalendarError, ValueError):
    pass


class TaskNotFound(TaskCalendarError, LookupError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class MasterNotFound(TaskCalendarError, LookupError):
    """An instance points at a master that no longer exists."""

    def __init__(self, instance_id: int, master_id: int) -> None:
        super().__init__(f"Instance {instance_id} references missing master {master_id}")
        self.instance_id = instance_id
        self.master_id = master_id


class ConcurrentMaterializationConflict(TaskCalendarError):
    """Raised by the repository when another writer created the same occurrence first."""

    def __init__(self, master_id: int, sequence_index: int) -> None:
        super().__init__(f"Occurrence {sequence_index} of master {master_id} already exists")
        self.master_id = master_id
        self.sequence_index = sequence_index


class SeriesSplitConflict(TaskCalendarError):
    """A split could not move occurrences onto the new series without colliding."""

    def __init__(self, master_id: int, split_date: date) -> None:
        super().__init__(
            f"Series {master_id} could not be split at {split_date.isoformat()}; "
            "occurrences conflict with an existing split"
        )
        self.master_id = master_id
        self.split_date = split_date


class PartialBulkFailure(TaskCalendarError):
    def __init__(self, result: "BulkResult") -> None:
        failed = ", ".join(str(item.task_id) for item in result.failures)
        super().__init__(f"{len(result.failures)} item(s) failed: {failed}")
        self.result = result
