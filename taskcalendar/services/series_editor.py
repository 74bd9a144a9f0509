"""Scoped edits across a recurring series.

``this`` detaches one occurrence as an override, ``this_and_future`` splits
the series into two masters, and ``all`` rewrites the master template and
re-syncs every occurrence that is not an override.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from taskcalendar.domain.entities import InstanceTask, MasterTask, StandaloneTask, TaskRecord
from taskcalendar.domain.enums import EditScope, PriorityLevel, TaskStatus
from taskcalendar.domain.errors import InvalidRecurrenceRule, SeriesScopeMismatch, TaskNotFound
from taskcalendar.domain.recurrence import RecurrenceRule, occurrence_at
from taskcalendar.infra.repository import TaskRepository

from .integrity import require_master
from .materializer import as_datetime, instance_values

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "start_date",
        "end_date",
        "all_day",
        "assignee_id",
        "business_id",
        "recurrence",
    }
)

# never carried onto an override occurrence by a series-wide split
_SCHEDULE_FIELDS = frozenset({"start_date", "end_date", "recurrence"})


def normalize_changes(changes: dict) -> dict:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    normalized = dict(changes)
    if "status" in normalized:
        normalized["status"] = TaskStatus(normalized["status"])
    if "priority" in normalized:
        normalized["priority"] = PriorityLevel(normalized["priority"])
    if "start_date" in normalized:
        if normalized["start_date"] is None:
            raise ValueError("start_date cannot be cleared")
        normalized["start_date"] = as_datetime(normalized["start_date"])
    if normalized.get("end_date") is not None:
        normalized["end_date"] = as_datetime(normalized["end_date"])
    if "recurrence" in normalized:
        rule = normalized["recurrence"]
        if isinstance(rule, str):
            rule = RecurrenceRule.from_rrule(rule)
        if not isinstance(rule, RecurrenceRule):
            raise InvalidRecurrenceRule(f"Expected a recurrence rule, got {rule!r}")
        normalized["recurrence"] = rule
    return normalized


@dataclass(frozen=True)
class EditResult:
    scope: EditScope | None
    updated: list[TaskRecord] = field(default_factory=list)
    master: MasterTask | None = None
    new_master: MasterTask | None = None
    # instance id -> fields that instance overrides; those fields were left as they were
    kept_overrides: dict[int, frozenset[str]] = field(default_factory=dict)


class SeriesEditor:
    def __init__(self, repo: TaskRepository) -> None:
        self._repo = repo

    def apply_edit(
        self,
        task_id: int,
        changes: dict,
        scope: EditScope | str | None = None,
    ) -> EditResult:
        changes = normalize_changes(changes)
        task = self._repo.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        if isinstance(task, StandaloneTask):
            if scope is not None:
                raise SeriesScopeMismatch(f"Task {task_id} is not part of a series; scope {scope!s} does not apply")
            if "recurrence" in changes:
                raise SeriesScopeMismatch(f"Task {task_id} is not part of a series; it has no recurrence to edit")
            return EditResult(scope=None, updated=[self._update(task_id, changes)])

        scope = EditScope(scope) if scope is not None else EditScope.THIS

        if isinstance(task, MasterTask):
            if scope != EditScope.ALL:
                logger.debug("Edit of master %s with scope %s applied to the whole series", task_id, scope)
            return self._edit_all(task, changes)

        master = require_master(self._repo, task)
        if scope == EditScope.THIS:
            return self._edit_this(task, changes)
        if scope == EditScope.THIS_AND_FUTURE and task.sequence_index > 0:
            return self._split(master, task, changes)
        return self._edit_all(master, changes)

    def _edit_this(self, instance: InstanceTask, changes: dict) -> EditResult:
        if "recurrence" in changes:
            raise SeriesScopeMismatch("A single occurrence cannot change the series recurrence")
        data = dict(changes)
        data["is_override"] = True
        data["override_fields"] = instance.override_fields | frozenset(changes)
        updated = self._update(instance.id, data)
        logger.info(
            "Occurrence %s of master %s is now an override (%s)",
            instance.sequence_index,
            instance.parent_task_id,
            ", ".join(sorted(changes)),
        )
        return EditResult(scope=EditScope.THIS, updated=[updated])

    def _edit_all(self, master: MasterTask, changes: dict) -> EditResult:
        preview = replace(master, **changes)
        preview.recurrence.validate(preview.start_date)

        instance_updates: dict[int, dict] = {}
        delete_ids: list[int] = []
        kept: dict[int, frozenset[str]] = {}
        for instance in self._repo.list_instances(master.id):
            if instance.is_override:
                kept[instance.id] = instance.override_fields
                continue
            values = self._resync(preview, instance.sequence_index, changes)
            if values is None:
                delete_ids.append(instance.id)
            else:
                instance_updates[instance.id] = values

        updated = self._repo.update_series(master.id, changes, instance_updates, delete_ids)
        if updated is None:
            raise TaskNotFound(master.id)
        logger.info(
            "Series %s updated: %s occurrence(s) re-synced, %s removed",
            master.id,
            len(instance_updates),
            len(delete_ids),
        )
        if kept:
            logger.info("Series %s: %s override(s) kept their own values", master.id, len(kept))
        return EditResult(scope=EditScope.ALL, updated=[updated], master=updated, kept_overrides=kept)

    def _split(self, master: MasterTask, instance: InstanceTask, changes: dict) -> EditResult:
        split_index = instance.sequence_index
        split_at = occurrence_at(master.start_date, master.recurrence, split_index)
        split_date: date = split_at.date()

        truncated = master.recurrence.ending_before(split_date).validate(master.start_date)
        new_start: datetime = changes.get("start_date", split_at)
        remainder = changes.get("recurrence") or master.recurrence.remainder_from(split_index)
        remainder.validate(new_start)

        if "end_date" in changes:
            new_end = changes["end_date"]
        elif master.duration is not None:
            new_end = new_start + master.duration
        else:
            new_end = None

        template = {
            **changes,
            "id": None,
            "start_date": new_start,
            "end_date": new_end,
            "recurrence": remainder,
            "exceptions": frozenset(i - split_index for i in master.exceptions if i >= split_index),
        }
        preview = replace(master, **template)
        new_master_data = {
            "title": preview.title,
            "description": preview.description,
            "status": preview.status,
            "priority": preview.priority,
            "start_date": preview.start_date,
            "end_date": preview.end_date,
            "all_day": preview.all_day,
            "assignee_id": preview.assignee_id,
            "business_id": preview.business_id,
            "recurrence": preview.recurrence,
            "materialized_until": master.materialized_until,
        }

        instance_updates: dict[int, dict] = {}
        delete_ids: list[int] = []
        kept: dict[int, frozenset[str]] = {}
        for moving in self._repo.list_instances(master.id, from_index=split_index):
            new_index = moving.sequence_index - split_index
            if moving.is_override:
                values = {}
                if moving.id == instance.id:
                    values = {k: v for k, v in changes.items() if k not in _SCHEDULE_FIELDS}
                else:
                    kept[moving.id] = moving.override_fields
            else:
                values = self._resync(preview, new_index, changes)
                if values is None:
                    delete_ids.append(moving.id)
                    continue
            values["sequence_index"] = new_index
            instance_updates[moving.id] = values

        old, new = self._repo.split_series(
            master.id,
            split_index,
            split_date,
            truncated,
            new_master_data,
            instance_updates,
            delete_ids,
        )
        logger.info(
            "Series %s split at %s (occurrence %s) into new series %s",
            master.id,
            split_date.isoformat(),
            split_index,
            new.id,
        )
        return EditResult(
            scope=EditScope.THIS_AND_FUTURE,
            updated=[old, new],
            master=old,
            new_master=new,
            kept_overrides=kept,
        )

    @staticmethod
    def _resync(template: MasterTask, index: int, changes: dict) -> dict | None:
        """Values a plain occurrence at ``index`` should hold, or None if the rule no longer produces it."""
        occurrence = occurrence_at(template.start_date, template.recurrence, index)
        if not template.recurrence.allows(index, occurrence) or index in template.exceptions:
            return None
        values = instance_values(template, occurrence)
        if "status" in changes:
            values["status"] = changes["status"]
        return values

    def _update(self, task_id: int, data: dict) -> TaskRecord:
        updated = self._repo.update_task(task_id, data)
        if updated is None:
            raise TaskNotFound(task_id)
        return updated
