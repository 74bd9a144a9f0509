from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from taskcalendar.domain.entities import InstanceTask, MasterTask, StandaloneTask, TaskRecord
from taskcalendar.domain.enums import EndKind, PriorityLevel, SeriesRole, TaskStatus
from taskcalendar.domain.errors import ConcurrentMaterializationConflict, SeriesSplitConflict
from taskcalendar.domain.filters import TaskFilters
from taskcalendar.domain.recurrence import EndCondition, RecurrenceRule

from .db import SessionLocal
from .models import TaskExceptionModel, TaskModel

logger = logging.getLogger(__name__)

ROLE_MASTER = SeriesRole.MASTER.value
ROLE_INSTANCE = SeriesRole.INSTANCE.value
ROLE_STANDALONE = SeriesRole.STANDALONE.value


def _rule_from_model(model: TaskModel) -> RecurrenceRule:
    kind = EndKind(model.recurrence_end_kind)
    if kind == EndKind.AFTER_COUNT:
        end = EndCondition.after_count(model.recurrence_count)
    elif kind == EndKind.UNTIL_DATE:
        end = EndCondition.until_date(model.recurrence_end_date)
    else:
        end = EndCondition.never()
    return RecurrenceRule(
        frequency=model.recurrence_frequency,
        interval=model.recurrence_interval,
        end=end,
    )


def _rule_columns(rule: RecurrenceRule | None) -> dict:
    if rule is None:
        return {
            "recurrence_frequency": None,
            "recurrence_interval": 1,
            "recurrence_end_kind": EndKind.NEVER.value,
            "recurrence_count": None,
            "recurrence_end_date": None,
        }
    return {
        "recurrence_frequency": rule.frequency.value,
        "recurrence_interval": rule.interval,
        "recurrence_end_kind": rule.end.kind.value,
        "recurrence_count": rule.end.count,
        "recurrence_end_date": rule.end.until,
    }


def _split_fields(raw: str) -> frozenset[str]:
    return frozenset(name for name in (raw or "").split(",") if name)


def _to_entity(model: TaskModel) -> TaskRecord:
    common = dict(
        id=model.id,
        title=model.title,
        description=model.description,
        status=TaskStatus(model.status),
        priority=PriorityLevel(model.priority),
        start_date=model.start_date,
        end_date=model.end_date,
        all_day=model.all_day,
        assignee_id=model.assignee_id,
        business_id=model.business_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
    if model.series_role == ROLE_MASTER:
        return MasterTask(
            **common,
            recurrence=_rule_from_model(model),
            exceptions=frozenset(item.sequence_index for item in model.exceptions),
            materialized_until=model.materialized_until,
            split_from_id=model.split_from_id,
            split_date=model.split_date,
        )
    if model.series_role == ROLE_INSTANCE:
        return InstanceTask(
            **common,
            parent_task_id=model.parent_task_id,
            sequence_index=model.sequence_index,
            is_override=model.is_override,
            override_fields=_split_fields(model.override_fields),
        )
    return StandaloneTask(**common)


def _to_columns(data: dict) -> dict:
    """Translate entity-level keys into column values."""
    columns = {}
    for key, value in data.items():
        if key == "recurrence":
            columns.update(_rule_columns(value))
        elif key == "override_fields":
            columns[key] = ",".join(sorted(value))
        elif key == "series_role":
            columns[key] = SeriesRole(value).value
        elif key in ("status", "priority") and value is not None:
            columns[key] = value.value if hasattr(value, "value") else str(value)
        elif key == "exceptions":
            continue
        else:
            columns[key] = value
    return columns


def _apply_filters(stmt, filters: TaskFilters) -> object:
    if filters.assignee_id:
        stmt = stmt.where(TaskModel.assignee_id == filters.assignee_id)
    if filters.business_id:
        stmt = stmt.where(TaskModel.business_id == filters.business_id)
    if filters.status:
        stmt = stmt.where(TaskModel.status == TaskStatus(filters.status).value)

    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                TaskModel.title.ilike(pattern),
                TaskModel.description.ilike(pattern),
            )
        )

    return stmt


class TaskRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_task(self, task_id: int) -> Optional[TaskRecord]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def create_task(self, data: dict) -> TaskRecord:
        with self._session_factory() as session:
            task = TaskModel(**_to_columns(data))
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: int, data: dict) -> Optional[TaskRecord]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return None

            for key, value in _to_columns(data).items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def delete_task(self, task_id: int) -> int:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return 0
            session.delete(task)
            session.commit()
            return 1

    def existing_master_ids(self, ids: Iterable[int]) -> set[int]:
        ids = set(ids)
        if not ids:
            return set()
        with self._session_factory() as session:
            stmt = select(TaskModel.id).where(
                TaskModel.id.in_(ids),
                TaskModel.series_role == ROLE_MASTER,
            )
            return set(session.scalars(stmt))

    # -- series reads ---------------------------------------------------

    def list_masters(
        self,
        window_start: datetime | None,
        window_end: datetime | None,
    ) -> list[MasterTask]:
        """Masters whose un-truncated rule may produce occurrences in the window."""
        with self._session_factory() as session:
            stmt = select(TaskModel).where(TaskModel.series_role == ROLE_MASTER)
            if window_end is not None:
                stmt = stmt.where(TaskModel.start_date < window_end)
            if window_start is not None:
                stmt = stmt.where(
                    or_(
                        TaskModel.recurrence_end_kind != EndKind.UNTIL_DATE.value,
                        TaskModel.recurrence_end_date >= window_start.date(),
                    )
                )
            stmt = stmt.order_by(TaskModel.start_date.asc(), TaskModel.id.asc())
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_instances(
        self,
        master_id: int,
        from_index: int | None = None,
        to_index: int | None = None,
    ) -> list[InstanceTask]:
        with self._session_factory() as session:
            stmt = select(TaskModel).where(TaskModel.parent_task_id == master_id)
            if from_index is not None:
                stmt = stmt.where(TaskModel.sequence_index >= from_index)
            if to_index is not None:
                stmt = stmt.where(TaskModel.sequence_index <= to_index)
            stmt = stmt.order_by(TaskModel.sequence_index.asc())
            return [_to_entity(task) for task in session.scalars(stmt)]

    def get_instance(self, master_id: int, sequence_index: int) -> Optional[InstanceTask]:
        with self._session_factory() as session:
            task = session.scalar(
                select(TaskModel).where(
                    TaskModel.parent_task_id == master_id,
                    TaskModel.sequence_index == sequence_index,
                )
            )
            return _to_entity(task) if task else None

    def list_occurrences(
        self,
        filters: TaskFilters,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaskRecord]:
        with self._session_factory() as session:
            stmt = select(TaskModel).where(TaskModel.series_role != ROLE_MASTER)
            if start is not None:
                stmt = stmt.where(TaskModel.start_date >= start)
            if end is not None:
                stmt = stmt.where(TaskModel.start_date < end)
            stmt = _apply_filters(stmt, filters)
            stmt = stmt.order_by(
                TaskModel.start_date.asc(),
                func.coalesce(TaskModel.sequence_index, 0).asc(),
                TaskModel.id.asc(),
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_expiring_masters(self, start: date, end: date) -> list[MasterTask]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(
                    TaskModel.series_role == ROLE_MASTER,
                    TaskModel.recurrence_end_kind == EndKind.UNTIL_DATE.value,
                    TaskModel.recurrence_end_date.between(start, end),
                )
                .order_by(TaskModel.recurrence_end_date.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    # -- materialization ----------------------------------------------

    def create_instance(self, data: dict) -> InstanceTask:
        columns = _to_columns({**data, "series_role": SeriesRole.INSTANCE})
        with self._session_factory() as session:
            task = TaskModel(**columns)
            session.add(task)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConcurrentMaterializationConflict(
                    columns["parent_task_id"], columns["sequence_index"]
                ) from exc
            session.refresh(task)
            return _to_entity(task)

    def advance_horizon(self, master_id: int, until: datetime) -> None:
        with self._session_factory() as session:
            session.execute(
                update(TaskModel)
                .where(
                    TaskModel.id == master_id,
                    or_(
                        TaskModel.materialized_until.is_(None),
                        TaskModel.materialized_until < until,
                    ),
                )
                .values(materialized_until=until)
            )
            session.commit()

    # -- series mutations (one transaction each) -------------------------

    def update_series(
        self,
        master_id: int,
        master_data: dict,
        instance_updates: dict[int, dict],
        delete_ids: Iterable[int] = (),
    ) -> Optional[MasterTask]:
        with self._session_factory() as session:
            master = session.get(TaskModel, master_id)
            if not master or master.series_role != ROLE_MASTER:
                return None
            for key, value in _to_columns(master_data).items():
                setattr(master, key, value)

            delete_ids = list(delete_ids)
            if delete_ids:
                session.execute(
                    delete(TaskModel).where(
                        TaskModel.id.in_(delete_ids),
                        TaskModel.parent_task_id == master_id,
                    )
                )
            self._update_instances(session, master_id, instance_updates)
            session.commit()
            session.refresh(master)
            return _to_entity(master)

    def split_series(
        self,
        master_id: int,
        split_index: int,
        split_date: date,
        truncated_rule: RecurrenceRule,
        new_master_data: dict,
        instance_updates: dict[int, dict],
        delete_ids: Iterable[int] = (),
    ) -> tuple[MasterTask, MasterTask]:
        """Truncate a master and move occurrences ``>= split_index`` onto a new master.

        ``instance_updates`` is keyed by instance id and already carries the
        re-based ``sequence_index``. The new master is unique on
        ``(split_from_id, split_date)`` so a retried split reuses it.
        """
        delete_ids = list(delete_ids)
        with self._session_factory() as session:
            try:
                if delete_ids:
                    session.execute(
                        delete(TaskModel).where(
                            TaskModel.id.in_(delete_ids),
                            TaskModel.parent_task_id == master_id,
                        )
                    )
                old = session.get(TaskModel, master_id)
                new = session.scalar(
                    select(TaskModel).where(
                        TaskModel.split_from_id == master_id,
                        TaskModel.split_date == split_date,
                    )
                )
                if new is None:
                    new = TaskModel(
                        **_to_columns(
                            {
                                **new_master_data,
                                "series_role": SeriesRole.MASTER,
                                "split_from_id": master_id,
                                "split_date": split_date,
                            }
                        )
                    )
                    session.add(new)
                    session.flush()

                for key, value in _rule_columns(truncated_rule).items():
                    setattr(old, key, value)

                moving = session.scalars(
                    select(TaskModel).where(
                        TaskModel.parent_task_id == master_id,
                        TaskModel.sequence_index >= split_index,
                    )
                ).all()
                for task in moving:
                    changes = instance_updates.get(task.id, {})
                    task.parent_task_id = new.id
                    task.sequence_index = changes.get("sequence_index", task.sequence_index - split_index)
                    for key, value in _to_columns(changes).items():
                        setattr(task, key, value)

                for item in list(old.exceptions):
                    if item.sequence_index >= split_index:
                        old.exceptions.remove(item)
                        new.exceptions.append(
                            TaskExceptionModel(
                                sequence_index=item.sequence_index - split_index,
                                exception_date=item.exception_date,
                            )
                        )
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                new = session.scalar(
                    select(TaskModel).where(
                        TaskModel.split_from_id == master_id,
                        TaskModel.split_date == split_date,
                    )
                )
                left_behind = session.scalar(
                    select(func.count(TaskModel.id)).where(
                        TaskModel.parent_task_id == master_id,
                        TaskModel.sequence_index >= split_index,
                    )
                )
                # a finished split leaves nothing at or past the split point
                if new is None or left_behind:
                    logger.warning(
                        "Split of master %s at %s conflicts with existing rows: %s",
                        master_id,
                        split_date,
                        exc.orig,
                    )
                    raise SeriesSplitConflict(master_id, split_date) from exc
                logger.info(
                    "Split of master %s at %s already applied by another writer",
                    master_id,
                    split_date,
                )
                old = session.get(TaskModel, master_id)
            session.refresh(old)
            session.refresh(new)
            return _to_entity(old), _to_entity(new)

    def delete_chain(self, master_id: int) -> int:
        with self._session_factory() as session:
            master = session.get(TaskModel, master_id)
            if not master:
                return 0
            result = session.execute(
                delete(TaskModel).where(TaskModel.parent_task_id == master_id)
            )
            session.delete(master)
            session.commit()
            return (result.rowcount or 0) + 1

    def delete_instance_with_exception(self, instance_id: int, exception_date: date) -> int:
        with self._session_factory() as session:
            instance = session.get(TaskModel, instance_id)
            if not instance:
                return 0
            master = session.get(TaskModel, instance.parent_task_id)
            if master is not None:
                skipped = {item.sequence_index for item in master.exceptions}
                if instance.sequence_index not in skipped:
                    master.exceptions.append(
                        TaskExceptionModel(
                            sequence_index=instance.sequence_index,
                            exception_date=exception_date,
                        )
                    )
            session.delete(instance)
            session.commit()
            return 1

    def truncate_series(self, master_id: int, from_index: int, rule: RecurrenceRule) -> int:
        with self._session_factory() as session:
            master = session.get(TaskModel, master_id)
            if not master:
                return 0
            for key, value in _rule_columns(rule).items():
                setattr(master, key, value)
            for item in list(master.exceptions):
                if item.sequence_index >= from_index:
                    master.exceptions.remove(item)
            result = session.execute(
                delete(TaskModel).where(
                    TaskModel.parent_task_id == master_id,
                    TaskModel.sequence_index >= from_index,
                )
            )
            session.commit()
            return result.rowcount or 0

    def detach_orphan(self, instance_id: int) -> Optional[TaskRecord]:
        return self.update_task(
            instance_id,
            {
                "series_role": SeriesRole.STANDALONE,
                "parent_task_id": None,
                "sequence_index": None,
                "is_override": False,
                "override_fields": frozenset(),
            },
        )

    @staticmethod
    def _update_instances(session: Session, master_id: int, instance_updates: dict[int, dict]) -> None:
        if not instance_updates:
            return
        tasks = session.scalars(
            select(TaskModel).where(
                TaskModel.id.in_(list(instance_updates)),
                TaskModel.parent_task_id == master_id,
            )
        ).all()
        for task in tasks:
            for key, value in _to_columns(instance_updates[task.id]).items():
                setattr(task, key, value)
