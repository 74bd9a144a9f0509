from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.utcnow()


class TaskModel(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("parent_task_id", "sequence_index", name="uq_tasks_parent_sequence"),
        UniqueConstraint("split_from_id", "split_date", name="uq_tasks_split_origin"),
        CheckConstraint(
            "(series_role = 'instance' AND parent_task_id IS NOT NULL AND sequence_index IS NOT NULL)"
            " OR (series_role <> 'instance' AND parent_task_id IS NULL)",
            name="ck_tasks_instance_parent",
        ),
        CheckConstraint(
            "(series_role = 'master' AND recurrence_frequency IS NOT NULL)"
            " OR (series_role <> 'master' AND recurrence_frequency IS NULL)",
            name="ck_tasks_master_rule",
        ),
    )

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="pending", index=True)
    priority = Column(String(10), nullable=False, default="medium")
    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(DateTime, nullable=True)
    all_day = Column(Boolean, nullable=False, default=False)
    assignee_id = Column(String(64), nullable=True, index=True)
    business_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    series_role = Column(String(20), nullable=False, default="standalone", index=True)
    recurrence_frequency = Column(String(20), nullable=True)
    recurrence_interval = Column(Integer, nullable=False, default=1)
    recurrence_end_kind = Column(String(20), nullable=False, default="never")
    recurrence_count = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    materialized_until = Column(DateTime, nullable=True)
    split_from_id = Column(Integer, nullable=True)
    split_date = Column(Date, nullable=True)

    # no foreign key: a missing master is detected and reported, not cascaded away
    parent_task_id = Column(Integer, nullable=True, index=True)
    sequence_index = Column(Integer, nullable=True)
    is_override = Column(Boolean, nullable=False, default=False)
    override_fields = Column(Text, nullable=False, default="")

    exceptions = relationship(
        "TaskExceptionModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TaskExceptionModel.sequence_index",
    )


class TaskExceptionModel(Base):
    __tablename__ = "task_exceptions"
    __table_args__ = (
        UniqueConstraint("master_id", "sequence_index", name="uq_task_exceptions_master_sequence"),
    )

    id = Column(Integer, primary_key=True)
    master_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_index = Column(Integer, nullable=False)
    exception_date = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
