from __future__ import annotations

import os
from datetime import datetime

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from taskcalendar.domain.recurrence import RecurrenceRule  # noqa: E402
from taskcalendar.infra.db import build_engine, build_session_factory, create_schema  # noqa: E402
from taskcalendar.infra.repository import TaskRepository  # noqa: E402
from taskcalendar.services.materializer import InstanceMaterializer  # noqa: E402
from taskcalendar.services.query_service import TaskQueryService  # noqa: E402
from taskcalendar.services.task_service import TaskService  # noqa: E402

WEEKLY_START = datetime(2024, 1, 1, 9, 0)


@pytest.fixture
def engine():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repo(engine) -> TaskRepository:
    return TaskRepository(build_session_factory(engine))


@pytest.fixture
def tasks(repo: TaskRepository) -> TaskService:
    return TaskService(repo)


@pytest.fixture
def materializer(repo: TaskRepository) -> InstanceMaterializer:
    return InstanceMaterializer(repo)


@pytest.fixture
def queries(repo: TaskRepository, materializer: InstanceMaterializer) -> TaskQueryService:
    return TaskQueryService(repo, materializer)


@pytest.fixture
def make_master(tasks: TaskService):
    def factory(start: datetime = WEEKLY_START, rule: RecurrenceRule | None = None, **extra):
        data = {
            "title": "Weekly sync",
            "start_date": start,
            "end_date": start.replace(hour=start.hour + 1) if start.hour < 23 else None,
            "recurring": True,
            "recurrence": rule or RecurrenceRule("weekly"),
        }
        data.update(extra)
        return tasks.create_task(data)

    return factory


@pytest.fixture
def make_task(tasks: TaskService):
    def factory(title: str = "One-off", start: datetime = datetime(2024, 1, 10, 14, 30), **extra):
        return tasks.create_task({"title": title, "start_date": start, **extra})

    return factory
