from __future__ import annotations

import logging

from taskcalendar.domain.entities import InstanceTask, MasterTask
from taskcalendar.domain.errors import MasterNotFound
from taskcalendar.infra.repository import TaskRepository

logger = logging.getLogger(__name__)


def require_master(repo: TaskRepository, instance: InstanceTask) -> MasterTask:
    """Return the instance's master.

    A dangling parent reference is an integrity violation: it is logged, the
    orphan is demoted to a standalone task, and ``MasterNotFound`` is raised.
    """
    master = repo.get_task(instance.parent_task_id)
    if isinstance(master, MasterTask):
        return master
    report_orphan(repo, instance)
    raise MasterNotFound(instance.id, instance.parent_task_id)


def report_orphan(repo: TaskRepository, instance: InstanceTask):
    logger.error(
        "Integrity violation: instance %s references missing master %s; demoting to standalone",
        instance.id,
        instance.parent_task_id,
    )
    return repo.detach_orphan(instance.id)
