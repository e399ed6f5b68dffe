"""
Completion cascade: unblock direct dependents once a task is resolved.

Run by the caller after the triggering status change has been committed.
Only one hop is processed; a dependent moved to ``todo`` has not itself been
resolved, so there is nothing further to cascade from.

Nothing in here raises a storage error to the caller: the triggering change
is already committed, so failures are logged and the cascade stops or skips.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.task import Task
from app.services.dependencies import compute_blocked_statuses, list_dependents
from taskflow_shared.schemas.common import TaskStatus

log = structlog.get_logger()


async def _ready_dependents(
    session: AsyncSession, completed_task_id: uuid.UUID
) -> list[uuid.UUID]:
    """Ids of blocked direct dependents with no unresolved dependency left."""
    dependents = await list_dependents(session, completed_task_id)
    candidate_ids = [t.id for t in dependents if t.status == TaskStatus.BLOCKED.value]
    if not candidate_ids:
        return []

    blocking = await compute_blocked_statuses(session, candidate_ids)
    ready = []
    for task_id in candidate_ids:
        if blocking[task_id]:
            log.debug(
                "cascade.still_blocked",
                task_id=str(task_id),
                blocking=[str(t.id) for t in blocking[task_id]],
            )
        else:
            ready.append(task_id)
    return ready


async def cascade_completion(session: AsyncSession, completed_task_id: uuid.UUID) -> list[Task]:
    """Move blocked dependents of ``completed_task_id`` with no remaining blockers to todo.

    Each dependent is re-read with a row lock and committed on its own. A
    dependent whose update fails is rolled back and logged; the others are
    still processed. Unblocked tasks are detached from the session once
    committed so a later rollback cannot expire them. Returns the tasks that
    were unblocked.
    """
    try:
        ready = await _ready_dependents(session, completed_task_id)
    except SQLAlchemyError:
        await session.rollback()
        log.exception("cascade.failed", completed_task_id=str(completed_task_id))
        return []

    unblocked: list[Task] = []
    for task_id in ready:
        try:
            dependent = await session.get(
                Task, task_id, populate_existing=True, with_for_update=True
            )
            if dependent is None or dependent.status != TaskStatus.BLOCKED.value:
                continue
            dependent.status = TaskStatus.TODO.value
            dependent.block_reason = None
            session.add(dependent)
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            log.exception(
                "cascade.dependent_failed",
                task_id=str(task_id),
                completed_task_id=str(completed_task_id),
            )
            continue

        session.expunge(dependent)
        log.info(
            "task.unblocked",
            task_id=str(task_id),
            trigger="dependency_completed",
            completed_task_id=str(completed_task_id),
        )
        unblocked.append(dependent)

    return unblocked
