"""
Task status state machine.

States: todo, in_progress, blocked, done, approved. Only the graph-derived
rules live here:

- entering ``blocked`` needs dependencies (new or existing) or a reason
- ``blocked -> in_progress`` needs every direct dependency resolved
- leaving ``blocked`` clears the block reason

Everything else is allowed; who may approve is decided by the caller.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.task import Task
from app.services.dependencies import (
    add_dependencies,
    compute_blocked_status,
    has_dependencies,
)
from app.services.tasks import summarize
from taskflow_shared.schemas.common import TaskStatus, enters_resolved, is_resolved
from taskflow_shared.schemas.tasks import DependencySkip

log = structlog.get_logger()


@dataclass
class StatusChange:
    task: Task
    previous_status: TaskStatus
    status: TaskStatus
    skipped_dependencies: list[DependencySkip] = field(default_factory=list)

    @property
    def triggers_cascade(self) -> bool:
        return enters_resolved(self.previous_status, self.status)


async def set_task_status(
    session: AsyncSession,
    task: Task,
    status: TaskStatus,
    actor_id: uuid.UUID | None = None,
    block_reason: Optional[str] = None,
    dependency_ids: Optional[Sequence[uuid.UUID]] = None,
) -> StatusChange:
    """Validate and apply a status change. Does not run the completion cascade."""
    previous = TaskStatus(task.status)
    reason = (block_reason or "").strip() or None
    dependency_ids = list(dependency_ids or [])
    skipped: list[DependencySkip] = []

    if previous == TaskStatus.BLOCKED and status == TaskStatus.IN_PROGRESS:
        blocked = await compute_blocked_status(session, task.id)
        if blocked.is_blocked:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Cannot move blocked task to in_progress. "
                    "Complete blocking dependencies first.",
                    "blocking_tasks": summarize(blocked.blocking_tasks),
                },
            )

    if status == TaskStatus.BLOCKED:
        if (
            previous != TaskStatus.BLOCKED
            and not dependency_ids
            and reason is None
            and not await has_dependencies(session, task.id)
        ):
            raise HTTPException(
                status_code=422,
                detail="To block a task, add blocking dependencies or provide a block reason",
            )
        if dependency_ids:
            batch = await add_dependencies(session, task, dependency_ids, actor_id)
            skipped = batch.skipped
        task.block_reason = reason or task.block_reason
    else:
        task.block_reason = None

    task.status = status.value
    if enters_resolved(previous, status):
        task.completed_at = datetime.now(timezone.utc)
    elif not is_resolved(status):
        task.completed_at = None

    session.add(task)
    await session.flush()

    log.info(
        "task.status_changed",
        task_id=str(task.id),
        from_status=previous.value,
        to_status=status.value,
        skipped_dependencies=len(skipped),
    )
    return StatusChange(
        task=task,
        previous_status=previous,
        status=status,
        skipped_dependencies=skipped,
    )


async def reevaluate_blocked(session: AsyncSession, task: Task) -> bool:
    """Move a blocked task back to todo once nothing blocks it any more.

    Called after one of the task's edges has been removed. Returns True if
    the task was unblocked.
    """
    if task.status != TaskStatus.BLOCKED.value:
        return False
    if (await compute_blocked_status(session, task.id)).is_blocked:
        return False

    task.status = TaskStatus.TODO.value
    task.block_reason = None
    session.add(task)
    await session.flush()
    log.info("task.unblocked", task_id=str(task.id), trigger="dependency_removed")
    return True


async def block_if_waiting(session: AsyncSession, task: Task) -> bool:
    """Move a todo/in_progress task to blocked if it now has unresolved dependencies.

    Called after dependencies were attached outside a status change. Tasks in
    a resolved state are left alone. Returns True if the task was blocked.
    """
    if task.status not in (TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value):
        return False
    if not (await compute_blocked_status(session, task.id)).is_blocked:
        return False

    task.status = TaskStatus.BLOCKED.value
    session.add(task)
    await session.flush()
    log.info("task.blocked", task_id=str(task.id), trigger="dependency_added")
    return True
