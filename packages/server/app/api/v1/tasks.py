"""
Task workflow endpoints: dependency graph and status transitions.

Statuses: todo, in_progress, blocked, done, approved.
- Dependencies stay within a project and never form a cycle.
- A blocked task cannot start while a direct dependency is unresolved.
- Resolving a task moves its newly unblocked dependents back to todo.
- Events are published after each committed change.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.database import get_session
from app.core.events import broadcast_event
from app.services.cascade import cascade_completion
from app.services.dependencies import (
    add_dependencies,
    compute_blocked_status,
    list_dependencies,
    list_dependents,
    remove_dependency,
)
from app.services.tasks import enrich_task, get_task_or_404
from app.services.transitions import block_if_waiting, reevaluate_blocked, set_task_status
from taskflow_shared.schemas.common import TaskStatus
from taskflow_shared.schemas.tasks import (
    DependencyAdd,
    DependencyBatchResult,
    DependencyOverview,
    TaskRead,
    TaskStatusRead,
    TaskStatusUpdate,
    TaskSummary,
)

router = APIRouter()


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Get a single task with its dependency ids."""
    task = await get_task_or_404(session, task_id)
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@router.get("/{task_id}/dependencies", response_model=DependencyOverview)
async def get_dependencies_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Direct dependencies of a task and whether any of them still block it."""
    await get_task_or_404(session, task_id)
    dependencies = await list_dependencies(session, task_id)
    blocked = await compute_blocked_status(session, task_id)
    return DependencyOverview(
        dependencies=[TaskSummary.model_validate(t) for t in dependencies],
        is_blocked=blocked.is_blocked,
        blocking_tasks=[TaskSummary.model_validate(t) for t in blocked.blocking_tasks],
    )


@router.get("/{task_id}/dependents", response_model=List[TaskSummary])
async def get_dependents_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Tasks waiting on this one."""
    await get_task_or_404(session, task_id)
    return [TaskSummary.model_validate(t) for t in await list_dependents(session, task_id)]


@router.post("/{task_id}/dependencies", response_model=DependencyBatchResult, status_code=201)
async def add_dependencies_endpoint(
    task_id: uuid.UUID,
    body: DependencyAdd,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Add dependencies. Candidates that would create a cycle are skipped and reported."""
    task = await get_task_or_404(session, task_id)
    batch = await add_dependencies(session, task, body.dependency_ids, auth.user_id)
    became_blocked = await block_if_waiting(session, task)
    await session.commit()

    for edge in batch.created:
        await broadcast_event(
            "task.dependency.added",
            {
                "task_id": str(task_id),
                "depends_on_id": str(edge.depends_on_id),
                "project_id": str(task.project_id),
            },
            actor_id=auth.user_id,
        )
    if became_blocked:
        await broadcast_event(
            "task.blocked",
            {"task_id": str(task_id), "project_id": str(task.project_id)},
            actor_id=auth.user_id,
        )

    return batch


@router.delete("/{task_id}/dependencies/{dependency_id}")
async def remove_dependency_endpoint(
    task_id: uuid.UUID,
    dependency_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Remove a dependency and re-evaluate whether the task is still blocked."""
    task = await get_task_or_404(session, task_id)
    await remove_dependency(session, task_id, dependency_id)
    unblocked = await reevaluate_blocked(session, task)
    await session.commit()

    await broadcast_event(
        "task.dependency.removed",
        {
            "task_id": str(task_id),
            "depends_on_id": str(dependency_id),
            "project_id": str(task.project_id),
        },
        actor_id=auth.user_id,
    )
    if unblocked:
        await broadcast_event(
            "task.unblocked",
            {
                "task_id": str(task_id),
                "project_id": str(task.project_id),
                "assignee_id": str(task.assignee_id) if task.assignee_id else None,
            },
            actor_id=auth.user_id,
        )

    return {"ok": True, "status": task.status}


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.patch("/{task_id}/status", response_model=TaskStatusRead)
async def set_task_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Change a task's status. Resolving a task runs the completion cascade."""
    if body.status == TaskStatus.APPROVED and not auth.can_approve:
        raise HTTPException(status_code=403, detail="Only managers can approve tasks")

    task = await get_task_or_404(session, task_id)
    change = await set_task_status(
        session,
        task,
        body.status,
        actor_id=auth.user_id,
        block_reason=body.block_reason,
        dependency_ids=body.dependency_ids,
    )
    await session.commit()

    unblocked = []
    if change.triggers_cascade:
        unblocked = await cascade_completion(session, task_id)
    await session.refresh(task)

    await broadcast_event(
        "task.status_changed",
        {
            "task_id": str(task_id),
            "project_id": str(task.project_id),
            "from_status": change.previous_status.value,
            "to_status": change.status.value,
        },
        actor_id=auth.user_id,
    )
    if change.triggers_cascade:
        await broadcast_event(
            "task.completed",
            {
                "task_id": str(task_id),
                "project_id": str(task.project_id),
                "title": task.title,
                "status": task.status,
                "created_by": str(task.created_by) if task.created_by else None,
            },
            actor_id=auth.user_id,
        )
    for dependent in unblocked:
        await broadcast_event(
            "task.unblocked",
            {
                "task_id": str(dependent.id),
                "project_id": str(dependent.project_id),
                "assignee_id": str(dependent.assignee_id) if dependent.assignee_id else None,
                "unblocked_by": str(task_id),
            },
            actor_id=auth.user_id,
        )

    enriched = await enrich_task(session, task)
    return TaskStatusRead(
        **enriched.model_dump(),
        previous_status=change.previous_status,
        skipped_dependencies=change.skipped_dependencies,
        unblocked_task_ids=[t.id for t in unblocked],
    )
