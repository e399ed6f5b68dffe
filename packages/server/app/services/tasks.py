"""
Task read helpers shared by the dependency graph, status transitions and
the HTTP layer.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.dependency import TaskDependency
from app.models.task import Task
from taskflow_shared.schemas.tasks import TaskRead, TaskSummary


async def get_task_or_404(session: AsyncSession, task_id: uuid.UUID) -> Task:
    task = await session.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _get_dependency_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskDependency.depends_on_id)
        .where(TaskDependency.task_id == task_id)
        .order_by(TaskDependency.created_at)
    )
    return [row[0] for row in result.all()]


def summarize(tasks: list[Task]) -> list[dict]:
    """JSON-ready summaries, for error payloads and event bodies."""
    return [TaskSummary.model_validate(t).model_dump(mode="json") for t in tasks]


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    """Convert a Task ORM object to a TaskRead including its dependency ids."""
    dependency_ids = await _get_dependency_ids(session, task.id)

    return TaskRead(
        id=task.id,
        project_id=task.project_id,
        title=task.title,
        description=task.description,
        status=task.status,
        block_reason=task.block_reason,
        assignee_id=task.assignee_id,
        created_by=task.created_by,
        dependency_ids=dependency_ids,
        completed_at=task.completed_at,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )
