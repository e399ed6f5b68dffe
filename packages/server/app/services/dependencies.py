"""
Dependency graph service: edge validation and mutation plus blocked-status
queries.

An edge ``(task_id, depends_on_id)`` means ``task_id`` cannot proceed until
``depends_on_id`` reaches a resolved status. Edges never cross projects and
the edge set of a project is kept acyclic: every insert is preceded by a
reachability check over the project's current edges, performed while the
project row is locked so concurrent inserts on the same project serialise.

This module never writes task status; see ``app.services.transitions``.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.dependency import TaskDependency
from app.models.project import Project
from app.models.task import Task
from app.services.tasks import get_task_or_404
from taskflow_shared.schemas.common import RESOLVED_STATUSES, SkipReason
from taskflow_shared.schemas.tasks import (
    DependencyBatchResult,
    DependencyRead,
    DependencySkip,
)

log = structlog.get_logger()

_RESOLVED_VALUES = [s.value for s in RESOLVED_STATUSES]


@dataclass
class BlockedStatus:
    is_blocked: bool
    blocking_tasks: list[Task] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


def would_create_cycle(
    adjacency: Mapping[uuid.UUID, Iterable[uuid.UUID]],
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
) -> bool:
    """Return True if adding ``task_id -> depends_on_id`` would close a cycle.

    Walks the existing edges depth-first from ``depends_on_id``; reaching
    ``task_id`` means a path back already exists. Uses an explicit stack so
    long dependency chains cannot exhaust the interpreter stack.
    """
    visited: set[uuid.UUID] = set()
    stack = [depends_on_id]
    while stack:
        current = stack.pop()
        if current == task_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(n for n in adjacency.get(current, ()) if n not in visited)
    return False


async def _load_adjacency(
    session: AsyncSession, project_id: uuid.UUID
) -> dict[uuid.UUID, list[uuid.UUID]]:
    result = await session.execute(
        select(TaskDependency.task_id, TaskDependency.depends_on_id).where(
            TaskDependency.project_id == project_id
        )
    )
    adjacency: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for task_id, depends_on_id in result.all():
        adjacency[task_id].append(depends_on_id)
    return adjacency


async def _lock_project(session: AsyncSession, project_id: uuid.UUID) -> None:
    # Row lock for the rest of the transaction; ignored by SQLite.
    await session.execute(
        select(Project.id).where(Project.id == project_id).with_for_update()
    )


async def _get_edge(
    session: AsyncSession, task_id: uuid.UUID, depends_on_id: uuid.UUID
) -> TaskDependency | None:
    result = await session.execute(
        select(TaskDependency).where(
            TaskDependency.task_id == task_id,
            TaskDependency.depends_on_id == depends_on_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def add_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> TaskDependency:
    """Add a single edge. Returns the existing edge if it is already there."""
    task = await get_task_or_404(session, task_id)
    depends_on = await get_task_or_404(session, depends_on_id)
    if task_id == depends_on_id:
        raise HTTPException(status_code=409, detail="A task cannot depend on itself")
    if task.project_id != depends_on.project_id:
        raise HTTPException(
            status_code=409, detail="Dependencies must belong to the same project"
        )

    await _lock_project(session, task.project_id)

    existing = await _get_edge(session, task_id, depends_on_id)
    if existing:
        return existing

    adjacency = await _load_adjacency(session, task.project_id)
    if would_create_cycle(adjacency, task_id, depends_on_id):
        raise HTTPException(
            status_code=409,
            detail="Adding this dependency would create a circular dependency",
        )

    edge = TaskDependency(
        task_id=task_id,
        depends_on_id=depends_on_id,
        project_id=task.project_id,
        created_by=actor_id,
    )
    session.add(edge)
    await session.flush()
    log.info(
        "dependency.added",
        task_id=str(task_id),
        depends_on_id=str(depends_on_id),
        project_id=str(task.project_id),
    )
    return edge


async def add_dependencies(
    session: AsyncSession,
    task: Task,
    depends_on_ids: Sequence[uuid.UUID],
    actor_id: uuid.UUID | None = None,
) -> DependencyBatchResult:
    """Attach several dependencies to ``task`` in one call.

    The batch as a whole is rejected (before anything is written) if an id is
    unknown, equals the task itself, or belongs to another project. Past
    that point each candidate stands alone: edges that already exist are
    reported as existing, candidates that would close a cycle are skipped,
    and the rest are created. Cycle checks see edges created earlier in the
    same batch.
    """
    ids = list(dict.fromkeys(depends_on_ids))

    if task.id in ids:
        raise HTTPException(status_code=409, detail="A task cannot depend on itself")

    result = await session.execute(select(Task).where(Task.id.in_(ids)))
    found = {t.id: t for t in result.scalars().all()}

    missing = [i for i in ids if i not in found]
    if missing:
        raise HTTPException(
            status_code=404,
            detail={
                "message": "Dependency tasks not found",
                "task_ids": [str(i) for i in missing],
            },
        )

    foreign = [i for i in ids if found[i].project_id != task.project_id]
    if foreign:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Dependencies must belong to the same project",
                "task_ids": [str(i) for i in foreign],
            },
        )

    await _lock_project(session, task.project_id)

    result = await session.execute(
        select(TaskDependency).where(
            TaskDependency.task_id == task.id,
            TaskDependency.depends_on_id.in_(ids),
        )
    )
    existing = {e.depends_on_id: e for e in result.scalars().all()}
    adjacency = await _load_adjacency(session, task.project_id)

    batch = DependencyBatchResult()
    created: list[TaskDependency] = []
    for depends_on_id in ids:
        if depends_on_id in existing:
            batch.existing.append(DependencyRead.model_validate(existing[depends_on_id]))
            continue
        if would_create_cycle(adjacency, task.id, depends_on_id):
            log.info(
                "dependency.cycle_skipped",
                task_id=str(task.id),
                depends_on_id=str(depends_on_id),
            )
            batch.skipped.append(
                DependencySkip(depends_on_id=depends_on_id, reason=SkipReason.CYCLE)
            )
            continue
        edge = TaskDependency(
            task_id=task.id,
            depends_on_id=depends_on_id,
            project_id=task.project_id,
            created_by=actor_id,
        )
        session.add(edge)
        adjacency[task.id].append(depends_on_id)
        created.append(edge)

    await session.flush()

    batch.created = [DependencyRead.model_validate(e) for e in created]
    batch.count = len(created)
    if created:
        log.info(
            "dependency.added",
            task_id=str(task.id),
            depends_on_ids=[str(e.depends_on_id) for e in created],
            project_id=str(task.project_id),
        )
    return batch


async def remove_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
) -> None:
    """Delete an edge. The caller re-evaluates the task's blocked status."""
    edge = await _get_edge(session, task_id, depends_on_id)
    if not edge:
        raise HTTPException(status_code=404, detail="Dependency not found")
    await session.delete(edge)
    await session.flush()
    log.info("dependency.removed", task_id=str(task_id), depends_on_id=str(depends_on_id))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def has_dependencies(session: AsyncSession, task_id: uuid.UUID) -> bool:
    result = await session.execute(
        select(func.count()).select_from(TaskDependency).where(TaskDependency.task_id == task_id)
    )
    return result.scalar_one() > 0


async def list_dependencies(session: AsyncSession, task_id: uuid.UUID) -> list[Task]:
    """Tasks that ``task_id`` directly depends on."""
    result = await session.execute(
        select(Task)
        .join(TaskDependency, TaskDependency.depends_on_id == Task.id)
        .where(TaskDependency.task_id == task_id)
        .order_by(TaskDependency.created_at, Task.title)
    )
    return list(result.scalars().all())


async def list_dependents(session: AsyncSession, task_id: uuid.UUID) -> list[Task]:
    """Tasks that declare ``task_id`` as a dependency (reverse edges)."""
    result = await session.execute(
        select(Task)
        .join(TaskDependency, TaskDependency.task_id == Task.id)
        .where(TaskDependency.depends_on_id == task_id)
        .order_by(TaskDependency.created_at, Task.title)
    )
    return list(result.scalars().all())


async def compute_blocked_statuses(
    session: AsyncSession, task_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[Task]]:
    """Unresolved direct dependencies for each of ``task_ids``, in one query."""
    blocking: dict[uuid.UUID, list[Task]] = {task_id: [] for task_id in task_ids}
    if not blocking:
        return blocking

    result = await session.execute(
        select(TaskDependency.task_id, Task)
        .join(Task, Task.id == TaskDependency.depends_on_id)
        .where(
            TaskDependency.task_id.in_(list(blocking)),
            Task.status.not_in(_RESOLVED_VALUES),
        )
        .order_by(TaskDependency.created_at, Task.title)
    )
    for task_id, dependency in result.all():
        blocking[task_id].append(dependency)
    return blocking


async def compute_blocked_status(session: AsyncSession, task_id: uuid.UUID) -> BlockedStatus:
    """One-hop blocked check: only direct dependencies are considered."""
    blocking = (await compute_blocked_statuses(session, [task_id]))[task_id]
    return BlockedStatus(is_blocked=bool(blocking), blocking_tasks=blocking)
