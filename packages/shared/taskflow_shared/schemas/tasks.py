"""Task-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import UUID4

from .common import SkipReason, TaskStatus


# ---------------------------------------------------------------------------
# Task views
# ---------------------------------------------------------------------------

class TaskSummary(BaseModel):
    """Compact task view used inside dependency listings and error payloads."""
    id: UUID4
    project_id: UUID4
    title: str
    status: TaskStatus

    model_config = {"from_attributes": True}


class TaskRead(BaseModel):
    id: UUID4
    project_id: UUID4
    title: str
    description: Optional[str] = None
    status: TaskStatus
    block_reason: Optional[str] = None
    assignee_id: Optional[UUID4] = None
    created_by: Optional[UUID4] = None
    dependency_ids: List[UUID4] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------

class TaskStatusUpdate(BaseModel):
    """Request body for PATCH /tasks/{taskId}/status."""
    status: TaskStatus
    block_reason: Optional[str] = None
    dependency_ids: List[UUID4] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyAdd(BaseModel):
    """Request body for POST /tasks/{taskId}/dependencies."""
    dependency_ids: List[UUID4]

    @field_validator("dependency_ids")
    @classmethod
    def _not_empty(cls, v: List[UUID4]) -> List[UUID4]:
        if not v:
            raise ValueError("dependency_ids must not be empty")
        return v


class DependencyRead(BaseModel):
    task_id: UUID4
    depends_on_id: UUID4
    created_by: Optional[UUID4] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DependencySkip(BaseModel):
    depends_on_id: UUID4
    reason: SkipReason


class DependencyBatchResult(BaseModel):
    """Per-item outcome of a multi-dependency add."""
    created: List[DependencyRead] = Field(default_factory=list)
    existing: List[DependencyRead] = Field(default_factory=list)
    skipped: List[DependencySkip] = Field(default_factory=list)
    count: int = 0


class DependencyOverview(BaseModel):
    """Response for GET /tasks/{taskId}/dependencies."""
    dependencies: List[TaskSummary] = Field(default_factory=list)
    is_blocked: bool
    blocking_tasks: List[TaskSummary] = Field(default_factory=list)


class TaskStatusRead(TaskRead):
    previous_status: TaskStatus
    skipped_dependencies: List[DependencySkip] = Field(default_factory=list)
    unblocked_task_ids: List[UUID4] = Field(default_factory=list)
