"""Task dependency edge model."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class TaskDependency(CreatedAtMixin, SQLModel, table=True):
    """Directed edge: ``task_id`` cannot proceed until ``depends_on_id`` is resolved.

    The composite primary key makes each ordered pair unique. Edges are never
    updated, only created and deleted.
    """

    __tablename__ = "task_dependencies"
    __table_args__ = (
        CheckConstraint("task_id != depends_on_id", name="no_self_dependency"),
    )

    task_id: uuid.UUID = Field(
        primary_key=True,
        sa_column_args=[sa.ForeignKey("tasks.id", ondelete="CASCADE")],
    )
    depends_on_id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        sa_column_args=[sa.ForeignKey("tasks.id", ondelete="CASCADE")],
    )
    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    created_by: Optional[uuid.UUID] = None
