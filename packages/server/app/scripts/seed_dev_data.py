"""
Seed a development database with a project, a small dependency graph and a
bearer token to call the API with.

Usage:
    python -m app.scripts.seed_dev_data --role manager

Uses TF_DATABASE_URL (or the default from settings). Tables must exist
(``alembic upgrade head`` or TF_AUTO_CREATE_TABLES=true).
"""

from __future__ import annotations

import argparse
import asyncio
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.auth import create_jwt
from app.core.config import get_settings
from app.models.project import Project
from app.models.task import Task
from app.services.dependencies import add_dependencies
from app.services.transitions import block_if_waiting
from taskflow_shared.schemas.common import Role, TaskStatus

settings = get_settings()

# title, status, titles it depends on
SEED_TASKS = [
    ("Collect requirements", TaskStatus.DONE, []),
    ("Design mockups", TaskStatus.IN_PROGRESS, ["Collect requirements"]),
    ("Write copy", TaskStatus.TODO, ["Collect requirements"]),
    ("Build landing page", TaskStatus.TODO, ["Design mockups", "Write copy"]),
    ("Launch", TaskStatus.TODO, ["Build landing page"]),
]


async def seed_project(session: AsyncSession, actor_id: uuid.UUID) -> Project:
    """Create the demo project. Tasks waiting on unresolved work end up blocked."""
    project = Project(name="Website relaunch", description="Seeded development data")
    session.add(project)
    await session.flush()

    by_title: dict[str, Task] = {}
    for title, status, _ in SEED_TASKS:
        task = Task(project_id=project.id, title=title, status=status.value, created_by=actor_id)
        session.add(task)
        by_title[title] = task
    await session.flush()

    for title, _, depends_on in SEED_TASKS:
        if not depends_on:
            continue
        task = by_title[title]
        await add_dependencies(session, task, [by_title[d].id for d in depends_on], actor_id)
        await block_if_waiting(session, task)

    await session.commit()
    return project


async def main(role: str) -> None:
    engine = create_async_engine(settings.database_url)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    actor_id = uuid.uuid4()

    async with session_factory() as session:
        project = await seed_project(session, actor_id)
    await engine.dispose()

    print(f"Seeded project {project.id} ({len(SEED_TASKS)} tasks)")
    print(f"Bearer token ({role}): {create_jwt(actor_id, role)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed development data.")
    parser.add_argument(
        "--role",
        default=Role.MANAGER.value,
        choices=[r.value for r in Role],
        help="Role embedded in the printed token",
    )
    args = parser.parse_args()

    asyncio.run(main(args.role))
