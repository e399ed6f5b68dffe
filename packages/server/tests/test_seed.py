"""
Development seed script test.
"""

import uuid

from sqlmodel import select

from app.models.task import Task
from app.scripts.seed_dev_data import SEED_TASKS, seed_project
from app.services.dependencies import list_dependencies


async def test_seed_builds_blocked_graph(session):
    project = await seed_project(session, uuid.uuid4())

    result = await session.execute(select(Task).where(Task.project_id == project.id))
    tasks = {t.title: t for t in result.scalars().all()}

    assert len(tasks) == len(SEED_TASKS)
    assert tasks["Design mockups"].status == "in_progress"
    assert tasks["Write copy"].status == "todo"
    assert tasks["Build landing page"].status == "blocked"
    assert tasks["Launch"].status == "blocked"

    deps = await list_dependencies(session, tasks["Build landing page"].id)
    assert {t.title for t in deps} == {"Design mockups", "Write copy"}
