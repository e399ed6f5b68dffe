"""
Tests for status transitions.

Tests cover:
- Blocked tasks cannot start while a direct dependency is unresolved
- Entering blocked requires dependencies or a reason
- Block reason and completed_at bookkeeping
- Re-evaluation after edge removal and auto-blocking after edge addition
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from app.services.dependencies import add_dependency, has_dependencies
from app.services.transitions import (
    block_if_waiting,
    reevaluate_blocked,
    set_task_status,
)
from taskflow_shared.schemas.common import SkipReason, TaskStatus


class TestStartBlockedTask:
    async def test_rejected_while_dependency_unresolved(self, session, make_task):
        """T1 blocked on T3 (in progress): T1 cannot start."""
        t1 = await make_task("T1", TaskStatus.BLOCKED)
        t3 = await make_task("T3", TaskStatus.IN_PROGRESS)
        await add_dependency(session, t1.id, t3.id)

        with pytest.raises(HTTPException) as exc:
            await set_task_status(session, t1, TaskStatus.IN_PROGRESS)

        assert exc.value.status_code == 409
        blocking = exc.value.detail["blocking_tasks"]
        assert [b["id"] for b in blocking] == [str(t3.id)]
        assert blocking[0]["status"] == "in_progress"
        assert t1.status == TaskStatus.BLOCKED.value

    async def test_allowed_once_dependencies_resolved(self, session, make_task):
        t1 = await make_task("T1", TaskStatus.BLOCKED, block_reason="waiting on T2")
        t2 = await make_task("T2", TaskStatus.APPROVED)
        await add_dependency(session, t1.id, t2.id)

        change = await set_task_status(session, t1, TaskStatus.IN_PROGRESS)

        assert change.previous_status == TaskStatus.BLOCKED
        assert t1.status == TaskStatus.IN_PROGRESS.value
        assert t1.block_reason is None

    async def test_allowed_with_reason_only(self, session, make_task):
        """A task blocked by reason alone has no dependencies to wait for."""
        t1 = await make_task("T1", TaskStatus.BLOCKED, block_reason="vendor outage")

        await set_task_status(session, t1, TaskStatus.IN_PROGRESS)

        assert t1.status == TaskStatus.IN_PROGRESS.value
        assert t1.block_reason is None

    async def test_other_exits_from_blocked_are_not_checked(self, session, make_task):
        t1 = await make_task("T1", TaskStatus.BLOCKED)
        t2 = await make_task("T2")
        await add_dependency(session, t1.id, t2.id)

        await set_task_status(session, t1, TaskStatus.TODO)

        assert t1.status == TaskStatus.TODO.value


class TestEnterBlocked:
    async def test_requires_dependencies_or_reason(self, session, make_task):
        t = await make_task("T")

        with pytest.raises(HTTPException) as exc:
            await set_task_status(session, t, TaskStatus.BLOCKED)

        assert exc.value.status_code == 422
        assert t.status == TaskStatus.TODO.value

    async def test_whitespace_reason_does_not_count(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)
        with pytest.raises(HTTPException) as exc:
            await set_task_status(session, t, TaskStatus.BLOCKED, block_reason="   ")
        assert exc.value.status_code == 422

    async def test_reason_only(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)

        await set_task_status(session, t, TaskStatus.BLOCKED, block_reason="  waiting on legal ")

        assert t.status == TaskStatus.BLOCKED.value
        assert t.block_reason == "waiting on legal"
        assert not await has_dependencies(session, t.id)

    async def test_existing_dependencies_suffice(self, session, make_task):
        t = await make_task("T")
        other = await make_task("Other", TaskStatus.DONE)
        await add_dependency(session, t.id, other.id)

        await set_task_status(session, t, TaskStatus.BLOCKED)

        assert t.status == TaskStatus.BLOCKED.value

    async def test_attaches_new_dependencies(self, session, make_task):
        t = await make_task("T")
        a, b = await make_task("A"), await make_task("B")

        change = await set_task_status(session, t, TaskStatus.BLOCKED, dependency_ids=[a.id, b.id])

        assert t.status == TaskStatus.BLOCKED.value
        assert change.skipped_dependencies == []
        assert await has_dependencies(session, t.id)

    async def test_cyclic_dependency_skipped_and_reported(self, session, make_task):
        t = await make_task("T")
        a, b = await make_task("A"), await make_task("B")
        await add_dependency(session, a.id, t.id)  # A waits on T

        change = await set_task_status(session, t, TaskStatus.BLOCKED, dependency_ids=[a.id, b.id])

        assert t.status == TaskStatus.BLOCKED.value
        assert [s.depends_on_id for s in change.skipped_dependencies] == [a.id]
        assert change.skipped_dependencies[0].reason == SkipReason.CYCLE

    async def test_unknown_dependency_rejects_transition(self, session, make_task):
        t = await make_task("T")
        with pytest.raises(HTTPException) as exc:
            await set_task_status(session, t, TaskStatus.BLOCKED, dependency_ids=[uuid.uuid4()])
        assert exc.value.status_code == 404

    async def test_staying_blocked_updates_reason(self, session, make_task):
        t = await make_task("T", TaskStatus.BLOCKED, block_reason="old")

        await set_task_status(session, t, TaskStatus.BLOCKED, block_reason="new")
        assert t.block_reason == "new"

        await set_task_status(session, t, TaskStatus.BLOCKED)
        assert t.block_reason == "new"


class TestBookkeeping:
    @pytest.mark.parametrize("resolved", [TaskStatus.DONE, TaskStatus.APPROVED])
    async def test_completed_at_set_on_resolution(self, session, make_task, resolved):
        t = await make_task("T", TaskStatus.IN_PROGRESS)

        change = await set_task_status(session, t, resolved)

        assert t.completed_at is not None
        assert change.triggers_cascade

    async def test_done_to_approved_keeps_completed_at(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)
        await set_task_status(session, t, TaskStatus.DONE)
        completed_at = t.completed_at

        change = await set_task_status(session, t, TaskStatus.APPROVED)

        assert t.completed_at == completed_at
        assert not change.triggers_cascade

    async def test_reopening_clears_completed_at(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)
        await set_task_status(session, t, TaskStatus.DONE)

        change = await set_task_status(session, t, TaskStatus.IN_PROGRESS)

        assert t.completed_at is None
        assert not change.triggers_cascade

    async def test_same_status_is_accepted(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)

        change = await set_task_status(session, t, TaskStatus.IN_PROGRESS)

        assert change.previous_status == change.status == TaskStatus.IN_PROGRESS


class TestReevaluateBlocked:
    async def test_unblocks_when_nothing_left(self, session, make_task):
        t = await make_task("T", TaskStatus.BLOCKED, block_reason="waiting")

        assert await reevaluate_blocked(session, t)
        assert t.status == TaskStatus.TODO.value
        assert t.block_reason is None

    async def test_stays_blocked_with_unresolved_dependency(self, session, make_task):
        t = await make_task("T", TaskStatus.BLOCKED)
        other = await make_task("Other", TaskStatus.IN_PROGRESS)
        await add_dependency(session, t.id, other.id)

        assert not await reevaluate_blocked(session, t)
        assert t.status == TaskStatus.BLOCKED.value

    async def test_ignores_unblocked_tasks(self, session, make_task):
        t = await make_task("T", TaskStatus.IN_PROGRESS)
        assert not await reevaluate_blocked(session, t)
        assert t.status == TaskStatus.IN_PROGRESS.value


class TestBlockIfWaiting:
    @pytest.mark.parametrize("start", [TaskStatus.TODO, TaskStatus.IN_PROGRESS])
    async def test_blocks_active_task(self, session, make_task, start):
        t = await make_task("T", start)
        other = await make_task("Other")
        await add_dependency(session, t.id, other.id)

        assert await block_if_waiting(session, t)
        assert t.status == TaskStatus.BLOCKED.value

    async def test_resolved_dependency_does_not_block(self, session, make_task):
        t = await make_task("T")
        other = await make_task("Other", TaskStatus.DONE)
        await add_dependency(session, t.id, other.id)

        assert not await block_if_waiting(session, t)
        assert t.status == TaskStatus.TODO.value

    @pytest.mark.parametrize("start", [TaskStatus.DONE, TaskStatus.APPROVED])
    async def test_resolved_task_left_alone(self, session, make_task, start):
        t = await make_task("T", start)
        other = await make_task("Other")
        await add_dependency(session, t.id, other.id)

        assert not await block_if_waiting(session, t)
        assert t.status == start.value
