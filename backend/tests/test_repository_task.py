"""Tests for TaskRepository conditional writes (app/repositories/task.py)."""

from __future__ import annotations

import pytest

from app.repositories.task import TaskRepository
from flowcore.errors import ValidationError

from factories import ORG_ID, seed_task


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestTaskReads:
    @pytest.mark.asyncio
    async def test_get_scoped_to_org(self, session_factory):
        task = await seed_task(session_factory)
        async with session_factory() as session:
            repo = TaskRepository(session)
            assert (await repo.get(task.id, ORG_ID)).title == "Call the customer"
            assert await repo.get(task.id, "org_2") is None
            assert await repo.exists(task.id, ORG_ID)
            assert not await repo.exists(task.id, "org_2")
            assert not await repo.exists("missing", ORG_ID)

    @pytest.mark.asyncio
    async def test_create_defaults(self, test_session):
        repo = TaskRepository(test_session)
        task = await repo.create(ORG_ID, "Follow up", metadata={"links": ["https://example.com"]})
        assert task.id
        assert task.status == "todo"
        assert task.task_type == "standard"
        assert task.priority == "medium"
        assert task.task_metadata == {"links": ["https://example.com"]}
        assert task.outcome is None


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------


class TestClaimUnassigned:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self, session_factory):
        task = await seed_task(session_factory, assigned_role="reviewer")

        async with session_factory() as session:
            repo = TaskRepository(session)
            claimed = await repo.claim_unassigned(task.id, ORG_ID, "u1")
            await repo.commit()
        assert claimed is not None
        assert claimed.assigned_to == "u1"

        async with session_factory() as session:
            repo = TaskRepository(session)
            assert await repo.claim_unassigned(task.id, ORG_ID, "u2") is None
            current = await repo.get(task.id, ORG_ID)
        assert current.assigned_to == "u1"

    @pytest.mark.asyncio
    async def test_stale_read_loses(self, session_factory):
        task = await seed_task(session_factory, assigned_role="reviewer")

        async with session_factory() as slow:
            slow_repo = TaskRepository(slow)
            snapshot = await slow_repo.get(task.id, ORG_ID)
            assert snapshot.assigned_to is None

            async with session_factory() as fast:
                fast_repo = TaskRepository(fast)
                assert await fast_repo.claim_unassigned(task.id, ORG_ID, "u2") is not None
                await fast_repo.commit()

            assert await slow_repo.claim_unassigned(task.id, ORG_ID, "u1") is None
            refreshed = await slow_repo.get(task.id, ORG_ID)
            assert refreshed.assigned_to == "u2"

    @pytest.mark.asyncio
    async def test_other_org_cannot_claim(self, session_factory):
        task = await seed_task(session_factory, assigned_role="reviewer")
        async with session_factory() as session:
            assert await TaskRepository(session).claim_unassigned(task.id, "org_2", "u1") is None


# ---------------------------------------------------------------------------
# Completion / decisions
# ---------------------------------------------------------------------------


class TestCompletion:
    @pytest.mark.asyncio
    async def test_complete_once(self, session_factory):
        task = await seed_task(session_factory)

        async with session_factory() as session:
            repo = TaskRepository(session)
            done = await repo.complete_if_not_done(task.id, ORG_ID)
            await repo.commit()
        assert done.status == "done"
        assert done.completed_at is not None

        async with session_factory() as session:
            assert await TaskRepository(session).complete_if_not_done(task.id, ORG_ID) is None

    @pytest.mark.asyncio
    async def test_decide_approval(self, session_factory):
        task = await seed_task(session_factory, task_type="approval")

        async with session_factory() as session:
            repo = TaskRepository(session)
            decided = await repo.decide_if_pending(task.id, ORG_ID, "approved", "fine")
            await repo.commit()
        assert decided.status == "done"
        assert decided.outcome == "approved"
        assert decided.outcome_comment == "fine"

    @pytest.mark.asyncio
    async def test_second_decision_loses(self, session_factory):
        task = await seed_task(session_factory, task_type="approval")

        async with session_factory() as session:
            repo = TaskRepository(session)
            assert await repo.decide_if_pending(task.id, ORG_ID, "approved", None) is not None
            await repo.commit()

        async with session_factory() as session:
            repo = TaskRepository(session)
            assert await repo.decide_if_pending(task.id, ORG_ID, "rejected", "late") is None
            current = await repo.get(task.id, ORG_ID)
        assert current.outcome == "approved"
        assert current.outcome_comment is None

    @pytest.mark.asyncio
    async def test_decide_requires_approval_type(self, session_factory):
        task = await seed_task(session_factory)
        async with session_factory() as session:
            assert await TaskRepository(session).decide_if_pending(task.id, ORG_ID, "approved", None) is None

    @pytest.mark.asyncio
    async def test_open_status_refused_when_done(self, session_factory):
        open_task = await seed_task(session_factory)
        done_task = await seed_task(session_factory, status="done")

        async with session_factory() as session:
            repo = TaskRepository(session)
            moved = await repo.set_open_status(open_task.id, ORG_ID, "in_progress")
            assert moved.status == "in_progress"
            assert await repo.set_open_status(done_task.id, ORG_ID, "todo") is None


# ---------------------------------------------------------------------------
# Field updates
# ---------------------------------------------------------------------------


class TestUpdateFields:
    @pytest.mark.asyncio
    async def test_parses_due_date(self, session_factory):
        task = await seed_task(session_factory)
        async with session_factory() as session:
            updated = await TaskRepository(session).update_fields(
                task.id, ORG_ID, {"due_date": "2026-03-01T09:00:00Z", "priority": "high"},
            )
        assert updated.due_date.year == 2026
        assert updated.due_date.month == 3
        assert updated.priority == "high"

    @pytest.mark.asyncio
    async def test_blank_due_date_clears(self, session_factory):
        task = await seed_task(session_factory)
        async with session_factory() as session:
            updated = await TaskRepository(session).update_fields(task.id, ORG_ID, {"due_date": ""})
        assert updated.due_date is None

    @pytest.mark.asyncio
    async def test_invalid_due_date(self, session_factory):
        task = await seed_task(session_factory)
        async with session_factory() as session:
            with pytest.raises(ValidationError, match="Invalid due_date"):
                await TaskRepository(session).update_fields(task.id, ORG_ID, {"due_date": "next tuesday"})

    @pytest.mark.asyncio
    async def test_missing_task(self, session_factory):
        async with session_factory() as session:
            assert await TaskRepository(session).update_fields("missing", ORG_ID, {"title": "x"}) is None
