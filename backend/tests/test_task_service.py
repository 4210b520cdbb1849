# tests/test_task_service.py — Tenant-scoped task operations and their audit entries
import pytest
from sqlalchemy import select, func

from audit_service import AuditService, deserialize_payload
from errors import NotFoundError, PermissionDeniedError
from models import Task, AuditLog, TaskStatus, TaskPriority
from schemas import TaskCreate
from task_service import TaskService
from tests.conftest import principal_for, _add_dated_tasks


class FailingAudit(AuditService):
    async def log(self, *args, **kwargs):
        raise RuntimeError("audit store unavailable")


async def _audit_entries(db_session, organization_id=None):
    stmt = select(AuditLog).order_by(AuditLog.timestamp.asc())
    if organization_id:
        stmt = stmt.where(AuditLog.organization_id == organization_id)
    result = await db_session.execute(stmt)
    return list(result.scalars().all())


async def _task_count(db_session):
    result = await db_session.execute(select(func.count(Task.id)))
    return result.scalar()


@pytest.mark.asyncio
class TestCreate:
    async def test_create_stamps_org_and_creator(self, db_session, admin_user):
        principal = principal_for(admin_user)
        task = await TaskService(db_session).create(
            TaskCreate(title="Test Task", category="work"), principal,
        )

        assert task.id
        assert task.organization_id == principal.organization_id
        assert task.created_by_id == principal.id
        assert task.status == TaskStatus.TODO
        assert task.priority == TaskPriority.MEDIUM
        assert task.created_at is not None

        entries = await _audit_entries(db_session)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "CREATE"
        assert entry.resource == "task"
        assert entry.resource_id == task.id
        assert entry.user_id == principal.id
        assert entry.previous_state is None
        assert deserialize_payload(entry.details) == {"title": "Test Task", "status": "todo"}
        assert deserialize_payload(entry.new_state)["category"] == "work"

    async def test_create_keeps_explicit_status(self, db_session, admin_user):
        task = await TaskService(db_session).create(
            TaskCreate(title="Started", status="in_progress", priority="high"),
            principal_for(admin_user),
        )
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == TaskPriority.HIGH

    async def test_viewer_can_create_through_service(self, db_session, viewer_user):
        principal = principal_for(viewer_user)
        task = await TaskService(db_session).create(TaskCreate(title="From viewer"), principal)

        assert task.created_by_id == principal.id
        entries = await _audit_entries(db_session)
        assert [e.action for e in entries] == ["CREATE"]

    async def test_create_rolled_back_when_audit_fails(self, db_session, admin_user):
        principal = principal_for(admin_user)
        service = TaskService(db_session, audit=FailingAudit(db_session))

        with pytest.raises(RuntimeError):
            await service.create(TaskCreate(title="Never stored"), principal)

        assert await _task_count(db_session) == 0
        assert await _audit_entries(db_session) == []


@pytest.mark.asyncio
class TestRead:
    async def test_find_all_is_org_scoped(self, db_session, admin_user, other_admin):
        mine = principal_for(admin_user)
        theirs = principal_for(other_admin)
        service = TaskService(db_session)
        await service.create(TaskCreate(title="Mine 1"), mine)
        await service.create(TaskCreate(title="Mine 2"), mine)
        await service.create(TaskCreate(title="Theirs"), theirs)

        tasks = await service.find_all(mine)
        assert sorted(t.title for t in tasks) == ["Mine 1", "Mine 2"]
        assert all(t.organization_id == mine.organization_id for t in tasks)

    async def test_find_all_newest_first(self, db_session, admin_user):
        principal = principal_for(admin_user)
        await _add_dated_tasks(db_session, admin_user, ["a", "b", "c"])

        tasks = await TaskService(db_session).find_all(principal)
        assert [t.title for t in tasks] == ["c", "b", "a"]

    async def test_find_all_empty_org(self, db_session, viewer_user):
        assert await TaskService(db_session).find_all(principal_for(viewer_user)) == []

    async def test_find_one_cross_org_looks_missing(self, db_session, admin_user, other_admin):
        mine = principal_for(admin_user)
        theirs = principal_for(other_admin)
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Private"), mine)

        with pytest.raises(NotFoundError) as foreign:
            await service.find_one(task.id, theirs)
        with pytest.raises(NotFoundError) as missing:
            await service.find_one("no-such-task", mine)
        assert foreign.value.message == missing.value.message == "Task not found"

    async def test_viewer_reads_own_org(self, db_session, admin_user, viewer_user):
        task = await TaskService(db_session).create(
            TaskCreate(title="Shared"), principal_for(admin_user),
        )
        found = await TaskService(db_session).find_one(task.id, principal_for(viewer_user))
        assert found.id == task.id


@pytest.mark.asyncio
class TestUpdate:
    async def test_update_records_snapshots(self, db_session, admin_user, owner_user):
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Draft"), principal_for(admin_user))

        owner = principal_for(owner_user)
        updated = await service.update(task.id, {"status": "in_progress"}, owner)

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.title == "Draft"

        entries = await _audit_entries(db_session)
        assert [e.action for e in entries] == ["CREATE", "UPDATE"]
        entry = entries[1]
        assert entry.user_id == owner.id
        assert deserialize_payload(entry.details) == {"status": "in_progress"}
        assert deserialize_payload(entry.previous_state)["status"] == "todo"
        assert deserialize_payload(entry.new_state)["status"] == "in_progress"
        assert deserialize_payload(entry.new_state)["title"] == "Draft"

    async def test_partial_update_leaves_other_fields(self, db_session, admin_user):
        principal = principal_for(admin_user)
        service = TaskService(db_session)
        task = await service.create(
            TaskCreate(title="Keep", description="original", category="ops"), principal,
        )

        updated = await service.update(task.id, {"priority": "critical"}, principal)
        assert updated.priority == TaskPriority.CRITICAL
        assert updated.description == "original"
        assert updated.category == "ops"

    async def test_status_transitions_are_unconstrained(self, db_session, admin_user):
        principal = principal_for(admin_user)
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Loop"), principal)

        await service.update(task.id, {"status": "done"}, principal)
        reopened = await service.update(task.id, {"status": "todo"}, principal)
        assert reopened.status == TaskStatus.TODO

    async def test_viewer_update_denied(self, db_session, admin_user, viewer_user):
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Locked"), principal_for(admin_user))

        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.update(task.id, {"title": "Changed"}, principal_for(viewer_user))
        assert exc_info.value.message == "Insufficient permissions to update task"
        assert len(await _audit_entries(db_session)) == 1

    async def test_cross_org_update_not_found_without_audit(self, db_session, admin_user, other_admin):
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Private"), principal_for(admin_user))
        theirs = principal_for(other_admin)

        with pytest.raises(NotFoundError):
            await service.update(task.id, {"title": "Hijacked"}, theirs)
        assert await _audit_entries(db_session, theirs.organization_id) == []

    async def test_update_rolled_back_when_audit_fails(self, db_session, admin_user):
        principal = principal_for(admin_user)
        task = await TaskService(db_session).create(TaskCreate(title="Stable"), principal)
        task_id = task.id

        failing = TaskService(db_session, audit=FailingAudit(db_session))
        with pytest.raises(RuntimeError):
            await failing.update(task_id, {"title": "Lost"}, principal)

        refetched = await TaskService(db_session).find_one(task_id, principal)
        assert refetched.title == "Stable"
        assert len(await _audit_entries(db_session)) == 1


@pytest.mark.asyncio
class TestRemove:
    async def test_remove_records_delete(self, db_session, admin_user):
        principal = principal_for(admin_user)
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Temporary"), principal)
        task_id = task.id

        await service.remove(task_id, principal)

        with pytest.raises(NotFoundError):
            await service.find_one(task_id, principal)
        entries = await _audit_entries(db_session)
        assert [e.action for e in entries] == ["CREATE", "DELETE"]
        assert entries[1].resource_id == task_id
        assert deserialize_payload(entries[1].details) == {"title": "Temporary"}
        assert entries[1].new_state is None

    async def test_viewer_remove_denied(self, db_session, admin_user, viewer_user):
        service = TaskService(db_session)
        task = await service.create(TaskCreate(title="Stays"), principal_for(admin_user))

        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.remove(task.id, principal_for(viewer_user))
        assert exc_info.value.message == "Insufficient permissions to delete task"
        assert await _task_count(db_session) == 1
        assert [e.action for e in await _audit_entries(db_session)] == ["CREATE"]

    async def test_remove_missing_task(self, db_session, owner_user):
        with pytest.raises(NotFoundError):
            await TaskService(db_session).remove("no-such-task", principal_for(owner_user))

    async def test_remove_rolled_back_when_audit_fails(self, db_session, owner_user):
        principal = principal_for(owner_user)
        task = await TaskService(db_session).create(TaskCreate(title="Survivor"), principal)
        task_id = task.id

        failing = TaskService(db_session, audit=FailingAudit(db_session))
        with pytest.raises(RuntimeError):
            await failing.remove(task_id, principal)

        refetched = await TaskService(db_session).find_one(task_id, principal)
        assert refetched.title == "Survivor"
