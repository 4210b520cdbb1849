# task_service.py — Organization-scoped task operations
# Every read is filtered by the principal's organization; every successful
# mutation is committed together with exactly one audit entry.
import logging
from enum import Enum as PyEnum
from typing import Any, Dict, List, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from audit_service import AuditService
from errors import NotFoundError, PermissionDeniedError
from models import Task, TaskStatus, AuditAction, new_uuid
from rbac import can_update_or_delete_task
from schemas import TaskCreate, TaskUpdate

logger = logging.getLogger("taskgrid.tasks")

TASK_RESOURCE = "task"
SNAPSHOT_FIELDS = ("title", "description", "status", "priority", "category")


def task_snapshot(task: Task) -> Dict[str, Any]:
    """Plain-value copy of the mutable fields of ``task``"""
    snapshot = {}
    for name in SNAPSHOT_FIELDS:
        value = getattr(task, name)
        snapshot[name] = value.value if isinstance(value, PyEnum) else value
    return snapshot


class TaskService:
    def __init__(self, db: AsyncSession, audit: AuditService = None):
        self.db = db
        self.audit = audit or AuditService(db)

    async def _commit_with_audit(self, principal, action: AuditAction, task_id: str, **payloads) -> None:
        """Flush the pending mutation, append its audit entry, commit both.

        Any failure rolls the whole transaction back so a mutation is never
        persisted without its audit entry.
        """
        try:
            await self.db.flush()
            await self.audit.log(
                principal.id,
                principal.organization_id,
                action,
                TASK_RESOURCE,
                task_id,
                commit=False,
                **payloads,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def create(self, data: TaskCreate, principal) -> Task:
        # Deliberately not gated by can_create_task; route-level requirements
        # decide who may reach this over HTTP.
        task = Task(
            id=new_uuid(),
            title=data.title,
            description=data.description,
            status=data.status or TaskStatus.TODO,
            priority=data.priority,
            category=data.category,
            organization_id=principal.organization_id,
            created_by_id=principal.id,
        )
        self.db.add(task)

        snapshot = task_snapshot(task)
        await self._commit_with_audit(
            principal, AuditAction.CREATE, task.id,
            details={"title": snapshot["title"], "status": snapshot["status"]},
            previous_state=None,
            new_state=snapshot,
        )
        await self.db.refresh(task)

        logger.info(f"Task {task.id} created by {principal.id} [org={principal.organization_id}]")
        return task

    async def find_all(self, principal) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.organization_id == principal.organization_id)
            .order_by(Task.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_one(self, task_id: str, principal) -> Task:
        # Same error for "missing" and "other organization"
        stmt = select(Task).where(
            Task.id == task_id,
            Task.organization_id == principal.organization_id,
        )
        result = await self.db.execute(stmt)
        task = result.scalar_one_or_none()
        if not task:
            raise NotFoundError("Task not found")
        return task

    async def update(self, task_id: str, patch: Union[TaskUpdate, dict], principal) -> Task:
        if isinstance(patch, dict):
            patch = TaskUpdate.model_validate(patch)

        task = await self.find_one(task_id, principal)
        if not can_update_or_delete_task(principal.role):
            logger.warning(f"Task update denied for {principal.id} on {task_id}")
            raise PermissionDeniedError("Insufficient permissions to update task")

        previous_state = task_snapshot(task)
        for field, value in patch.model_dump(exclude_unset=True).items():
            setattr(task, field, value)

        new_state = task_snapshot(task)
        await self._commit_with_audit(
            principal, AuditAction.UPDATE, task.id,
            details=patch.model_dump(mode="json", exclude_unset=True),
            previous_state=previous_state,
            new_state=new_state,
        )
        await self.db.refresh(task)

        logger.info(f"Task {task.id} updated by {principal.id}")
        return task

    async def remove(self, task_id: str, principal) -> None:
        task = await self.find_one(task_id, principal)
        if not can_update_or_delete_task(principal.role):
            logger.warning(f"Task delete denied for {principal.id} on {task_id}")
            raise PermissionDeniedError("Insufficient permissions to delete task")

        previous_state = task_snapshot(task)
        await self.db.delete(task)
        await self._commit_with_audit(
            principal, AuditAction.DELETE, task_id,
            details={"title": previous_state["title"]},
            previous_state=previous_state,
            new_state=None,
        )

        logger.info(f"Task {task_id} deleted by {principal.id}")
