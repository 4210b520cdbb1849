# routers/tasks.py — Organization-scoped task CRUD
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import Principal, require
from database import get_db_session
from models import Task, Role
from rbac import Requirement, Permission
from schemas import TaskCreate, TaskUpdate
from task_service import TaskService

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])

# Route requirements, applied by auth.require before each handler runs
READ_TASKS = Requirement.permissions(Permission.TASK_READ)
MANAGE_TASKS = Requirement.roles(Role.ADMIN, Role.OWNER)


# --- Schemas ---

class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    category: Optional[str] = None
    organization_id: str
    created_by_id: str
    created_at: str
    updated_at: str


# --- Helpers ---

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _task_to_out(t: Task) -> TaskOut:
    return TaskOut(
        id=t.id,
        title=t.title,
        description=t.description,
        status=t.status.value if hasattr(t.status, "value") else t.status,
        priority=t.priority.value if hasattr(t.priority, "value") else t.priority,
        category=t.category,
        organization_id=t.organization_id,
        created_by_id=t.created_by_id,
        created_at=_ts(t.created_at) or "",
        updated_at=_ts(t.updated_at) or "",
    )


# --- Endpoints ---

@router.post("", response_model=TaskOut)
async def create_task(
    data: TaskCreate,
    principal: Principal = Depends(require(MANAGE_TASKS)),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task in the caller's organization"""
    task = await TaskService(db).create(data, principal)
    return _task_to_out(task)


@router.get("", response_model=List[TaskOut])
async def list_tasks(
    principal: Principal = Depends(require(READ_TASKS)),
    db: AsyncSession = Depends(get_db_session),
):
    """List the organization's tasks, newest first"""
    tasks = await TaskService(db).find_all(principal)
    return [_task_to_out(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    principal: Principal = Depends(require(READ_TASKS)),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService(db).find_one(task_id, principal)
    return _task_to_out(task)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    principal: Principal = Depends(require(MANAGE_TASKS)),
    db: AsyncSession = Depends(get_db_session),
):
    """Apply a partial update; omitted fields are left unchanged"""
    task = await TaskService(db).update(task_id, data, principal)
    return _task_to_out(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    principal: Principal = Depends(require(MANAGE_TASKS)),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService(db).remove(task_id, principal)
    return {"status": "deleted", "task_id": task_id}
