# schemas.py — Request schemas shared by services and routers
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models import TaskStatus, TaskPriority


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None  # None → todo
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None


class TaskUpdate(BaseModel):
    """Partial update: only fields present in the request are applied"""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[str] = None

    @field_validator("title", "status", "priority")
    @classmethod
    def reject_explicit_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v
