# models.py — Database models for Taskgrid
# - String UUID primary keys everywhere
# - 3-tier role system (owner, admin, viewer)
# - Organization-scoped tasks and append-only audit logs
# - Referential columns are plain identifiers (no FK enforcement)

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Enum as SQLEnum, Text, Index,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class Role(str, PyEnum):
    VIEWER = "viewer"
    ADMIN = "admin"
    OWNER = "owner"


class TaskStatus(str, PyEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditAction(str, PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ============================================================
# ORGANIZATIONS
# ============================================================

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, unique=True, nullable=False, index=True)
    # Self-referential; the chain is not guaranteed to be acyclic
    parent_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    organization_id = Column(String, nullable=False, index=True)
    role = Column(SQLEnum(Role), default=Role.VIEWER, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    """A unit of work owned by exactly one organization"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.TODO, nullable=False)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    category = Column(String, nullable=True)

    # Immutable after creation
    organization_id = Column(String, nullable=False, index=True)
    created_by_id = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_task_org_created", "organization_id", "created_at"),
    )


# ============================================================
# AUDIT LOGS (append-only)
# ============================================================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, nullable=False, index=True)
    organization_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    resource = Column(String, nullable=False)
    resource_id = Column(String, nullable=False, index=True)
    details = Column(Text, nullable=True)
    previous_state = Column(Text, nullable=True)
    new_state = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("idx_audit_org_timestamp", "organization_id", "timestamp"),
    )
