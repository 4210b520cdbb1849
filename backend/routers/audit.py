# routers/audit.py — Organization audit trail (owner only)
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from audit_service import AuditService, deserialize_payload
from auth import Principal, require
from database import get_db_session
from models import AuditLog, Role
from rbac import Requirement

router = APIRouter(prefix="/api/v1/audit-log", tags=["Audit"])

VIEW_AUDIT_LOG = Requirement.roles(Role.OWNER)


class AuditLogOut(BaseModel):
    id: str
    user_id: str
    organization_id: str
    action: str
    resource: str
    resource_id: str
    details: Optional[Any] = None
    previous_state: Optional[Any] = None
    new_state: Optional[Any] = None
    timestamp: Optional[str] = None


def _entry_to_out(entry: AuditLog) -> AuditLogOut:
    return AuditLogOut(
        id=entry.id,
        user_id=entry.user_id,
        organization_id=entry.organization_id,
        action=entry.action,
        resource=entry.resource,
        resource_id=entry.resource_id,
        details=deserialize_payload(entry.details),
        previous_state=deserialize_payload(entry.previous_state),
        new_state=deserialize_payload(entry.new_state),
        timestamp=entry.timestamp.isoformat() if entry.timestamp else None,
    )


@router.get("", response_model=List[AuditLogOut])
async def get_audit_log(
    principal: Principal = Depends(require(VIEW_AUDIT_LOG)),
    db: AsyncSession = Depends(get_db_session),
):
    """Newest audit entries for the caller's organization (max 100)"""
    entries = await AuditService(db).get_audit_log(principal)
    return [_entry_to_out(e) for e in entries]
