# audit_service.py — Append-only audit trail scoped per organization
import json
import logging
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import PermissionDeniedError
from models import AuditLog
from rbac import can_view_audit_log

logger = logging.getLogger("taskgrid.audit")

# Hard truncation; there is no pagination beyond the newest entries
AUDIT_LOG_LIMIT = 100


def serialize_payload(value: Any) -> Optional[str]:
    """Stable JSON text for a snapshot or details payload (None stays None)"""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, default=str)


def deserialize_payload(text: Optional[str]) -> Any:
    if text is None:
        return None
    return json.loads(text)


class AuditService:
    """Writes and reads audit entries. No update or delete is exposed."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        actor_id: str,
        organization_id: str,
        action: str,
        resource: str,
        resource_id: str,
        details: Any = None,
        previous_state: Any = None,
        new_state: Any = None,
        commit: bool = True,
    ) -> AuditLog:
        """Append one entry and return it.

        With ``commit=False`` the entry is only flushed, so the caller can
        commit it in the same transaction as the mutation it describes.
        """
        entry = AuditLog(
            user_id=actor_id,
            organization_id=organization_id,
            action=getattr(action, "value", action),
            resource=resource,
            resource_id=resource_id,
            details=serialize_payload(details),
            previous_state=serialize_payload(previous_state),
            new_state=serialize_payload(new_state),
        )
        self.db.add(entry)
        if commit:
            await self.db.commit()
            await self.db.refresh(entry)
        else:
            await self.db.flush()

        logger.info(
            f"audit {entry.action} {resource}/{resource_id} "
            f"by {actor_id} [org={organization_id}]"
        )
        return entry

    async def get_audit_log(self, principal) -> List[AuditLog]:
        if not can_view_audit_log(principal.role):
            logger.warning(f"Audit log read denied for {principal.id} (role={principal.role})")
            raise PermissionDeniedError("Insufficient permissions to view audit log.")

        stmt = (
            select(AuditLog)
            .where(AuditLog.organization_id == principal.organization_id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(AUDIT_LOG_LIMIT)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
