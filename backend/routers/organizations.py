# routers/organizations.py — Organization listing and the caller's hierarchy
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import Principal, get_current_user
from database import get_db_session
from models import Organization
from organization_service import OrganizationService

router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


# --- Schemas ---

class OrgOut(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None
    created_at: str


class CurrentOrgOut(OrgOut):
    lineage: List[OrgOut] = []


# --- Helpers ---

def _org_to_out(o: Organization) -> OrgOut:
    return OrgOut(
        id=o.id,
        name=o.name,
        parent_id=o.parent_id,
        created_at=o.created_at.isoformat() if o.created_at else "",
    )


# --- Endpoints ---

@router.get("", response_model=List[OrgOut])
async def list_organizations(db: AsyncSession = Depends(get_db_session)):
    """List all organizations by name (public, used by the registration form)"""
    orgs = await OrganizationService(db).list_all()
    return [_org_to_out(o) for o in orgs]


@router.get("/current", response_model=CurrentOrgOut)
async def get_current_organization(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """The caller's organization with its ancestors, nearest first"""
    chain = await OrganizationService(db).lineage(principal.organization_id)
    current = _org_to_out(chain[0])
    return CurrentOrgOut(
        **current.model_dump(),
        lineage=[_org_to_out(o) for o in chain[1:]],
    )
