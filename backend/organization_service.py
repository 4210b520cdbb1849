# organization_service.py — Organization lookup, registration reuse and hierarchy walks
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFoundError
from models import Organization

logger = logging.getLogger("taskgrid.organizations")


class OrganizationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_all(self) -> List[Organization]:
        stmt = select(Organization).order_by(Organization.name.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, org_id: str) -> Organization:
        org = await self.db.get(Organization, org_id)
        if not org:
            raise NotFoundError("Organization not found")
        return org

    async def find_by_name(self, name: str) -> Optional[Organization]:
        stmt = select(Organization).where(Organization.name == name)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_or_create(self, name: str) -> Organization:
        """Reuse the organization called ``name``, creating a root one if absent.

        Must run before anything else is pending in the session: losing a
        race on the unique name rolls the session back and re-reads the row.
        """
        org = await self.find_by_name(name)
        if org:
            return org

        org = Organization(name=name, parent_id=None)
        self.db.add(org)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.find_by_name(name)
            if not existing:
                raise
            logger.info(f"Organization {name} created concurrently; reusing {existing.id}")
            return existing
        logger.info(f"Organization {org.id} created ({name})")
        return org

    async def lineage(self, org_id: str) -> List[Organization]:
        """The organization followed by its ancestors, nearest first.

        parent_id is not constrained, so the walk stops at a dangling parent
        and at the first id it has already visited.
        """
        org = await self.get(org_id)
        chain = [org]
        seen = {org.id}
        current_id = org.parent_id
        while current_id and current_id not in seen:
            seen.add(current_id)
            org = await self.db.get(Organization, current_id)
            if not org:
                break
            chain.append(org)
            current_id = org.parent_id
        return chain
