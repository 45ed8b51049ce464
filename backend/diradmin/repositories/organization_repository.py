"""Repository for Organization lookups."""

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from diradmin.models.organization import Organization


class OrganizationRepository:
    """Stateless repository for Organization table operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, org_id: uuid.UUID) -> Organization | None:
        """Fetch an organization by primary key."""
        return await db.get(Organization, org_id)

    @staticmethod
    async def names_by_id(
        db: AsyncSession, org_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, str]:
        """Resolve organization names in one query.

        Args:
            db: Async database session.
            org_ids: Organization ids to resolve. Duplicates are collapsed.

        Returns:
            Mapping of id to name. Unknown ids are absent from the mapping.
        """
        ids = set(org_ids)
        if not ids:
            return {}
        stmt = select(Organization.id, Organization.name).where(
            Organization.id.in_(ids)
        )
        result = await db.execute(stmt)
        return {row.id: row.name for row in result}
