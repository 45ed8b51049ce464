"""Organization admin dashboard endpoint.

Mounted at /api/v1/admin/organization.
"""

from fastapi import APIRouter

from diradmin.api.deps import Scope
from diradmin.schemas.admin import OrganizationStatsResponse

router = APIRouter()


@router.get("/stats")
async def organization_stats(scope: Scope) -> OrganizationStatsResponse:
    """Membership, growth and activity numbers for the operator's organization.

    Organization admins only; global admins receive 403.
    """
    return await scope.organization_stats()
