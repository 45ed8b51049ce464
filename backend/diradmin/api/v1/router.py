"""API v1 router aggregator.

URL structure with /api/v1 prefix. All admin routers live under /admin.
"""

from fastapi import APIRouter

from diradmin.api.v1 import organization, users

router = APIRouter()

# =============================================================================
# Admin
# =============================================================================

_ADMIN_PREFIX = "/admin"

router.include_router(users.router, prefix=f"{_ADMIN_PREFIX}/users", tags=["admin"])
router.include_router(
    organization.router,
    prefix=f"{_ADMIN_PREFIX}/organization",
    tags=["admin"],
)
