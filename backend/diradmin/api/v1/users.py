"""Admin user directory endpoints.

Mounted at /api/v1/admin/users. Every endpoint resolves the operator's
scope (global or organization) through the Scope dependency; the same
route shape serves both roles.

The organization/add and organization/remove routes are declared before
the /{user_id} routes so they are not captured by the path parameter.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from diradmin.api.deps import DbSession, Scope
from diradmin.core.config import settings
from diradmin.core.pagination import PaginationParams, pagination_params
from diradmin.core.rate_limiting import limiter
from diradmin.core.responses import MessageResponse
from diradmin.schemas.admin import (
    BanStatusUpdate,
    OrganizationMembershipRequest,
    PasswordReset,
    RoleChange,
    UserCommandResponse,
    UserCreate,
    UserListResponse,
    UserProjection,
    UserUpdate,
    clamp_search,
)
from diradmin.services.directory_query import DirectoryQuery

router = APIRouter()

# =============================================================================
# Shared types
# =============================================================================

Pagination = Annotated[PaginationParams, Depends(pagination_params)]
SearchParam = Annotated[str | None, Query(description="Search email, username, name")]
RoleParam = Annotated[str | None, Query(description="Filter by role")]
StatusParam = Annotated[str | None, Query(alias="status", description="Filter by status")]
OrganizationParam = Annotated[
    str | None, Query(description="Organization id or 'none' (global admins)")
]
SortByParam = Annotated[str | None, Query(alias="sortBy", description="Sort field")]
SortOrderParam = Annotated[str | None, Query(alias="sortOrder", description="asc or desc")]


# =============================================================================
# Queries
# =============================================================================


@router.get("")
async def list_users(
    scope: Scope,
    pagination: Pagination,
    search: SearchParam = None,
    role: RoleParam = None,
    status_filter: StatusParam = None,
    organization: OrganizationParam = None,
    sort_by: SortByParam = None,
    sort_order: SortOrderParam = None,
) -> UserListResponse:
    """List users visible to the operator.

    Unknown role, status and sort values are ignored; page and limit are
    clamped rather than rejected.
    """
    query = DirectoryQuery(
        search=clamp_search(search),
        role=role,
        organization=organization,
        status=status_filter,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await scope.list_users(query, pagination)


# =============================================================================
# Organization membership
# =============================================================================


@router.post("/organization/add")
async def add_to_organization(
    scope: Scope,
    db: DbSession,
    body: OrganizationMembershipRequest,
) -> UserProjection:
    """Attach a user to an organization.

    Global admins send {userId, organizationId}; organization admins send
    {email} and always add to their own organization.
    """
    user = await scope.add_to_organization(body)
    await db.commit()
    return user


@router.post("/organization/remove")
async def remove_from_organization(
    scope: Scope,
    db: DbSession,
    body: OrganizationMembershipRequest,
) -> UserProjection:
    """Detach a user from its organization."""
    user = await scope.remove_from_organization(body)
    await db.commit()
    return user


# =============================================================================
# Users
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_create_user)
async def create_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    scope: Scope,
    db: DbSession,
    body: UserCreate,
) -> UserCommandResponse:
    """Create a pre-verified user.

    Organization admins always create USER accounts in their own
    organization.
    """
    user = await scope.create_user(body)
    await db.commit()
    return UserCommandResponse(message="User created successfully", user=user)


@router.get("/{user_id}")
async def get_user(scope: Scope, user_id: uuid.UUID) -> UserProjection:
    """Fetch one user."""
    return await scope.get_user(user_id)


@router.put("/{user_id}/password")
async def reset_password(
    scope: Scope,
    db: DbSession,
    user_id: uuid.UUID,
    body: PasswordReset,
) -> MessageResponse:
    """Replace a user's password."""
    await scope.reset_password(user_id, body.password)
    await db.commit()
    return MessageResponse(message="Password reset successfully")


@router.put("/{user_id}/role")
async def change_role(
    scope: Scope,
    db: DbSession,
    user_id: uuid.UUID,
    body: RoleChange,
) -> UserCommandResponse:
    """Change a user's role (global admins only)."""
    user = await scope.change_role(user_id, body.role)
    await db.commit()
    return UserCommandResponse(message="User role updated successfully", user=user)


@router.put("/{user_id}/status")
async def set_ban_status(
    scope: Scope,
    user_id: uuid.UUID,
    body: BanStatusUpdate,
) -> UserProjection:
    """Ban or unban a user (global admins only). Banning ends all sessions."""
    return await scope.set_ban_status(user_id, body.banned, body.reason)


@router.put("/{user_id}/ban")
async def ban_user(
    scope: Scope,
    user_id: uuid.UUID,
    body: BanStatusUpdate,
) -> UserProjection:
    """Ban or unban a user with an optional reason.

    banned defaults to true when omitted.
    """
    banned = True if body.banned is None else body.banned
    return await scope.set_ban_status(user_id, banned, body.reason)


@router.put("/{user_id}")
async def update_user(
    scope: Scope,
    db: DbSession,
    user_id: uuid.UUID,
    body: UserUpdate,
) -> UserProjection:
    """Update name and/or membership expiration."""
    user = await scope.update_user(user_id, body)
    await db.commit()
    return user


@router.delete("/{user_id}")
@limiter.limit(settings.rate_limit_delete_user)
async def delete_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    scope: Scope,
    db: DbSession,
    user_id: uuid.UUID,
) -> MessageResponse:
    """Delete a user after best-effort cleanup of its resources."""
    await scope.delete_user(user_id)
    await db.commit()
    return MessageResponse(message="User deleted successfully")
