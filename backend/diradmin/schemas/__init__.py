"""Pydantic request/response schemas for API endpoints."""

from diradmin.schemas.admin import (
    BanStatusUpdate,
    OrganizationMembershipRequest,
    OrganizationStatsResponse,
    PasswordReset,
    RoleChange,
    UserCommandResponse,
    UserCreate,
    UserListResponse,
    UserProjection,
    UserUpdate,
)

__all__ = [
    # Directory listing
    "UserListResponse",
    "UserProjection",
    # User commands
    "BanStatusUpdate",
    "PasswordReset",
    "RoleChange",
    "UserCommandResponse",
    "UserCreate",
    "UserUpdate",
    # Organizations
    "OrganizationMembershipRequest",
    "OrganizationStatsResponse",
]
