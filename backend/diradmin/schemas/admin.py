"""Admin API request/response schemas.

Pydantic models for the user directory endpoints: user projections, list
envelopes, command bodies and organization statistics.

JSON keys are camelCase (CamelModel). Request bodies use extra="forbid" to
reject unexpected fields; required-field checks that carry a specific
message (email, password, role) are done in the command handlers so every
scope reports them the same way.
"""

import uuid
from datetime import datetime

from pydantic import ConfigDict, field_validator

from diradmin.core.responses import CamelModel, PaginationMeta

_MAX_SEARCH_LEN = 200
_MAX_BAN_REASON_LEN = 500


class _RequestModel(CamelModel):
    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Projections
# =============================================================================


class UserProjection(CamelModel):
    """Credential-stripped view of a user.

    Attributes:
        id: User id.
        email: Email address.
        username: Handle, if set.
        name: Display name.
        role: Current role.
        banned: Ban flag.
        is_enabled: Logical negation of banned.
        email_verified: Whether the email is verified.
        membership_expires_at: Access expiry, None for unlimited.
        organization: Organization id, if any.
        organization_name: Organization display name when resolved.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        last_login_at: Last login.
        last_activity: Same as last_login_at.
    """

    id: uuid.UUID
    email: str
    username: str | None = None
    name: str | None = None
    role: str
    banned: bool
    is_enabled: bool
    email_verified: bool
    membership_expires_at: datetime | None = None
    organization: uuid.UUID | None = None
    organization_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None
    last_activity: datetime | None = None


class UserListResponse(CamelModel):
    """List envelope returned by GET /admin/users."""

    users: list[UserProjection]
    total_users: int
    total_pages: int
    current_page: int
    page_size: int
    pagination: PaginationMeta


class UserCommandResponse(CamelModel):
    """Acknowledgement carrying the affected user."""

    message: str
    user: UserProjection


# =============================================================================
# Commands
# =============================================================================


class UserCreate(_RequestModel):
    """Request schema for POST /admin/users.

    Email and password are validated by the handler so that missing values
    produce a 400 with a specific message.
    """

    email: str | None = None
    password: str | None = None
    username: str | None = None
    name: str | None = None
    role: str | None = None
    membership_expires_at: datetime | None = None

    @field_validator("email", "username", "name")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class PasswordReset(_RequestModel):
    """Request schema for PUT /admin/users/{id}/password."""

    password: str | None = None


class RoleChange(_RequestModel):
    """Request schema for PUT /admin/users/{id}/role."""

    role: str | None = None


class BanStatusUpdate(_RequestModel):
    """Request schema for PUT /admin/users/{id}/status and /ban."""

    banned: bool | None = None
    reason: str | None = None

    @field_validator("reason")
    @classmethod
    def check_reason_length(cls, v: str | None) -> str | None:
        if v is not None and len(v) > _MAX_BAN_REASON_LEN:
            msg = f"reason must be at most {_MAX_BAN_REASON_LEN} characters"
            raise ValueError(msg)
        return v


class UserUpdate(_RequestModel):
    """Request schema for PUT /admin/users/{id}.

    An explicit null membershipExpiresAt clears the expiration; omitting the
    key leaves it unchanged. Use ``model_fields_set`` to tell them apart.
    """

    name: str | None = None
    membership_expires_at: datetime | None = None


class OrganizationMembershipRequest(_RequestModel):
    """Request schema for POST /admin/users/organization/add and /remove.

    Global administrators send user_id with organization_id (omit it to
    remove). Organization administrators send email to add and user_id to
    remove.
    """

    user_id: uuid.UUID | None = None
    organization_id: uuid.UUID | None = None
    email: str | None = None


def clamp_search(value: str | None) -> str | None:
    """Trim a raw search term; blank means no search."""
    if value is None:
        return None
    value = value.strip()[:_MAX_SEARCH_LEN]
    return value or None


# =============================================================================
# Organization statistics
# =============================================================================


class OrganizationSummary(CamelModel):
    id: uuid.UUID
    name: str
    code: str
    created_at: datetime | None = None


class MembershipTotals(CamelModel):
    total_users: int
    active_users: int
    expired_users: int
    unlimited_users: int
    expiring_soon: int
    org_admins: int


class GrowthStats(CamelModel):
    new_today: int
    new_this_week: int
    new_this_month: int


class ActivityStats(CamelModel):
    total_conversations: int
    conversations_today: int
    conversations_this_week: int


class MembershipDistribution(CamelModel):
    unlimited: int
    active: int
    expiring_soon: int
    expired: int


class OrganizationStatsResponse(CamelModel):
    """Response for GET /admin/organization/stats."""

    organization: OrganizationSummary
    totals: MembershipTotals
    growth: GrowthStats
    activity: ActivityStats
    recent_users: list[UserProjection]
    membership_distribution: MembershipDistribution
