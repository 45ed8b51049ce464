"""Credential-stripped user projection.

Every admin response goes through project_user(). The projection is built
from an explicit field list, so password hash, TOTP secret and backup codes
can never leak regardless of which columns were loaded.
"""

from diradmin.models.user import User
from diradmin.schemas.admin import UserProjection


def project_user(user: User, organization_name: str | None = None) -> UserProjection:
    """Build the public projection of a user.

    Args:
        user: Loaded user row.
        organization_name: Display name of the user's organization, when known.

    Returns:
        UserProjection with derived is_enabled and last_activity fields.
    """
    return UserProjection(
        id=user.id,
        email=user.email,
        username=user.username,
        name=user.name,
        role=user.role,
        banned=bool(user.banned),
        is_enabled=not user.banned,
        email_verified=bool(user.email_verified),
        membership_expires_at=user.membership_expires_at,
        organization=user.organization_id,
        organization_name=organization_name if user.organization_id else None,
        created_at=user.created_at,
        updated_at=user.updated_at,
        last_login_at=user.last_login_at,
        last_activity=user.last_login_at,
    )
