"""Organization membership coordinator.

Maintains the single-organization-per-user invariant. Three write paths
converge on User.organization_id:

- assign(): global administrators set or clear a user's organization by id.
- add_by_email(): organization administrators pull an unattached user into
  their own organization.
- remove_from_organization(): organization administrators detach a member
  of their own organization.

Each path returns the credential-stripped projection, with the organization
name filled in when the user ends up in one.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from diradmin.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from diradmin.models.user import SystemRole, User
from diradmin.repositories.organization_repository import OrganizationRepository
from diradmin.repositories.user_repository import UserRepository
from diradmin.schemas.admin import UserProjection
from diradmin.services.user_projection import project_user

logger = logging.getLogger(__name__)

_MSG_ADMIN_IMMUTABLE = "Cannot change organization of an administrator"


class MembershipCoordinator:
    """Organization assignment and removal.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _load_user(self, user_id: uuid.UUID) -> User:
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    async def _project(self, user: User) -> UserProjection:
        name = None
        if user.organization_id is not None:
            names = await OrganizationRepository.names_by_id(
                self._db, [user.organization_id]
            )
            name = names.get(user.organization_id)
        return project_user(user, name)

    async def _save(self, user: User) -> User:
        await self._db.flush()
        await self._db.refresh(user)
        return user

    async def assign(
        self,
        actor: User,
        user_id: uuid.UUID | None,
        organization_id: uuid.UUID | None,
    ) -> UserProjection:
        """Set or clear a user's organization (global scope).

        Args:
            actor: Global administrator performing the change.
            user_id: Target user.
            organization_id: Organization to assign. None removes the user
                from its current organization.

        Returns:
            Updated projection.

        Raises:
            ValidationError: userId missing, or NOT_A_MEMBER when removing a
                user that has no organization.
            NotFoundError: User or organization does not exist.
            ForbiddenError: Target is an administrator.
            ConflictError: ALREADY_MEMBER when assigning the current organization.
        """
        if user_id is None:
            raise ValidationError("userId is required")

        user = await self._load_user(user_id)
        if user.role == SystemRole.ADMIN.value:
            raise ForbiddenError(_MSG_ADMIN_IMMUTABLE, code="ADMIN_IMMUTABLE")

        if organization_id is None:
            if user.organization_id is None:
                raise ValidationError(
                    "User is not a member of any organization", code="NOT_A_MEMBER"
                )
            previous = user.organization_id
            user.organization_id = None
            await self._save(user)
            logger.info(
                "Admin %s removed %s from organization %s",
                actor.email,
                user.email,
                previous,
            )
            return project_user(user)

        org = await OrganizationRepository.get_by_id(self._db, organization_id)
        if org is None:
            raise NotFoundError("Organization", str(organization_id))
        if user.organization_id == org.id:
            raise ConflictError(
                code="ALREADY_MEMBER",
                message="User is already a member of this organization",
            )

        user.organization_id = org.id
        await self._save(user)
        logger.info(
            "Admin %s assigned %s to organization %s", actor.email, user.email, org.code
        )
        return project_user(user, org.name)

    async def add_by_email(self, actor: User, email: str | None) -> UserProjection:
        """Attach an unaffiliated user to the caller's organization.

        Args:
            actor: Organization administrator. Its organization is the only
                possible destination.
            email: Email of the user to add.

        Returns:
            Updated projection with the caller's organization set.

        Raises:
            ValidationError: Email missing.
            NotFoundError: No user with that email.
            ForbiddenError: Target is an administrator.
            ConflictError: ALREADY_IN_YOUR_ORGANIZATION or
                ALREADY_IN_OTHER_ORGANIZATION.
        """
        if not email or not email.strip():
            raise ValidationError("Email is required")

        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            raise NotFoundError("User")
        if user.role == SystemRole.ADMIN.value:
            raise ForbiddenError(_MSG_ADMIN_IMMUTABLE, code="ADMIN_IMMUTABLE")
        if user.organization_id == actor.organization_id:
            raise ConflictError(
                code="ALREADY_IN_YOUR_ORGANIZATION",
                message="User is already in your organization",
            )
        if user.organization_id is not None:
            raise ConflictError(
                code="ALREADY_IN_OTHER_ORGANIZATION",
                message="User already belongs to another organization",
            )

        user.organization_id = actor.organization_id
        await self._save(user)
        logger.info(
            "Org admin %s added %s to organization %s",
            actor.email,
            user.email,
            actor.organization_id,
        )
        return await self._project(user)

    async def remove_from_organization(
        self, actor: User, user_id: uuid.UUID | None
    ) -> UserProjection:
        """Detach a member of the caller's organization.

        Raises:
            ValidationError: userId missing.
            ForbiddenError: Target is the caller, an administrator, outside
                the caller's organization, or an organization administrator.
            NotFoundError: User does not exist.
        """
        if user_id is None:
            raise ValidationError("userId is required")
        if user_id == actor.id:
            raise ForbiddenError(
                "Cannot remove yourself from the organization", code="SELF_MODIFICATION"
            )

        user = await self._load_user(user_id)
        if user.role == SystemRole.ADMIN.value:
            raise ForbiddenError(_MSG_ADMIN_IMMUTABLE, code="ADMIN_IMMUTABLE")
        if user.organization_id != actor.organization_id:
            raise ForbiddenError(
                "User is not in your organization", code="ORGANIZATION_BOUNDARY"
            )
        if user.role == SystemRole.ORG_ADMIN.value:
            raise ForbiddenError(
                "Cannot remove another organization admin", code="ORG_ADMIN_PROTECTED"
            )

        user.organization_id = None
        await self._save(user)
        logger.info(
            "Org admin %s removed %s from organization %s",
            actor.email,
            user.email,
            actor.organization_id,
        )
        return project_user(user)
