"""Role-scoped admin command handlers.

The caller's role is resolved once per request into one of two scopes:

- GlobalAdminScope: ADMIN operators, every user and organization.
- OrgAdminScope: ORG_ADMIN operators, users of their own organization only.

Both implement the same command interface. Guards run in a fixed order:

1. Self-modification (status, role, delete, update, organization removal).
2. Target lookup (404).
3. Privilege immutability: ADMIN targets cannot be changed by any command.
4. Organization boundary (org scope): target must be in the caller's
   organization, otherwise 403.

Ban and role change are rejected up front in the organization scope.

Transactions: handlers flush; the request session commits. Ban and the
organization-scoped password reset commit first so the follow-up session
invalidation (own session, best-effort) sees the committed change.
"""

import logging
import uuid
from abc import ABC, abstractmethod

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diradmin.core.auth import hash_password, validate_password
from diradmin.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from diradmin.core.pagination import PaginationParams
from diradmin.models.user import KNOWN_ROLES, SystemRole, User
from diradmin.repositories.organization_repository import OrganizationRepository
from diradmin.repositories.user_repository import UserRepository
from diradmin.schemas.admin import (
    OrganizationMembershipRequest,
    OrganizationStatsResponse,
    UserCreate,
    UserListResponse,
    UserProjection,
    UserUpdate,
)
from diradmin.services.cascade_cleanup import CascadeCleanup, CleanupStep
from diradmin.services.directory_query import (
    DirectoryQuery,
    global_predicates,
    organization_predicates,
    run_directory_query,
)
from diradmin.services.membership import MembershipCoordinator
from diradmin.services.organization_stats import get_organization_stats
from diradmin.services.session_invalidation import invalidate_sessions
from diradmin.services.user_projection import project_user

logger = logging.getLogger(__name__)

_MSG_ADMIN_IMMUTABLE = "Cannot modify an administrator account"
_MSG_ORG_BOUNDARY = "User is not in your organization"
_MSG_ORG_NO_BAN = "Use expiration to manage access"
_MSG_ORG_NO_ROLE = "Org Admin cannot change roles"


def _require_email(email: str | None) -> str:
    if not email:
        raise ValidationError("Email is required")
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("Invalid email address")
    return email.lower()


def _require_role(role: str | None) -> str:
    if role not in KNOWN_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {', '.join(sorted(KNOWN_ROLES))}"
        )
    return role


class AdminScope(ABC):
    """Shared command interface and guard chain.

    Args:
        db: Request-scoped async session.
        actor: Authenticated operator.
        session_factory: Factory for independent sessions (cleanup, session
            invalidation).
        cleanup_steps: Override the cascade cleanup steps (tests).
    """

    def __init__(
        self,
        db: AsyncSession,
        actor: User,
        session_factory: async_sessionmaker[AsyncSession],
        cleanup_steps: list[CleanupStep] | None = None,
    ) -> None:
        self._db = db
        self.actor = actor
        self._session_factory = session_factory
        self._cleanup_steps = cleanup_steps
        self._membership = MembershipCoordinator(db)

    # -----------------------------------------------------------------------
    # Guards
    # -----------------------------------------------------------------------

    def _reject_self(self, user_id: uuid.UUID, action: str) -> None:
        if user_id == self.actor.id:
            raise ForbiddenError(
                f"Cannot {action} your own account", code="SELF_MODIFICATION"
            )

    async def _load(self, user_id: uuid.UUID) -> User:
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    @staticmethod
    def _reject_admin(target: User) -> None:
        if target.role == SystemRole.ADMIN.value:
            raise ForbiddenError(_MSG_ADMIN_IMMUTABLE, code="ADMIN_IMMUTABLE")

    def _check_boundary(self, target: User) -> None:
        """Scope-specific visibility check. Global scope sees everyone."""

    async def _guarded_target(
        self, user_id: uuid.UUID, *, self_action: str | None = None
    ) -> User:
        """Run the guard chain and return the loaded target.

        Args:
            user_id: Target user id.
            self_action: Verb for the self-modification message. None skips
                the self guard (password reset).
        """
        if self_action is not None:
            self._reject_self(user_id, self_action)
        target = await self._load(user_id)
        self._reject_admin(target)
        self._check_boundary(target)
        return target

    async def _project(self, user: User) -> UserProjection:
        name = None
        if user.organization_id is not None:
            names = await OrganizationRepository.names_by_id(
                self._db, [user.organization_id]
            )
            name = names.get(user.organization_id)
        return project_user(user, name)

    def _audit(self, action: str, target: User) -> None:
        logger.info(
            "%s %s %s user %s",
            self.actor.role,
            self.actor.email,
            action,
            target.email,
        )

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @abstractmethod
    async def list_users(
        self, query: DirectoryQuery, pagination: PaginationParams
    ) -> UserListResponse:
        """List users visible to this scope."""

    async def get_user(self, user_id: uuid.UUID) -> UserProjection:
        """Fetch one user visible to this scope.

        Raises:
            NotFoundError: User does not exist.
            ForbiddenError: User is outside the caller's organization.
        """
        target = await self._load(user_id)
        self._check_boundary(target)
        return await self._project(target)

    # -----------------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------------

    async def _insert_user(
        self,
        *,
        email: str,
        password: str,
        username: str | None,
        name: str | None,
        role: str,
        organization_id: uuid.UUID | None,
        body: UserCreate,
    ) -> User:
        if await UserRepository.find_conflict(self._db, email=email, username=username):
            raise ConflictError(
                code="USER_EXISTS",
                message="User with this email or username already exists",
            )
        try:
            user = await UserRepository.create(
                self._db,
                email=email,
                password_hash=hash_password(password),
                username=username,
                name=name,
                role=role,
                organization_id=organization_id,
                membership_expires_at=body.membership_expires_at,
            )
        except IntegrityError as exc:
            raise ConflictError(
                code="USER_EXISTS",
                message="User with this email or username already exists",
            ) from exc
        self._audit("created", user)
        return user

    @abstractmethod
    async def create_user(self, body: UserCreate) -> UserProjection:
        """Create a user in this scope."""

    @abstractmethod
    async def reset_password(self, user_id: uuid.UUID, password: str | None) -> None:
        """Replace a user's password."""

    @abstractmethod
    async def change_role(self, user_id: uuid.UUID, role: str | None) -> UserProjection:
        """Change a user's role."""

    @abstractmethod
    async def set_ban_status(
        self,
        user_id: uuid.UUID,
        banned: bool | None,
        reason: str | None = None,
    ) -> UserProjection:
        """Ban or unban a user."""

    async def update_user(self, user_id: uuid.UUID, body: UserUpdate) -> UserProjection:
        """Update name and/or membership expiration.

        An explicit null membershipExpiresAt clears the expiration.

        Raises:
            ValidationError: No updatable field supplied, or blank name.
            ForbiddenError: Self, administrator or out-of-organization target.
            NotFoundError: User does not exist.
        """
        fields = {}
        if "name" in body.model_fields_set and body.name is not None:
            name = body.name.strip()
            if not name:
                raise ValidationError("Name cannot be empty")
            fields["name"] = name
        if "membership_expires_at" in body.model_fields_set:
            fields["membership_expires_at"] = body.membership_expires_at
        if not fields:
            raise ValidationError("No updatable fields provided")

        target = await self._guarded_target(user_id, self_action="update")
        await UserRepository.update(self._db, target, **fields)
        self._audit(f"updated {sorted(fields)} of", target)
        return await self._project(target)

    async def _before_delete(self, target: User) -> None:
        """Scope-specific delete restrictions."""

    async def delete_user(self, user_id: uuid.UUID) -> None:
        """Delete a user after best-effort cleanup of its resources.

        Cleanup steps run concurrently in their own sessions; the user row is
        removed only after every step has settled, whatever the outcome.

        Raises:
            ForbiddenError: Self, administrator or out-of-organization target.
            NotFoundError: User does not exist.
        """
        target = await self._guarded_target(user_id, self_action="delete")
        await self._before_delete(target)

        cleanup = CascadeCleanup(self._session_factory, self._cleanup_steps)
        await cleanup.run(target.id)

        await self._db.delete(target)
        await self._db.flush()
        self._audit("deleted", target)

    @abstractmethod
    async def add_to_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        """Attach a user to an organization."""

    @abstractmethod
    async def remove_from_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        """Detach a user from its organization."""

    async def organization_stats(self) -> OrganizationStatsResponse:
        """Dashboard statistics. Only meaningful for organization admins."""
        raise ForbiddenError("Organization admin access required", code="ORG_ADMIN_REQUIRED")


class GlobalAdminScope(AdminScope):
    """Commands available to ADMIN operators."""

    async def list_users(
        self, query: DirectoryQuery, pagination: PaginationParams
    ) -> UserListResponse:
        return await run_directory_query(
            self._db,
            global_predicates(query),
            pagination,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            resolve_organization_names=True,
        )

    async def create_user(self, body: UserCreate) -> UserProjection:
        email = _require_email(body.email)
        password = validate_password(body.password)
        role = _require_role(body.role) if body.role else SystemRole.USER.value
        user = await self._insert_user(
            email=email,
            password=password,
            username=body.username,
            name=body.name,
            role=role,
            organization_id=None,
            body=body,
        )
        return project_user(user)

    async def reset_password(self, user_id: uuid.UUID, password: str | None) -> None:
        password = validate_password(password)
        target = await self._guarded_target(user_id)
        target.password_hash = hash_password(password)
        await self._db.flush()
        self._audit("reset password of", target)

    async def change_role(self, user_id: uuid.UUID, role: str | None) -> UserProjection:
        role = _require_role(role)
        target = await self._guarded_target(user_id, self_action="change the role of")
        target.role = role
        await self._db.flush()
        await self._db.refresh(target)
        self._audit(f"changed role to {role} for", target)
        return await self._project(target)

    async def set_ban_status(
        self,
        user_id: uuid.UUID,
        banned: bool | None,
        reason: str | None = None,
    ) -> UserProjection:
        if not isinstance(banned, bool):
            raise ValidationError("banned must be a boolean")
        target = await self._guarded_target(
            user_id, self_action="change the status of"
        )
        target.banned = banned
        target.ban_reason = reason if banned else None
        await self._db.commit()
        await self._db.refresh(target)
        self._audit("banned" if banned else "unbanned", target)

        if banned:
            await invalidate_sessions(self._session_factory, target.id)
        return await self._project(target)

    async def add_to_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        return await self._membership.assign(
            self.actor, body.user_id, body.organization_id
        )

    async def remove_from_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        return await self._membership.assign(self.actor, body.user_id, None)


class OrgAdminScope(AdminScope):
    """Commands available to ORG_ADMIN operators, pinned to one organization."""

    def __init__(
        self,
        db: AsyncSession,
        actor: User,
        session_factory: async_sessionmaker[AsyncSession],
        cleanup_steps: list[CleanupStep] | None = None,
    ) -> None:
        if actor.organization_id is None:
            raise ForbiddenError("Admin not in an organization", code="NO_ORGANIZATION")
        super().__init__(db, actor, session_factory, cleanup_steps)
        self.organization_id: uuid.UUID = actor.organization_id

    def _check_boundary(self, target: User) -> None:
        # ADMIN users are invisible to this scope even when they carry an org.
        if (
            target.organization_id != self.organization_id
            or target.role == SystemRole.ADMIN.value
        ):
            raise ForbiddenError(_MSG_ORG_BOUNDARY, code="ORGANIZATION_BOUNDARY")

    async def list_users(
        self, query: DirectoryQuery, pagination: PaginationParams
    ) -> UserListResponse:
        result = await run_directory_query(
            self._db,
            organization_predicates(query, self.organization_id),
            pagination,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
        )
        org = await OrganizationRepository.get_by_id(self._db, self.organization_id)
        if org is not None:
            for user in result.users:
                user.organization_name = org.name
        return result

    async def create_user(self, body: UserCreate) -> UserProjection:
        email = _require_email(body.email)
        password = validate_password(body.password)
        username = body.username or email.split("@", 1)[0]
        name = body.name or username
        user = await self._insert_user(
            email=email,
            password=password,
            username=username,
            name=name,
            role=SystemRole.USER.value,
            organization_id=self.organization_id,
            body=body,
        )
        return await self._project(user)

    async def reset_password(self, user_id: uuid.UUID, password: str | None) -> None:
        password = validate_password(password)
        target = await self._guarded_target(user_id)
        if target.role == SystemRole.ORG_ADMIN.value:
            raise ForbiddenError(
                "Cannot reset the password of an organization admin",
                code="ORG_ADMIN_PROTECTED",
            )
        target.password_hash = hash_password(password)
        await self._db.commit()
        self._audit("reset password of", target)
        await invalidate_sessions(self._session_factory, target.id)

    async def change_role(self, user_id: uuid.UUID, role: str | None) -> UserProjection:
        raise ForbiddenError(_MSG_ORG_NO_ROLE, code="SCOPE_RESTRICTED")

    async def set_ban_status(
        self,
        user_id: uuid.UUID,
        banned: bool | None,
        reason: str | None = None,
    ) -> UserProjection:
        raise ForbiddenError(_MSG_ORG_NO_BAN, code="SCOPE_RESTRICTED")

    async def _before_delete(self, target: User) -> None:
        if target.role == SystemRole.ORG_ADMIN.value:
            raise ForbiddenError(
                "Cannot delete an organization admin", code="ORG_ADMIN_PROTECTED"
            )

    async def add_to_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        return await self._membership.add_by_email(self.actor, body.email)

    async def remove_from_organization(
        self, body: OrganizationMembershipRequest
    ) -> UserProjection:
        return await self._membership.remove_from_organization(self.actor, body.user_id)

    async def organization_stats(self) -> OrganizationStatsResponse:
        return await get_organization_stats(self._db, self.organization_id)
