"""Tests for the role-scoped admin command handlers.

Covers the guard chain (self, not found, administrator immutability,
organization boundary), scope restrictions, user creation and the
post-commit session invalidation.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diradmin.core.auth import verify_password
from diradmin.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from diradmin.core.pagination import PaginationParams
from diradmin.models import Session, SystemRole, User
from diradmin.schemas.admin import UserCreate, UserUpdate
from diradmin.services.admin_scope import GlobalAdminScope, OrgAdminScope
from diradmin.services.directory_query import DirectoryQuery
from tests.conftest import make_user

_PASSWORD = "correct-horse-battery"  # nosec B105


@pytest.fixture
def global_scope(db_session, global_admin, session_factory) -> GlobalAdminScope:
    return GlobalAdminScope(db_session, global_admin, session_factory)


@pytest.fixture
def org_scope(db_session, org_admin, session_factory) -> OrgAdminScope:
    return OrgAdminScope(db_session, org_admin, session_factory)


async def _add_sessions(db: AsyncSession, user: User, count: int = 2) -> None:
    for _ in range(count):
        db.add(Session(user_id=user.id))
    await db.commit()


async def _session_count(
    session_factory: async_sessionmaker[AsyncSession], user_id: uuid.UUID
) -> int:
    async with session_factory() as db:
        stmt = select(func.count()).select_from(Session).where(Session.user_id == user_id)
        return (await db.execute(stmt)).scalar_one()


async def _reload(
    session_factory: async_sessionmaker[AsyncSession], user_id: uuid.UUID
) -> User | None:
    async with session_factory() as db:
        return await db.get(User, user_id)


# =============================================================================
# Guard chain
# =============================================================================


class TestAdministratorImmutability:
    """ADMIN targets reject every command in both scopes."""

    async def test_global_ban_of_admin_is_forbidden(
        self, db_session, global_scope, session_factory
    ) -> None:
        other_admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError) as exc_info:
            await global_scope.set_ban_status(other_admin.id, True)

        assert exc_info.value.code == "ADMIN_IMMUTABLE"
        reloaded = await _reload(session_factory, other_admin.id)
        assert reloaded.banned is False

    async def test_global_role_change_of_admin_is_forbidden(
        self, db_session, global_scope
    ) -> None:
        other_admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError) as exc_info:
            await global_scope.change_role(other_admin.id, "USER")

        assert exc_info.value.code == "ADMIN_IMMUTABLE"

    async def test_global_password_reset_of_admin_is_forbidden(
        self, db_session, global_scope
    ) -> None:
        other_admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError):
            await global_scope.reset_password(other_admin.id, _PASSWORD)

    async def test_global_delete_of_admin_is_forbidden(
        self, db_session, global_scope, session_factory
    ) -> None:
        other_admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError):
            await global_scope.delete_user(other_admin.id)

        assert await _reload(session_factory, other_admin.id) is not None

    async def test_org_scope_cannot_see_admin_in_its_organization(
        self, db_session, org_scope, organization
    ) -> None:
        admin = await make_user(
            db_session,
            "ops@example.com",
            role=SystemRole.ADMIN,
            organization_id=organization.id,
        )

        with pytest.raises(ForbiddenError):
            await org_scope.get_user(admin.id)
        with pytest.raises(ForbiddenError):
            await org_scope.delete_user(admin.id)
        with pytest.raises(ForbiddenError):
            await org_scope.reset_password(admin.id, _PASSWORD)

    async def test_global_admin_may_read_another_admin(self, db_session, global_scope) -> None:
        other_admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        projection = await global_scope.get_user(other_admin.id)

        assert projection.role == "ADMIN"


class TestSelfModification:
    """Operators cannot act on their own account."""

    @pytest.mark.parametrize(
        ("command", "args"),
        [
            ("set_ban_status", (True,)),
            ("change_role", ("USER",)),
            ("delete_user", ()),
        ],
    )
    async def test_global_self_commands_are_forbidden(
        self, global_scope, global_admin, command, args
    ) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await getattr(global_scope, command)(global_admin.id, *args)

        assert exc_info.value.code == "SELF_MODIFICATION"

    async def test_self_check_runs_before_lookup(self, db_session, session_factory) -> None:
        """A self-targeted command on a vanished row is still 403, not 404."""
        ghost = User(
            id=uuid.uuid4(),
            email="ghost@example.com",
            role=SystemRole.ADMIN.value,
            password_hash="x",  # nosec B106
        )
        scope = GlobalAdminScope(db_session, ghost, session_factory)

        with pytest.raises(ForbiddenError):
            await scope.delete_user(ghost.id)

    async def test_self_update_is_forbidden(self, org_scope, org_admin) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await org_scope.update_user(org_admin.id, UserUpdate(name="Me"))

        assert exc_info.value.code == "SELF_MODIFICATION"


class TestNotFound:
    async def test_unknown_user_is_404(self, global_scope) -> None:
        with pytest.raises(NotFoundError):
            await global_scope.get_user(uuid.uuid4())

    async def test_unknown_user_ban_is_404(self, global_scope) -> None:
        with pytest.raises(NotFoundError):
            await global_scope.set_ban_status(uuid.uuid4(), True)


class TestOrganizationBoundary:
    """Organization admins are confined to their own organization."""

    async def test_other_organization_member_is_forbidden(
        self, db_session, org_scope, other_organization
    ) -> None:
        outsider = await make_user(
            db_session, "out@globex.example.com", organization_id=other_organization.id
        )

        commands = (
            lambda: org_scope.get_user(outsider.id),
            lambda: org_scope.update_user(outsider.id, UserUpdate(name="X")),
            lambda: org_scope.reset_password(outsider.id, _PASSWORD),
            lambda: org_scope.delete_user(outsider.id),
        )
        for command in commands:
            with pytest.raises(ForbiddenError) as exc_info:
                await command()
            assert exc_info.value.code == "ORGANIZATION_BOUNDARY"

    async def test_unaffiliated_user_is_forbidden(self, db_session, org_scope) -> None:
        loner = await make_user(db_session, "loner@example.com")

        with pytest.raises(ForbiddenError):
            await org_scope.get_user(loner.id)

    async def test_org_admin_without_organization_is_rejected(
        self, db_session, session_factory
    ) -> None:
        orphan = await make_user(db_session, "orphan@example.com", role=SystemRole.ORG_ADMIN)

        with pytest.raises(ForbiddenError) as exc_info:
            OrgAdminScope(db_session, orphan, session_factory)

        assert exc_info.value.code == "NO_ORGANIZATION"


class TestOrgScopeRestrictions:
    """Commands an organization admin may never perform."""

    async def test_ban_is_rejected_before_lookup(self, org_scope) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await org_scope.set_ban_status(uuid.uuid4(), True)

        assert exc_info.value.code == "SCOPE_RESTRICTED"
        assert exc_info.value.message == "Use expiration to manage access"

    async def test_role_change_is_rejected_before_lookup(self, org_scope) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await org_scope.change_role(uuid.uuid4(), "ADMIN")

        assert exc_info.value.message == "Org Admin cannot change roles"

    async def test_cannot_delete_fellow_org_admin(
        self, db_session, org_scope, organization, session_factory
    ) -> None:
        peer = await make_user(
            db_session,
            "peer@acme.example.com",
            role=SystemRole.ORG_ADMIN,
            organization_id=organization.id,
        )

        with pytest.raises(ForbiddenError) as exc_info:
            await org_scope.delete_user(peer.id)

        assert exc_info.value.code == "ORG_ADMIN_PROTECTED"
        assert await _reload(session_factory, peer.id) is not None

    async def test_cannot_reset_fellow_org_admin_password(
        self, db_session, org_scope, organization
    ) -> None:
        peer = await make_user(
            db_session,
            "peer@acme.example.com",
            role=SystemRole.ORG_ADMIN,
            organization_id=organization.id,
        )

        with pytest.raises(ForbiddenError):
            await org_scope.reset_password(peer.id, _PASSWORD)

    async def test_stats_are_forbidden_for_global_admin(self, global_scope) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await global_scope.organization_stats()

        assert exc_info.value.code == "ORG_ADMIN_REQUIRED"


# =============================================================================
# Commands
# =============================================================================


class TestCreateUser:
    async def test_global_create_defaults_to_user_role(
        self, db_session, global_scope
    ) -> None:
        projection = await global_scope.create_user(
            UserCreate(email="New@Example.com", password=_PASSWORD, name="New")
        )
        await db_session.commit()

        assert projection.email == "new@example.com"
        assert projection.role == "USER"
        assert projection.email_verified is True
        assert projection.organization is None

    async def test_password_is_hashed(self, db_session, global_scope, session_factory) -> None:
        projection = await global_scope.create_user(
            UserCreate(email="hash@example.com", password=_PASSWORD)
        )
        await db_session.commit()

        stored = await _reload(session_factory, projection.id)
        assert stored.password_hash != _PASSWORD
        assert verify_password(_PASSWORD, stored.password_hash)

    async def test_global_create_with_explicit_role(self, global_scope) -> None:
        projection = await global_scope.create_user(
            UserCreate(email="lead@example.com", password=_PASSWORD, role="ORG_ADMIN")
        )

        assert projection.role == "ORG_ADMIN"

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ({"password": _PASSWORD}, "Email is required"),
            ({"email": "no-at-sign", "password": _PASSWORD}, "Invalid email address"),
            ({"email": "a@example.com"}, "Password must be at least 8 characters long"),
            ({"email": "a@example.com", "password": "short"}, "Password must be at least 8"),
            ({"email": "a@example.com", "password": _PASSWORD, "role": "ROOT"}, "Invalid role"),
        ],
    )
    async def test_invalid_input_is_rejected(self, global_scope, body, message) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await global_scope.create_user(UserCreate(**body))

        assert exc_info.value.message.startswith(message)

    async def test_duplicate_email_is_conflict(self, db_session, global_scope) -> None:
        await make_user(db_session, "taken@example.com")

        with pytest.raises(ConflictError) as exc_info:
            await global_scope.create_user(
                UserCreate(email="TAKEN@example.com", password=_PASSWORD)
            )

        assert exc_info.value.code == "USER_EXISTS"

    async def test_duplicate_username_is_conflict(self, db_session, global_scope) -> None:
        await make_user(db_session, "one@example.com", username="jdoe")

        with pytest.raises(ConflictError):
            await global_scope.create_user(
                UserCreate(email="two@example.com", password=_PASSWORD, username="jdoe")
            )

    async def test_org_create_forces_user_role_and_organization(
        self, org_scope, organization
    ) -> None:
        projection = await org_scope.create_user(
            UserCreate(email="jane.doe@acme.example.com", password=_PASSWORD, role="ADMIN")
        )

        assert projection.role == "USER"
        assert projection.organization == organization.id
        assert projection.organization_name == "Acme"
        assert projection.username == "jane.doe"
        assert projection.name == "jane.doe"


class TestUpdateUser:
    async def test_updates_name_and_clears_expiration(
        self, db_session, global_scope
    ) -> None:
        target = await make_user(
            db_session,
            "t@example.com",
            membership_expires_at=datetime.now(UTC) + timedelta(days=3),
        )

        projection = await global_scope.update_user(
            target.id, UserUpdate.model_validate({"name": " Renamed ", "membershipExpiresAt": None})
        )

        assert projection.name == "Renamed"
        assert projection.membership_expires_at is None

    async def test_omitted_expiration_is_left_unchanged(
        self, db_session, global_scope
    ) -> None:
        expires = datetime.now(UTC) + timedelta(days=3)
        target = await make_user(db_session, "t@example.com", membership_expires_at=expires)

        projection = await global_scope.update_user(target.id, UserUpdate(name="Only name"))

        assert projection.membership_expires_at is not None

    async def test_empty_body_is_rejected(self, db_session, global_scope) -> None:
        target = await make_user(db_session, "t@example.com")

        with pytest.raises(ValidationError):
            await global_scope.update_user(target.id, UserUpdate())


class TestRoleChange:
    async def test_promote_user(self, db_session, global_scope) -> None:
        target = await make_user(db_session, "t@example.com")

        projection = await global_scope.change_role(target.id, "ORG_ADMIN")

        assert projection.role == "ORG_ADMIN"

    async def test_unknown_role_is_rejected(self, db_session, global_scope) -> None:
        target = await make_user(db_session, "t@example.com")

        with pytest.raises(ValidationError):
            await global_scope.change_role(target.id, "SUPERUSER")


class TestBanAndSessions:
    """Ban commits first, then invalidates sessions best-effort."""

    async def test_ban_invalidates_sessions(
        self, db_session, global_scope, session_factory
    ) -> None:
        target = await make_user(db_session, "t@example.com")
        await _add_sessions(db_session, target)

        projection = await global_scope.set_ban_status(target.id, True, "spam")

        assert projection.banned is True
        assert projection.is_enabled is False
        assert await _session_count(session_factory, target.id) == 0
        reloaded = await _reload(session_factory, target.id)
        assert reloaded.banned is True
        assert reloaded.ban_reason == "spam"

    async def test_unban_keeps_sessions_and_clears_reason(
        self, db_session, global_scope, session_factory
    ) -> None:
        target = await make_user(db_session, "t@example.com", banned=True, ban_reason="old")
        await _add_sessions(db_session, target, count=1)

        projection = await global_scope.set_ban_status(target.id, False, "ignored")

        assert projection.is_enabled is True
        assert await _session_count(session_factory, target.id) == 1
        reloaded = await _reload(session_factory, target.id)
        assert reloaded.ban_reason is None

    async def test_non_boolean_banned_is_rejected(self, db_session, global_scope) -> None:
        target = await make_user(db_session, "t@example.com")

        with pytest.raises(ValidationError):
            await global_scope.set_ban_status(target.id, None)

    async def test_ban_succeeds_when_invalidation_fails(
        self, db_session, global_scope, session_factory, monkeypatch
    ) -> None:
        target = await make_user(db_session, "t@example.com")

        async def _broken(_db, _user_id):
            raise RuntimeError("session store down")

        monkeypatch.setattr(
            "diradmin.services.session_invalidation.UserRepository.delete_sessions",
            _broken,
        )

        projection = await global_scope.set_ban_status(target.id, True)

        assert projection.banned is True
        reloaded = await _reload(session_factory, target.id)
        assert reloaded.banned is True

    async def test_org_password_reset_invalidates_sessions(
        self, db_session, org_scope, organization, session_factory
    ) -> None:
        member = await make_user(
            db_session, "m@acme.example.com", organization_id=organization.id
        )
        await _add_sessions(db_session, member)

        await org_scope.reset_password(member.id, _PASSWORD)

        assert await _session_count(session_factory, member.id) == 0
        reloaded = await _reload(session_factory, member.id)
        assert verify_password(_PASSWORD, reloaded.password_hash)

    async def test_global_password_reset_keeps_sessions(
        self, db_session, global_scope, session_factory
    ) -> None:
        target = await make_user(db_session, "t@example.com")
        await _add_sessions(db_session, target, count=1)

        await global_scope.reset_password(target.id, _PASSWORD)
        await db_session.commit()

        assert await _session_count(session_factory, target.id) == 1

    async def test_short_password_is_rejected(self, db_session, global_scope) -> None:
        target = await make_user(db_session, "t@example.com")

        with pytest.raises(ValidationError):
            await global_scope.reset_password(target.id, "short")


class TestDeleteUser:
    async def test_delete_removes_user_and_resources(
        self, db_session, global_scope, session_factory
    ) -> None:
        target = await make_user(db_session, "t@example.com")
        await _add_sessions(db_session, target)

        await global_scope.delete_user(target.id)
        await db_session.commit()

        assert await _reload(session_factory, target.id) is None
        assert await _session_count(session_factory, target.id) == 0

    async def test_org_admin_deletes_member(
        self, db_session, org_scope, organization, session_factory
    ) -> None:
        member = await make_user(
            db_session, "m@acme.example.com", organization_id=organization.id
        )

        await org_scope.delete_user(member.id)
        await db_session.commit()

        assert await _reload(session_factory, member.id) is None


class TestListing:
    async def test_org_listing_fills_organization_name(
        self, db_session, org_scope, organization, other_organization
    ) -> None:
        await make_user(db_session, "m@acme.example.com", organization_id=organization.id)
        await make_user(db_session, "x@globex.example.com", organization_id=other_organization.id)

        result = await org_scope.list_users(DirectoryQuery(), PaginationParams(page=1, limit=10))

        emails = {u.email for u in result.users}
        assert emails == {"m@acme.example.com", "lead@acme.example.com"}
        assert {u.organization_name for u in result.users} == {"Acme"}

    async def test_global_listing_sees_everyone(
        self, db_session, global_scope, organization
    ) -> None:
        await make_user(db_session, "m@acme.example.com", organization_id=organization.id)

        result = await global_scope.list_users(
            DirectoryQuery(), PaginationParams(page=1, limit=10)
        )

        assert result.total_users == 2

