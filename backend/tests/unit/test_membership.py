"""Tests for the organization membership coordinator.

One test per outcome of each write path: assign (global), add_by_email and
remove_from_organization (organization scope).
"""

import uuid

import pytest

from diradmin.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from diradmin.models import SystemRole
from diradmin.services.membership import MembershipCoordinator
from tests.conftest import make_user


@pytest.fixture
def coordinator(db_session) -> MembershipCoordinator:
    return MembershipCoordinator(db_session)


class TestAssign:
    """Global administrators set or clear a user's organization."""

    async def test_assigns_organization(
        self, db_session, coordinator, global_admin, organization
    ) -> None:
        user = await make_user(db_session, "u@example.com")

        projection = await coordinator.assign(global_admin, user.id, organization.id)

        assert projection.organization == organization.id
        assert projection.organization_name == "Acme"

    async def test_moves_between_organizations(
        self, db_session, coordinator, global_admin, organization, other_organization
    ) -> None:
        user = await make_user(db_session, "u@example.com", organization_id=organization.id)

        projection = await coordinator.assign(global_admin, user.id, other_organization.id)

        assert projection.organization == other_organization.id
        assert projection.organization_name == "Globex"

    async def test_none_removes_membership(
        self, db_session, coordinator, global_admin, organization
    ) -> None:
        user = await make_user(db_session, "u@example.com", organization_id=organization.id)

        projection = await coordinator.assign(global_admin, user.id, None)

        assert projection.organization is None
        assert projection.organization_name is None

    async def test_removing_unaffiliated_user_is_400(
        self, db_session, coordinator, global_admin
    ) -> None:
        user = await make_user(db_session, "u@example.com")

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.assign(global_admin, user.id, None)

        assert exc_info.value.code == "NOT_A_MEMBER"
        assert exc_info.value.status_code == 400

    async def test_assigning_current_organization_is_conflict(
        self, db_session, coordinator, global_admin, organization
    ) -> None:
        user = await make_user(db_session, "u@example.com", organization_id=organization.id)

        with pytest.raises(ConflictError) as exc_info:
            await coordinator.assign(global_admin, user.id, organization.id)

        assert exc_info.value.code == "ALREADY_MEMBER"

    async def test_missing_user_id_is_400(self, coordinator, global_admin) -> None:
        with pytest.raises(ValidationError):
            await coordinator.assign(global_admin, None, uuid.uuid4())

    async def test_unknown_user_is_404(self, coordinator, global_admin, organization) -> None:
        with pytest.raises(NotFoundError):
            await coordinator.assign(global_admin, uuid.uuid4(), organization.id)

    async def test_unknown_organization_is_404(
        self, db_session, coordinator, global_admin
    ) -> None:
        user = await make_user(db_session, "u@example.com")

        with pytest.raises(NotFoundError) as exc_info:
            await coordinator.assign(global_admin, user.id, uuid.uuid4())

        assert "Organization" in exc_info.value.message

    async def test_administrator_is_immutable(
        self, db_session, coordinator, global_admin, organization
    ) -> None:
        admin = await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError) as exc_info:
            await coordinator.assign(global_admin, admin.id, organization.id)

        assert exc_info.value.code == "ADMIN_IMMUTABLE"


class TestAddByEmail:
    """Organization administrators pull unaffiliated users into their organization."""

    async def test_adds_unaffiliated_user(
        self, db_session, coordinator, org_admin, organization
    ) -> None:
        await make_user(db_session, "free@example.com")

        projection = await coordinator.add_by_email(org_admin, "  FREE@example.com ")

        assert projection.email == "free@example.com"
        assert projection.organization == organization.id
        assert projection.organization_name == "Acme"

    async def test_already_in_caller_organization(
        self, db_session, coordinator, org_admin, organization
    ) -> None:
        await make_user(db_session, "m@example.com", organization_id=organization.id)

        with pytest.raises(ConflictError) as exc_info:
            await coordinator.add_by_email(org_admin, "m@example.com")

        assert exc_info.value.code == "ALREADY_IN_YOUR_ORGANIZATION"

    async def test_already_in_other_organization(
        self, db_session, coordinator, org_admin, other_organization
    ) -> None:
        await make_user(db_session, "x@example.com", organization_id=other_organization.id)

        with pytest.raises(ConflictError) as exc_info:
            await coordinator.add_by_email(org_admin, "x@example.com")

        assert exc_info.value.code == "ALREADY_IN_OTHER_ORGANIZATION"

    @pytest.mark.parametrize("email", [None, "", "   "])
    async def test_missing_email_is_400(self, coordinator, org_admin, email) -> None:
        with pytest.raises(ValidationError):
            await coordinator.add_by_email(org_admin, email)

    async def test_unknown_email_is_404(self, coordinator, org_admin) -> None:
        with pytest.raises(NotFoundError):
            await coordinator.add_by_email(org_admin, "nobody@example.com")

    async def test_administrator_cannot_be_added(
        self, db_session, coordinator, org_admin
    ) -> None:
        await make_user(db_session, "ops@example.com", role=SystemRole.ADMIN)

        with pytest.raises(ForbiddenError):
            await coordinator.add_by_email(org_admin, "ops@example.com")


class TestRemoveFromOrganization:
    """Organization administrators detach members of their own organization."""

    async def test_removes_member(
        self, db_session, coordinator, org_admin, organization
    ) -> None:
        member = await make_user(db_session, "m@example.com", organization_id=organization.id)

        projection = await coordinator.remove_from_organization(org_admin, member.id)

        assert projection.organization is None

    async def test_missing_user_id_is_400(self, coordinator, org_admin) -> None:
        with pytest.raises(ValidationError):
            await coordinator.remove_from_organization(org_admin, None)

    async def test_self_removal_is_forbidden(self, coordinator, org_admin) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            await coordinator.remove_from_organization(org_admin, org_admin.id)

        assert exc_info.value.code == "SELF_MODIFICATION"

    async def test_unknown_user_is_404(self, coordinator, org_admin) -> None:
        with pytest.raises(NotFoundError):
            await coordinator.remove_from_organization(org_admin, uuid.uuid4())

    async def test_outside_organization_is_forbidden(
        self, db_session, coordinator, org_admin, other_organization
    ) -> None:
        outsider = await make_user(
            db_session, "x@example.com", organization_id=other_organization.id
        )

        with pytest.raises(ForbiddenError) as exc_info:
            await coordinator.remove_from_organization(org_admin, outsider.id)

        assert exc_info.value.code == "ORGANIZATION_BOUNDARY"

    async def test_fellow_org_admin_is_protected(
        self, db_session, coordinator, org_admin, organization
    ) -> None:
        peer = await make_user(
            db_session,
            "peer@example.com",
            role=SystemRole.ORG_ADMIN,
            organization_id=organization.id,
        )

        with pytest.raises(ForbiddenError) as exc_info:
            await coordinator.remove_from_organization(org_admin, peer.id)

        assert exc_info.value.code == "ORG_ADMIN_PROTECTED"

    async def test_administrator_is_immutable(
        self, db_session, coordinator, org_admin, organization
    ) -> None:
        admin = await make_user(
            db_session,
            "ops@example.com",
            role=SystemRole.ADMIN,
            organization_id=organization.id,
        )

        with pytest.raises(ForbiddenError) as exc_info:
            await coordinator.remove_from_organization(org_admin, admin.id)

        assert exc_info.value.code == "ADMIN_IMMUTABLE"
