"""Shared dependencies for API endpoints.

Authentication resolves the operator from a JWT (session cookie first, then
Bearer header). The admin scope is selected once here from the operator's
role; endpoints and services never inspect the role again.
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diradmin.core.auth import decode_jwt
from diradmin.core.config import settings
from diradmin.core.database import get_db, get_session_factory
from diradmin.core.errors import AdminRoleRequiredError, UnauthorizedError
from diradmin.models import SystemRole, User
from diradmin.repositories.user_repository import UserRepository
from diradmin.services.admin_scope import AdminScope, GlobalAdminScope, OrgAdminScope

DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def _read_token(request: Request) -> str | None:
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.removeprefix("Bearer ").strip() or None
    return None


def get_current_user_id(request: Request) -> uuid.UUID:
    """Get the operator id from the request's JWT.

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        UUID of the authenticated operator.

    Raises:
        UnauthorizedError: Missing, invalid or expired token. The message
            never says which.
    """
    token = _read_token(request)
    if not token:
        raise UnauthorizedError()
    try:
        return uuid.UUID(decode_jwt(token)["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise UnauthorizedError() from exc


CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]


async def get_current_user(user_id: CurrentUserId, db: DbSession) -> User:
    """Load the operator row.

    Raises:
        UnauthorizedError: The token's user no longer exists or is banned.
    """
    user = await UserRepository.get_by_id(db, user_id)
    if user is None or user.banned:
        raise UnauthorizedError()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_admin_scope(
    user: CurrentUser,
    db: DbSession,
    session_factory: SessionFactory,
) -> AdminScope:
    """Select the command scope for the operator's role.

    Returns:
        GlobalAdminScope for ADMIN, OrgAdminScope for ORG_ADMIN.

    Raises:
        AdminRoleRequiredError: Operator holds neither admin role.
        ForbiddenError: ORG_ADMIN without an organization.
    """
    if user.role == SystemRole.ADMIN.value:
        return GlobalAdminScope(db, user, session_factory)
    if user.role == SystemRole.ORG_ADMIN.value:
        return OrgAdminScope(db, user, session_factory)
    raise AdminRoleRequiredError()


Scope = Annotated[AdminScope, Depends(get_admin_scope)]
