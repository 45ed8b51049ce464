"""Repository for User CRUD operations.

Provides database access for the users table. Every method takes the
session explicitly so the caller controls transaction boundaries.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from diradmin.models.resources import Session
from diradmin.models.user import SystemRole, User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'password_hash', 'role' or 'banned'.
# Those have dedicated commands with their own guards.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "membership_expires_at",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static and hold no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find_conflict(
        db: AsyncSession, *, email: str, username: str | None
    ) -> User | None:
        """Return an existing user holding the same email or username."""
        clauses = [User.email == email.lower()]
        if username:
            clauses.append(User.username == username)
        stmt = select(User).where(or_(*clauses)).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        username: str | None = None,
        name: str | None = None,
        role: str = SystemRole.USER.value,
        organization_id: uuid.UUID | None = None,
        membership_expires_at: datetime | None = None,
    ) -> User:
        """Create a new, pre-verified user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            password_hash: bcrypt hash.
            username: Optional unique handle.
            name: Display name.
            role: Initial role.
            organization_id: Organization to attach, if any.
            membership_expires_at: Access expiry, None for unlimited.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email or username already exists.
        """
        user = User(
            email=email.lower(),
            username=username,
            name=name,
            password_hash=password_hash,
            role=role,
            email_verified=True,
            organization_id=organization_id,
            membership_expires_at=membership_expires_at,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user: User,
        **kwargs: str | datetime | None,
    ) -> User:
        """Update user profile fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user: Loaded user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Delete every login session of a user.

        Returns:
            Number of sessions removed.
        """
        result = await db.execute(delete(Session).where(Session.user_id == user_id))
        return result.rowcount or 0
