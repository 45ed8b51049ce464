"""User model - directory entry managed by administrators.

A user references at most one organization. Credential and two-factor
columns are write-only from the API's point of view: no response schema
exposes them.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diradmin.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from diradmin.models.organization import Organization


class SystemRole(str, Enum):
    """Fixed role set. ADMIN is global, ORG_ADMIN is scoped to one organization."""

    USER = "USER"
    ADMIN = "ADMIN"
    ORG_ADMIN = "ORG_ADMIN"


KNOWN_ROLES: frozenset[str] = frozenset(r.value for r in SystemRole)


class User(Base, TimestampMixin):
    """User account in the directory.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lower-cased.
        username: Unique handle (nullable).
        name: Display name.
        password_hash: bcrypt hash. Never returned.
        totp_secret: Two-factor secret. Never returned.
        backup_codes: Two-factor backup codes. Never returned.
        role: One of SystemRole.
        banned: Whether the account is banned. Defaults to False.
        ban_reason: Optional note recorded with a ban.
        email_verified: Admin-created accounts are pre-verified.
        membership_expires_at: Access expiry; NULL means unlimited.
        organization_id: Owning organization (at most one), NULL if none.
        last_login_at: Last successful login.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    totp_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    backup_codes: Mapped[str | None] = mapped_column(Text(), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text(f"'{SystemRole.USER.value}'"),
        default=SystemRole.USER.value,
    )
    banned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    ban_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    membership_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    organization: Mapped["Organization | None"] = relationship(
        "Organization",
        back_populates="users",
        lazy="raise",
    )
