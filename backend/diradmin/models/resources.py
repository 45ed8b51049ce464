"""User-owned resource tables.

Each table carries an indexed user_id without a foreign key constraint.
Deleting a user never depends on these rows being present, and cascade
cleanup removes them family by family.
"""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from diradmin.models.base import Base, utcnow


class UserOwnedMixin:
    """Common columns for rows that belong to a single user.

    Attributes:
        id: UUID primary key.
        user_id: Owning user's id (indexed, not constrained).
        created_at: Creation timestamp.
    """

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class Session(Base, UserOwnedMixin):
    """Login session. Deleted on ban and on password reset by an org admin."""

    __tablename__ = "sessions"

    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)


class Conversation(Base, UserOwnedMixin):
    """Chat conversation header."""

    __tablename__ = "conversations"

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    endpoint: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Message(Base, UserOwnedMixin):
    """Single chat message."""

    __tablename__ = "messages"

    conversation_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    text: Mapped[str | None] = mapped_column(Text(), nullable=True)


class Transaction(Base, UserOwnedMixin):
    """Token spend or credit entry."""

    __tablename__ = "transactions"

    token_type: Mapped[str] = mapped_column(String(20), nullable=False)
    raw_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Balance(Base, UserOwnedMixin):
    """Current token credit balance."""

    __tablename__ = "balances"

    token_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Preset(Base, UserOwnedMixin):
    """Saved conversation preset."""

    __tablename__ = "presets"

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)


class PluginAuth(Base, UserOwnedMixin):
    """Stored plugin credential field."""

    __tablename__ = "plugin_auths"

    plugin_key: Mapped[str] = mapped_column(String(100), nullable=False)
    auth_field: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text(), nullable=False)


class UserApiKey(Base, UserOwnedMixin):
    """User-provided API key for an external endpoint."""

    __tablename__ = "user_api_keys"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text(), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)


class SharedLink(Base, UserOwnedMixin):
    """Public share of a conversation."""

    __tablename__ = "shared_links"

    conversation_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    share_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)


class File(Base, UserOwnedMixin):
    """Uploaded file metadata."""

    __tablename__ = "files"

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    filepath: Mapped[str] = mapped_column(String(1024), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ToolCall(Base, UserOwnedMixin):
    """Recorded tool invocation."""

    __tablename__ = "tool_calls"

    conversation_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    tool_id: Mapped[str] = mapped_column(String(100), nullable=False)


# Ordered for logging only; cleanup runs all families concurrently.
USER_RESOURCE_MODELS: tuple[type[Base], ...] = (
    Message,
    Session,
    Transaction,
    Balance,
    Preset,
    Conversation,
    PluginAuth,
    UserApiKey,
    SharedLink,
    File,
    ToolCall,
)
