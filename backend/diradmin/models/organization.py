"""Organization model - tenant that org admins manage."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diradmin.models.base import Base, utcnow

if TYPE_CHECKING:
    from diradmin.models.user import User


class Organization(Base):
    """Tenant grouping users under one org admin.

    Attributes:
        id: UUID primary key.
        name: Display name shown next to users in admin listings.
        code: Unique short code.
        created_at: Creation timestamp.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="organization",
        lazy="raise",
    )
