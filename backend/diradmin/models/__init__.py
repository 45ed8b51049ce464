"""SQLAlchemy ORM models for the directory admin service.

All models are exported from this module for convenient imports:
    from diradmin.models import User, Organization, Session, ...

Models are organized by domain:
- user.py: User, SystemRole
- organization.py: Organization
- resources.py: user-owned resource families (sessions, messages, files, ...)
"""

from diradmin.models.base import Base, TimestampMixin
from diradmin.models.organization import Organization
from diradmin.models.resources import (
    USER_RESOURCE_MODELS,
    Balance,
    Conversation,
    File,
    Message,
    PluginAuth,
    Preset,
    Session,
    SharedLink,
    ToolCall,
    Transaction,
    UserApiKey,
)
from diradmin.models.user import KNOWN_ROLES, SystemRole, User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Directory
    "User",
    "SystemRole",
    "KNOWN_ROLES",
    "Organization",
    # User-owned resources
    "USER_RESOURCE_MODELS",
    "Balance",
    "Conversation",
    "File",
    "Message",
    "PluginAuth",
    "Preset",
    "Session",
    "SharedLink",
    "ToolCall",
    "Transaction",
    "UserApiKey",
]
