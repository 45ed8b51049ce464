"""Best-effort session invalidation.

Used after a ban and after an organization-scoped password reset. Runs in
its own session after the triggering change is committed, so a failure here
never undoes or fails the change itself.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diradmin.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


async def invalidate_sessions(
    session_factory: async_sessionmaker[AsyncSession], user_id: uuid.UUID
) -> bool:
    """Delete every session of a user; log and swallow failures.

    Args:
        session_factory: Factory for an independent session.
        user_id: User whose sessions are removed.

    Returns:
        True if the sessions were removed, False if the attempt failed.
    """
    try:
        async with session_factory() as db:
            removed = await UserRepository.delete_sessions(db, user_id)
            await db.commit()
    except Exception:
        logger.exception("Failed to invalidate sessions for user %s", user_id)
        return False
    logger.info("Invalidated %d session(s) for user %s", removed, user_id)
    return True
