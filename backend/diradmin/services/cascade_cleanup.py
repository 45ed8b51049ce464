"""Cascading cleanup of user-owned resources.

Deleting a user first removes every dependent resource family. Each family
is one step, run concurrently with the others in its own database session
(no shared transaction). A step failure is caught, logged and recorded in
the report; it never stops the other steps or the final user removal.

The caller awaits run() and only then deletes the user row, so the order is
always "fire all, await all, then delete".
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diradmin.models.resources import USER_RESOURCE_MODELS

logger = logging.getLogger(__name__)

CleanupFn = Callable[[AsyncSession, uuid.UUID], Awaitable[int]]


@dataclass(frozen=True)
class CleanupStep:
    """One resource family removal.

    Attributes:
        name: Family name used in logs and the report.
        run: Coroutine function deleting the family's rows for a user and
            returning the number of rows removed.
    """

    name: str
    run: CleanupFn


@dataclass
class CleanupReport:
    """Outcome of a cleanup batch.

    Attributes:
        removed: Rows removed per family that succeeded.
        failed: Error text per family that failed.
    """

    removed: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when every step succeeded."""
        return not self.failed


def _delete_rows_step(model: type) -> CleanupStep:
    async def _run(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(delete(model).where(model.user_id == user_id))
        return result.rowcount or 0

    return CleanupStep(name=model.__tablename__, run=_run)


def default_cleanup_steps() -> list[CleanupStep]:
    """One delete step per user-owned resource table."""
    return [_delete_rows_step(model) for model in USER_RESOURCE_MODELS]


class CascadeCleanup:
    """Runs cleanup steps concurrently with per-step error isolation.

    Args:
        session_factory: Factory producing one independent session per step.
        steps: Steps to run. Defaults to default_cleanup_steps().
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        steps: Sequence[CleanupStep] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._steps = list(steps) if steps is not None else default_cleanup_steps()

    async def _run_step(
        self, step: CleanupStep, user_id: uuid.UUID, report: CleanupReport
    ) -> None:
        try:
            async with self._session_factory() as db:
                removed = await step.run(db, user_id)
                await db.commit()
        except Exception as exc:
            logger.warning(
                "Cleanup step %s failed for user %s: %s", step.name, user_id, exc
            )
            report.failed[step.name] = str(exc) or type(exc).__name__
        else:
            report.removed[step.name] = removed

    async def run(self, user_id: uuid.UUID) -> CleanupReport:
        """Run every step for a user and wait for all of them to settle.

        Args:
            user_id: User whose resources are removed.

        Returns:
            CleanupReport with per-family outcome. Never raises for step
            failures.
        """
        report = CleanupReport()
        await asyncio.gather(
            *(self._run_step(step, user_id, report) for step in self._steps)
        )
        if report.ok:
            logger.info("Cleanup for user %s removed %s", user_id, report.removed)
        else:
            logger.warning(
                "Cleanup for user %s partially failed: removed=%s failed=%s",
                user_id,
                report.removed,
                sorted(report.failed),
            )
        return report
