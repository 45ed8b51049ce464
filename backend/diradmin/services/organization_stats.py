"""Organization dashboard statistics for organization administrators.

All counts are computed in SQL with FILTER aggregates over the members of
one organization (ADMIN users excluded, matching the organization-scoped
listing). Conversation activity is counted through the members' ids.
"""

import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from diradmin.core.config import settings
from diradmin.core.errors import NotFoundError
from diradmin.models.resources import Conversation
from diradmin.models.user import SystemRole, User
from diradmin.repositories.organization_repository import OrganizationRepository
from diradmin.schemas.admin import (
    ActivityStats,
    GrowthStats,
    MembershipDistribution,
    MembershipTotals,
    OrganizationStatsResponse,
    OrganizationSummary,
)
from diradmin.services.user_projection import project_user

_RECENT_USERS_LIMIT = 5


async def get_organization_stats(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> OrganizationStatsResponse:
    """Summarize membership, growth and activity for one organization.

    Args:
        db: Async database session.
        organization_id: Organization to summarize.
        now: Reference time. Defaults to current UTC time.

    Returns:
        OrganizationStatsResponse.

    Raises:
        NotFoundError: If the organization does not exist.
    """
    org = await OrganizationRepository.get_by_id(db, organization_id)
    if org is None:
        raise NotFoundError("Organization", str(organization_id))

    now = now or datetime.now(UTC)
    soon = now + timedelta(days=settings.expiring_soon_days)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    month_start = today.replace(day=1)

    expires = User.membership_expires_at
    members = (
        User.organization_id == organization_id,
        User.role != SystemRole.ADMIN.value,
    )

    counts = (
        await db.execute(
            select(
                func.count().label("total"),
                func.count().filter(expires.is_(None)).label("unlimited"),
                func.count().filter(expires > now).label("future"),
                func.count().filter(expires < now).label("expired"),
                func.count().filter(expires > now, expires <= soon).label("soon"),
                func.count()
                .filter(User.role == SystemRole.ORG_ADMIN.value)
                .label("org_admins"),
                func.count().filter(User.created_at >= today).label("new_today"),
                func.count().filter(User.created_at >= week_ago).label("new_week"),
                func.count().filter(User.created_at >= month_start).label("new_month"),
            ).where(*members)
        )
    ).one()

    member_ids = select(User.id).where(*members)
    activity = (
        await db.execute(
            select(
                func.count().label("total"),
                func.count().filter(Conversation.created_at >= today).label("today"),
                func.count().filter(Conversation.created_at >= week_ago).label("week"),
            ).where(Conversation.user_id.in_(member_ids))
        )
    ).one()

    recent = (
        await db.execute(
            select(User)
            .where(*members)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(_RECENT_USERS_LIMIT)
        )
    ).scalars().all()

    return OrganizationStatsResponse(
        organization=OrganizationSummary(
            id=org.id, name=org.name, code=org.code, created_at=org.created_at
        ),
        totals=MembershipTotals(
            total_users=counts.total,
            active_users=counts.unlimited + counts.future,
            expired_users=counts.expired,
            unlimited_users=counts.unlimited,
            expiring_soon=counts.soon,
            org_admins=counts.org_admins,
        ),
        growth=GrowthStats(
            new_today=counts.new_today,
            new_this_week=counts.new_week,
            new_this_month=counts.new_month,
        ),
        activity=ActivityStats(
            total_conversations=activity.total,
            conversations_today=activity.today,
            conversations_this_week=activity.week,
        ),
        recent_users=[project_user(u, org.name) for u in recent],
        membership_distribution=MembershipDistribution(
            unlimited=counts.unlimited,
            active=counts.future - counts.soon,
            expiring_soon=counts.soon,
            expired=counts.expired,
        ),
    )
