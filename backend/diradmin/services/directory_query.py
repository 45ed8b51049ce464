"""Directory query planner.

Turns list parameters (search, role, organization, status, sort) into a
predicate list and ORDER BY clauses, then runs one page query and one count
query over the same predicates. The planner performs no authorization: the
caller decides which scope builder to use.

Scopes:
- Global: status banned / active / expired / expiring_soon, optional
  organization filter ("none" = no organization), organization names
  resolved for the current page only.
- Organization: pinned to one organization id, ADMIN users excluded,
  status active / expired only.

Unknown role, status or sort values are ignored rather than rejected.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from diradmin.core.config import settings
from diradmin.core.pagination import PaginationParams
from diradmin.core.responses import PaginationMeta
from diradmin.models.user import KNOWN_ROLES, SystemRole, User
from diradmin.repositories.organization_repository import OrganizationRepository
from diradmin.schemas.admin import UserListResponse
from diradmin.services.user_projection import project_user

logger = logging.getLogger(__name__)

NO_ORGANIZATION = "none"

_SORT_COLUMNS = {
    "createdAt": User.created_at,
    "name": User.name,
    "email": User.email,
    "username": User.username,
    "membershipExpiresAt": User.membership_expires_at,
    "lastLoginAt": User.last_login_at,
    "role": User.role,
}
_DEFAULT_SORT = "createdAt"

GLOBAL_STATUSES = frozenset({"banned", "active", "expired", "expiring_soon"})
ORGANIZATION_STATUSES = frozenset({"active", "expired"})


@dataclass(frozen=True)
class DirectoryQuery:
    """Raw list filters as received from the query string.

    Attributes:
        search: Case-insensitive substring over email, username and name.
        role: Role filter, ignored unless a known role.
        organization: Organization id or "none" (global scope only).
        status: Status filter, interpreted per scope.
        sort_by: Sort field name (camelCase).
        sort_order: "asc" or "desc".
    """

    search: str | None = None
    role: str | None = None
    organization: str | None = None
    status: str | None = None
    sort_by: str | None = None
    sort_order: str | None = None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_predicate(term: str | None) -> ColumnElement[bool] | None:
    """OR'd case-insensitive substring match with LIKE wildcards escaped."""
    if not term:
        return None
    pattern = f"%{_escape_like(term)}%"
    return or_(
        User.email.ilike(pattern, escape="\\"),
        User.username.ilike(pattern, escape="\\"),
        User.name.ilike(pattern, escape="\\"),
    )


def _common_predicates(query: DirectoryQuery) -> list[ColumnElement[bool]]:
    predicates: list[ColumnElement[bool]] = []
    search = search_predicate(query.search)
    if search is not None:
        predicates.append(search)
    if query.role in KNOWN_ROLES:
        predicates.append(User.role == query.role)
    return predicates


def global_predicates(
    query: DirectoryQuery, *, now: datetime | None = None
) -> list[ColumnElement[bool]]:
    """Build the predicate list for a global administrator.

    Args:
        query: Raw list filters.
        now: Reference time for expiry filters. Defaults to current UTC time.

    Returns:
        Predicates to AND together. Empty list means every user.
    """
    now = now or datetime.now(UTC)
    predicates = _common_predicates(query)

    if query.organization == NO_ORGANIZATION:
        predicates.append(User.organization_id.is_(None))
    elif query.organization:
        try:
            predicates.append(User.organization_id == uuid.UUID(query.organization))
        except ValueError:
            logger.debug("Ignoring malformed organization filter: %r", query.organization)

    status = query.status if query.status in GLOBAL_STATUSES else None
    if status == "banned":
        predicates.append(User.banned.is_(True))
    elif status == "active":
        predicates.append(or_(User.banned.is_(None), User.banned == false()))
    elif status == "expired":
        predicates.append(User.membership_expires_at < now)
    elif status == "expiring_soon":
        window = now + timedelta(days=settings.expiring_soon_days)
        predicates.append(User.membership_expires_at > now)
        predicates.append(User.membership_expires_at <= window)
    return predicates


def organization_predicates(
    query: DirectoryQuery,
    organization_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> list[ColumnElement[bool]]:
    """Build the predicate list for an organization administrator.

    The organization filter from the query is ignored; the predicate is
    always pinned to organization_id and excludes ADMIN users.
    """
    now = now or datetime.now(UTC)
    predicates = [
        User.organization_id == organization_id,
        User.role != SystemRole.ADMIN.value,
        *_common_predicates(query),
    ]

    status = query.status if query.status in ORGANIZATION_STATUSES else None
    if status == "active":
        predicates.append(
            or_(User.membership_expires_at.is_(None), User.membership_expires_at > now)
        )
    elif status == "expired":
        predicates.append(User.membership_expires_at < now)
    return predicates


def order_by_clauses(sort_by: str | None, sort_order: str | None) -> list:
    """ORDER BY clauses with an id tiebreaker.

    Unknown or absent sort_by falls back to createdAt descending.
    """
    if sort_by not in _SORT_COLUMNS:
        sort_by, sort_order = _DEFAULT_SORT, "desc"
    column = _SORT_COLUMNS[sort_by]
    if sort_order == "asc":
        return [column.asc(), User.id.asc()]
    return [column.desc(), User.id.desc()]


async def run_directory_query(
    db: AsyncSession,
    predicates: list[ColumnElement[bool]],
    pagination: PaginationParams,
    *,
    sort_by: str | None = None,
    sort_order: str | None = None,
    resolve_organization_names: bool = False,
) -> UserListResponse:
    """Execute page and count queries over one predicate list.

    Args:
        db: Async database session.
        predicates: Predicates from global_predicates() or
            organization_predicates().
        pagination: Clamped page and limit.
        sort_by: Sort field name.
        sort_order: "asc" or "desc".
        resolve_organization_names: Look up organization names for the
            organizations referenced by the returned page.

    Returns:
        List envelope with projected users and page metadata.
    """
    count_stmt = select(func.count()).select_from(User).where(*predicates)
    total = (await db.execute(count_stmt)).scalar_one()

    page_stmt = (
        select(User)
        .where(*predicates)
        .order_by(*order_by_clauses(sort_by, sort_order))
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    users = list((await db.execute(page_stmt)).scalars().all())

    names: dict[uuid.UUID, str] = {}
    if resolve_organization_names:
        names = await OrganizationRepository.names_by_id(
            db, (u.organization_id for u in users if u.organization_id)
        )

    total_pages = pagination.total_pages(total)
    return UserListResponse(
        users=[project_user(u, names.get(u.organization_id)) for u in users],
        total_users=total,
        total_pages=total_pages,
        current_page=pagination.page,
        page_size=pagination.limit,
        pagination=PaginationMeta(
            current_page=pagination.page,
            total_pages=total_pages,
            total_count=total,
        ),
    )
