"""Pagination utilities.

page (default 1, floored to 1, capped so the offset fits a 64-bit integer)
and limit (default from settings, clamped into [1, max_page_size]).
Out-of-range or non-numeric input is clamped to a usable value instead of
being rejected.
"""

from dataclasses import dataclass

from fastapi import Query

from diradmin.core.config import settings

# OFFSET + LIMIT must fit a signed 64-bit integer
_MAX_ROW_POSITION = 2**63 - 1


def _coerce_int(raw: str | int | None, default: int) -> int:
    """Parse an integer query value, falling back to default on garbage.

    Args:
        raw: Raw query value ("3", 3, "abc", None).
        default: Value to use when raw is missing or not an integer.

    Returns:
        Parsed integer or default.
    """
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PaginationParams:
    """Clamped pagination parameters.

    Attributes:
        page: Current page number (1-indexed, >= 1).
        limit: Number of items per page (1..max_page_size).
    """

    page: int
    limit: int

    @classmethod
    def clamp(
        cls,
        page: str | int | None = None,
        limit: str | int | None = None,
        *,
        default_limit: int | None = None,
        max_limit: int | None = None,
    ) -> "PaginationParams":
        """Build params from raw values, clamping instead of rejecting.

        Examples:
            >>> PaginationParams.clamp("0", "1000")
            PaginationParams(page=1, limit=100)

            >>> PaginationParams.clamp(None, "0")
            PaginationParams(page=1, limit=1)

        Args:
            page: Raw page value.
            limit: Raw page size value.
            default_limit: Page size when limit is missing. Defaults to settings.
            max_limit: Upper bound for limit. Defaults to settings.

        Returns:
            PaginationParams with 1 <= limit <= max_limit and page >= 1, capped
            so that offset + limit fits a 64-bit integer.
        """
        upper = max_limit if max_limit is not None else settings.max_page_size
        fallback = default_limit if default_limit is not None else settings.default_page_size
        limit_num = min(upper, max(1, _coerce_int(limit, fallback)))
        last_page = (_MAX_ROW_POSITION - limit_num) // limit_num + 1
        page_num = min(last_page, max(1, _coerce_int(page, 1)))
        return cls(page=page_num, limit=limit_num)

    @property
    def offset(self) -> int:
        """Calculate SQL OFFSET for database queries.

        Returns:
            Number of items to skip (0 for page 1).
        """
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        """Number of pages needed for total items (0 when total is 0)."""
        if total <= 0:
            return 0
        return (total + self.limit - 1) // self.limit


def pagination_params(
    page: str | None = Query(default=None, description="Page number (1-indexed)"),
    limit: str | None = Query(
        default=None,
        description="Items per page (clamped to 1..100)",
    ),
) -> PaginationParams:
    """FastAPI dependency for clamped pagination query parameters.

    Usage:
        @router.get("/users")
        async def list_users(
            pagination: PaginationParams = Depends(pagination_params)
        ):
            ...

    Args:
        page: Raw page number.
        limit: Raw page size.

    Returns:
        PaginationParams with clamped page and limit.
    """
    return PaginationParams.clamp(page, limit)
