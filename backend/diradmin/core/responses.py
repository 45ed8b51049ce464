"""Response envelope models.

Consistent response format shared by all admin endpoints. JSON keys are
camelCase; Python attributes stay snake_case.
"""

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationMeta(CamelModel):
    """Pagination metadata for collections.

    Attributes:
        current_page: Current page number (1-indexed).
        total_pages: Number of pages for total_count.
        total_count: Total number of items matching the filter.
    """

    current_page: int
    total_pages: int
    total_count: int

    @computed_field(alias="hasNext")  # type: ignore[prop-decorator]
    @property
    def has_next(self) -> bool:
        """Whether a page exists after the current one."""
        return self.current_page < self.total_pages

    @computed_field(alias="hasPrev")  # type: ignore[prop-decorator]
    @property
    def has_prev(self) -> bool:
        """Whether a page exists before the current one."""
        return self.current_page > 1


class MessageResponse(CamelModel):
    """Plain acknowledgement for commands that return no resource."""

    message: str


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional list of field-level errors (for validation).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    All errors use {"error": {...}} envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail
