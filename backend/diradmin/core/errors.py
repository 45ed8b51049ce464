"""API error classes.

Every error carries a machine-readable code, a human-readable message and
the HTTP status it maps to. Guards in the admin scopes raise these directly;
the exception handlers in main.py render them into the error envelope.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Malformed or missing input (400).

    Use for request body validation errors, missing required fields, and
    redundant state that the caller should have checked (e.g. removing a
    user that has no organization). Accepts a custom code for the latter.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Operator is not allowed to perform the command (403).

    Raised by every admin guard: self-targeting, privilege-immutable
    targets, organization-boundary violations and scope-restricted commands.
    """

    def __init__(self, message: str = "Access denied", code: str = "FORBIDDEN") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
        )


class AdminRoleRequiredError(ForbiddenError):
    """Caller holds neither the ADMIN nor the ORG_ADMIN role (403)."""

    def __init__(self) -> None:
        super().__init__(message="Forbidden", code="ADMIN_ROLE_REQUIRED")


class NotFoundError(APIError):
    """Referenced resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate entries, redundant organization state, etc.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
