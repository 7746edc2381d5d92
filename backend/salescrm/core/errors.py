"""
Domain errors shared by tenant resolution and the hierarchy engine.

Routers translate these into HTTPException via ``http_status_for``; services
raise them and never deal in status codes.
"""


class DomainError(Exception):
    code = "error"
    retryable = False

    def __init__(self, message: str, *, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.code


class NotFound(DomainError):
    """Tenant or member does not exist."""

    code = "not_found"


class Inactive(DomainError):
    """Tenant or resource exists but has been disabled."""

    code = "inactive"


class Unauthorized(DomainError):
    """Principal lacks the dominance level the operation needs."""

    code = "unauthorized"


class CrossTenant(DomainError):
    """Operation spans more than one tenant."""

    code = "cross_tenant"


class Malformed(DomainError):
    """Cyclic or dangling manager reference found in the member tree."""

    code = "malformed"


class Upstream(DomainError):
    """Directory or member store unavailable. Safe to retry."""

    code = "upstream"
    retryable = True


_STATUS_BY_CODE = {
    NotFound.code: 404,
    Inactive.code: 403,
    Unauthorized.code: 403,
    CrossTenant.code: 403,
    Malformed.code: 409,
    Upstream.code: 503,
}


def http_status_for(exc: DomainError) -> int:
    return _STATUS_BY_CODE.get(exc.code, 400)
