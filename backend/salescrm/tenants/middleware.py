import logging
from typing import Callable

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from salescrm.tenants.resolver import TenantResolver

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/ready", "/docs", "/openapi.json"})

_STATUS_BY_ERROR = {"not_found": 404, "inactive": 403, "upstream": 503}


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    """
    Resolve the Host header once per request and park the result on
    ``request.state.tenant_resolution``.

    Resolution errors short-circuit with a typed JSON body so clients can
    tell "no workspace" from "service degraded". Main-domain hosts and
    unresolved custom domains pass through without a tenant.
    """

    def __init__(self, app, resolver_factory: Callable[[], TenantResolver]):
        super().__init__(app)
        self._resolver_factory = resolver_factory

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        resolver = self._resolver_factory()
        # The directory lookup blocks; keep it off the event loop.
        resolution = await run_in_threadpool(resolver.resolve, request.headers.get("host"))
        request.state.tenant_resolution = resolution

        if resolution.error is not None:
            status_code = _STATUS_BY_ERROR.get(resolution.error.code, 400)
            logger.info(
                "Rejecting request host=%s path=%s error=%s",
                resolution.host,
                request.url.path,
                resolution.error.code,
            )
            headers = {"Retry-After": "5"} if resolution.retryable else None
            return JSONResponse(
                status_code=status_code,
                content={
                    "detail": resolution.error.message,
                    "code": resolution.error.code,
                    "retryable": resolution.retryable,
                },
                headers=headers,
            )

        return await call_next(request)
