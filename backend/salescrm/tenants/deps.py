import threading

from fastapi import Request

from salescrm.core.config import settings
from salescrm.tenants.directory import SqlTenantDirectory
from salescrm.tenants.dns import DohDomainVerifier, DomainVerifier
from salescrm.tenants.resolver import TenantResolution, TenantResolver

_resolver: TenantResolver | None = None
_resolver_lock = threading.Lock()


def get_tenant_resolver() -> TenantResolver:
    global _resolver
    if _resolver is None:
        with _resolver_lock:
            if _resolver is None:
                _resolver = TenantResolver.from_settings(SqlTenantDirectory(), settings)
    return _resolver


def set_tenant_resolver(resolver: TenantResolver | None) -> None:
    """Swap the process-wide resolver (tests, alternate directories)."""
    global _resolver
    with _resolver_lock:
        _resolver = resolver


def get_resolution(request: Request) -> TenantResolution:
    resolution = getattr(request.state, "tenant_resolution", None)
    if resolution is None:
        # Route mounted outside the middleware (e.g. a bare test app).
        resolution = get_tenant_resolver().resolve(request.headers.get("host"))
        request.state.tenant_resolution = resolution
    return resolution


def get_domain_verifier() -> DomainVerifier:
    return DohDomainVerifier(
        endpoint=settings.DOH_ENDPOINT,
        targets=settings.DOMAIN_VERIFY_TARGETS,
        timeout=settings.DOMAIN_VERIFY_TIMEOUT_SECONDS,
    )
