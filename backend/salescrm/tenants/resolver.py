"""
Host name -> tenant resolution.

Classification runs in a fixed order and the first matching rule wins:

1. loopback / local development hosts          -> main domain
2. preview hosting suffixes (vercel.app, ...)   -> main domain
3. the primary domain or its www variant        -> main domain
4. ``<label>.<primary domain>``                 -> reserved label: main domain,
                                                   otherwise one lookup by slug
5. anything else                                -> custom domain, one lookup

Main-domain hosts never touch the directory. Every other host costs at most
one directory lookup, and results are cached per normalized host except
for upstream failures, which are always retried.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Literal

from salescrm.core.errors import Upstream
from salescrm.tenants.cache import ResolutionCache
from salescrm.tenants.directory import TenantDirectory, TenantRecord

logger = logging.getLogger(__name__)

HostClass = Literal["main_domain", "subdomain", "custom_domain"]
ResolutionStatus = Literal["no_tenant", "resolved", "unresolved_custom_domain", "error"]
ResolutionErrorCode = Literal["not_found", "inactive", "upstream"]

WORKSPACE_NOT_FOUND = "Workspace not found"
WORKSPACE_INACTIVE = "This workspace is currently inactive"
WORKSPACE_UNAVAILABLE = "Failed to load workspace"


@dataclass(frozen=True)
class HostClassification:
    host: str
    host_class: HostClass
    subdomain: str | None = None


@dataclass(frozen=True)
class ResolutionError:
    code: ResolutionErrorCode
    message: str

    @property
    def retryable(self) -> bool:
        return self.code == "upstream"


@dataclass(frozen=True)
class TenantResolution:
    host: str
    host_class: HostClass
    status: ResolutionStatus
    subdomain: str | None = None
    tenant: TenantRecord | None = None
    error: ResolutionError | None = None
    # Set for resolved and inactive outcomes so cache entries can be dropped per tenant.
    tenant_id: str | None = None

    @property
    def is_main_domain(self) -> bool:
        return self.host_class == "main_domain"

    @property
    def is_subdomain(self) -> bool:
        return self.host_class == "subdomain"

    @property
    def is_custom_domain(self) -> bool:
        return self.host_class == "custom_domain"

    @property
    def resolved(self) -> bool:
        return self.status == "resolved"

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


def normalize_host(hostname: str | None) -> str:
    """Lower-case, drop the port and any trailing dot."""
    host = (hostname or "").strip().lower()
    if host.startswith("["):
        # [::1]:8000
        end = host.find("]")
        host = host[1:end] if end != -1 else host[1:]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


def strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def custom_domain_candidates(host: str) -> tuple[str, str]:
    bare = strip_www(normalize_host(host))
    return bare, f"www.{bare}"


class TenantResolver:
    def __init__(
        self,
        directory: TenantDirectory,
        *,
        primary_domain: str,
        reserved_subdomains: Iterable[str] = ("www", "app", "api", "admin"),
        preview_suffixes: Iterable[str] = (),
        local_hosts: Iterable[str] = ("localhost", "127.0.0.1"),
        cache: ResolutionCache[TenantResolution] | None = None,
    ):
        self.directory = directory
        self.primary_domain = normalize_host(primary_domain)
        self.reserved_subdomains = frozenset(s.lower() for s in reserved_subdomains)
        self.preview_suffixes = tuple(s.lower().lstrip(".") for s in preview_suffixes)
        self.local_hosts = frozenset(h.lower() for h in local_hosts)
        self.cache = cache

    @classmethod
    def from_settings(cls, directory: TenantDirectory, settings) -> "TenantResolver":
        cache = None
        if settings.TENANT_CACHE_TTL_SECONDS > 0:
            cache = ResolutionCache(
                ttl_seconds=settings.TENANT_CACHE_TTL_SECONDS,
                max_entries=settings.TENANT_CACHE_MAX_ENTRIES,
            )
        return cls(
            directory,
            primary_domain=settings.PRIMARY_DOMAIN,
            reserved_subdomains=settings.RESERVED_SUBDOMAINS,
            preview_suffixes=settings.PREVIEW_HOST_SUFFIXES,
            local_hosts=settings.LOCAL_HOSTS,
            cache=cache,
        )

    def _is_preview_host(self, host: str) -> bool:
        return any(host == s or host.endswith(f".{s}") for s in self.preview_suffixes)

    def classify(self, hostname: str | None) -> HostClassification:
        host = normalize_host(hostname)

        if not host or host in self.local_hosts:
            return HostClassification(host=host, host_class="main_domain")

        if self._is_preview_host(host):
            return HostClassification(host=host, host_class="main_domain")

        if host == self.primary_domain or host == f"www.{self.primary_domain}":
            return HostClassification(host=host, host_class="main_domain")

        suffix = f".{self.primary_domain}"
        if host.endswith(suffix):
            label = host[: -len(suffix)].split(".")[0]
            if not label or label in self.reserved_subdomains:
                return HostClassification(host=host, host_class="main_domain")
            return HostClassification(host=host, host_class="subdomain", subdomain=label)

        return HostClassification(host=host, host_class="custom_domain")

    def resolve(self, hostname: str | None) -> TenantResolution:
        classification = self.classify(hostname)

        if classification.host_class == "main_domain":
            return TenantResolution(
                host=classification.host,
                host_class="main_domain",
                status="no_tenant",
            )

        if self.cache is None:
            return self._lookup(classification)

        return self.cache.get_or_load(
            classification.host,
            lambda: self._lookup(classification),
            cacheable=lambda r: not r.retryable,
            tenant_of=lambda r: r.tenant_id,
        )

    def _lookup(self, classification: HostClassification) -> TenantResolution:
        try:
            if classification.host_class == "subdomain":
                return self._lookup_subdomain(classification)
            return self._lookup_custom_domain(classification)
        except Upstream as exc:
            logger.warning(
                "Tenant directory unavailable for host=%s (%s)", classification.host, exc.reason
            )
            return TenantResolution(
                host=classification.host,
                host_class=classification.host_class,
                status="error",
                subdomain=classification.subdomain,
                error=ResolutionError(code="upstream", message=WORKSPACE_UNAVAILABLE),
            )

    def _lookup_subdomain(self, classification: HostClassification) -> TenantResolution:
        record = self.directory.find_by_slug(classification.subdomain)
        if record is None:
            return TenantResolution(
                host=classification.host,
                host_class="subdomain",
                status="error",
                subdomain=classification.subdomain,
                error=ResolutionError(code="not_found", message=WORKSPACE_NOT_FOUND),
            )
        if not record.is_active:
            return TenantResolution(
                host=classification.host,
                host_class="subdomain",
                status="error",
                subdomain=classification.subdomain,
                error=ResolutionError(code="inactive", message=WORKSPACE_INACTIVE),
                tenant_id=record.id,
            )
        return TenantResolution(
            host=classification.host,
            host_class="subdomain",
            status="resolved",
            subdomain=classification.subdomain,
            tenant=record,
            tenant_id=record.id,
        )

    def _lookup_custom_domain(self, classification: HostClassification) -> TenantResolution:
        record = self.directory.find_by_custom_domain(custom_domain_candidates(classification.host))
        if record is not None and record.is_active:
            return TenantResolution(
                host=classification.host,
                host_class="custom_domain",
                status="resolved",
                tenant=record,
                tenant_id=record.id,
            )
        # Unknown or unverified host: render tenant-less content, not an error page.
        return TenantResolution(
            host=classification.host,
            host_class="custom_domain",
            status="unresolved_custom_domain",
            tenant_id=record.id if record else None,
        )

    def invalidate_tenant(self, tenant_id: str) -> None:
        if self.cache is not None:
            dropped = self.cache.invalidate_tenant(tenant_id)
            logger.info("Invalidated %s cached host(s) for tenant=%s", dropped, tenant_id)

    def invalidate_host(self, hostname: str) -> None:
        if self.cache is None:
            return
        host = normalize_host(hostname)
        self.cache.invalidate_host(host)
        bare = strip_www(host)
        self.cache.invalidate_host(bare)
        self.cache.invalidate_host(f"www.{bare}")


def workspace_url(slug: str, primary_domain: str) -> str:
    return f"https://{slug}.{normalize_host(primary_domain)}"


def is_company_workspace(hostname: str, slug: str, primary_domain: str) -> bool:
    return normalize_host(hostname) == f"{slug}.{normalize_host(primary_domain)}"
