import logging
import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from salescrm.audit.service import (
    DOMAIN_SAVED,
    DOMAIN_VERIFIED,
    TENANT_DEACTIVATED,
    write_ops_audit_log,
)
from salescrm.auth.models import User
from salescrm.auth.rbac import require_owner
from salescrm.core.config import settings
from salescrm.core.errors import Upstream
from salescrm.db.session import get_db
from salescrm.hierarchy.deps import tree_cache
from salescrm.tenants.deps import get_domain_verifier, get_resolution, get_tenant_resolver
from salescrm.tenants.dns import DomainVerifier
from salescrm.tenants.models import (
    DOMAIN_STATUS_ACTIVE,
    DOMAIN_STATUS_PENDING,
    Tenant,
)
from salescrm.tenants.resolver import TenantResolution, TenantResolver, normalize_host, workspace_url
from salescrm.tenants.schemas import (
    DeactivateResponse,
    DomainSaveRequest,
    DomainStatusOut,
    DomainVerifyOut,
    ResolutionOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_DOMAIN_RE = re.compile(r"^(?=.{4,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


def _to_resolution_out(resolution: TenantResolution) -> ResolutionOut:
    tenant = None
    if resolution.tenant is not None:
        tenant = {
            "id": resolution.tenant.id,
            "name": resolution.tenant.name,
            "slug": resolution.tenant.slug,
            "logo_url": resolution.tenant.logo_url,
            "primary_color": resolution.tenant.primary_color,
            "workspace_url": workspace_url(resolution.tenant.slug, settings.PRIMARY_DOMAIN),
        }
    error = None
    if resolution.error is not None:
        error = {
            "code": resolution.error.code,
            "message": resolution.error.message,
            "retryable": resolution.error.retryable,
        }
    return ResolutionOut(
        host=resolution.host,
        host_class=resolution.host_class,
        status=resolution.status,
        subdomain=resolution.subdomain,
        tenant=tenant,
        error=error,
    )


def _clean_custom_domain(raw: str | None) -> str | None:
    value = (raw or "").strip().lower()
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme):]
    value = normalize_host(value.split("/", 1)[0])
    return value or None


def _own_tenant(db: Session, user: User) -> Tenant:
    tenant = db.get(Tenant, user.tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.get("/resolve", response_model=ResolutionOut)
def resolve_host(
    host: str = Query(min_length=1, max_length=255),
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    return _to_resolution_out(resolver.resolve(host))


@router.get("/current", response_model=ResolutionOut)
def current_workspace(request: Request):
    return _to_resolution_out(get_resolution(request))


@router.put("/domain", response_model=DomainStatusOut)
def save_custom_domain(
    payload: DomainSaveRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner()),
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    tenant = _own_tenant(db, current_user)
    previous = tenant.custom_domain
    domain = _clean_custom_domain(payload.custom_domain)

    if domain is not None:
        if not _DOMAIN_RE.match(domain):
            raise HTTPException(status_code=422, detail="Invalid domain")
        if resolver.classify(domain).host_class != "custom_domain":
            raise HTTPException(status_code=422, detail="Domain is reserved by the platform")
        taken = db.execute(
            select(Tenant.id).where(Tenant.custom_domain == domain, Tenant.id != tenant.id)
        ).scalar_one_or_none()
        if taken:
            raise HTTPException(status_code=409, detail="Domain is already connected to another workspace")

    tenant.custom_domain = domain
    tenant.domain_status = DOMAIN_STATUS_PENDING if domain else None
    db.add(tenant)
    db.commit()

    resolver.invalidate_tenant(tenant.id)
    for host in (previous, domain):
        if host:
            resolver.invalidate_host(host)

    write_ops_audit_log(
        db,
        tenant_id=tenant.id,
        actor_user_id=current_user.id,
        action_type=DOMAIN_SAVED,
        target_id=domain,
        metadata={"previous": previous},
    )
    return DomainStatusOut(tenant_id=tenant.id, custom_domain=tenant.custom_domain, domain_status=tenant.domain_status)


@router.post("/domain/verify", response_model=DomainVerifyOut)
def verify_custom_domain(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner()),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    verifier: DomainVerifier = Depends(get_domain_verifier),
):
    tenant = _own_tenant(db, current_user)
    if not tenant.custom_domain:
        raise HTTPException(status_code=409, detail="No custom domain configured")

    try:
        check = verifier.check(tenant.custom_domain)
    except Upstream as exc:
        raise HTTPException(
            status_code=503,
            detail={"code": exc.code, "message": "Could not check DNS records, try again shortly"},
            headers={"Retry-After": "30"},
        ) from exc

    # Not pointing at us yet: stays pending until the owner fixes DNS.
    tenant.domain_status = DOMAIN_STATUS_ACTIVE if check.valid else DOMAIN_STATUS_PENDING
    db.add(tenant)
    db.commit()

    resolver.invalidate_tenant(tenant.id)
    resolver.invalidate_host(tenant.custom_domain)

    write_ops_audit_log(
        db,
        tenant_id=tenant.id,
        actor_user_id=current_user.id,
        action_type=DOMAIN_VERIFIED,
        target_id=tenant.custom_domain,
        metadata={"domain_status": tenant.domain_status, "dns_valid": check.valid},
    )
    return DomainVerifyOut(
        tenant_id=tenant.id,
        custom_domain=tenant.custom_domain,
        domain_status=tenant.domain_status,
        dns_valid=check.valid,
        records=[{"type": r.type, "name": r.name, "data": r.data} for r in check.records],
        message="Domain verified and activated" if check.valid else "DNS is not pointing at this platform yet",
    )


@router.post("/deactivate", response_model=DeactivateResponse)
def deactivate_workspace(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner()),
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    tenant = _own_tenant(db, current_user)
    tenant.is_active = False
    tenant.deactivated_at = datetime.utcnow()
    db.add(tenant)
    db.commit()

    resolver.invalidate_tenant(tenant.id)
    if tenant.custom_domain:
        resolver.invalidate_host(tenant.custom_domain)
    tree_cache.invalidate(tenant.id)
    logger.info("Tenant deactivated tenant=%s actor=%s", tenant.id, current_user.id)

    write_ops_audit_log(
        db,
        tenant_id=tenant.id,
        actor_user_id=current_user.id,
        action_type=TENANT_DEACTIVATED,
        target_id=tenant.id,
    )
    return DeactivateResponse(tenant_id=tenant.id, is_active=tenant.is_active)
