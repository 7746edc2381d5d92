import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from salescrm.auth.models import User
from salescrm.auth.security import create_access_token, hash_password, member_claims
from salescrm.core.config import settings
from salescrm.db.session import get_db
from salescrm.hierarchy.roles import OWNER_ROLE
from salescrm.system.schemas import BootstrapRequest, BootstrapResponse
from salescrm.tenants.deps import get_tenant_resolver
from salescrm.tenants.models import Tenant
from salescrm.tenants.resolver import TenantResolver, workspace_url

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/bootstrap", response_model=BootstrapResponse)
def bootstrap(
    payload: BootstrapRequest,
    db: Session = Depends(get_db),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    x_bootstrap_secret: str | None = Header(default=None, alias="X-Bootstrap-Secret"),
):
    if not settings.BOOTSTRAP_ENABLED:
        raise HTTPException(status_code=403, detail="Bootstrap is disabled")

    expected = settings.BOOTSTRAP_SECRET
    if not expected or x_bootstrap_secret != expected:
        raise HTTPException(status_code=401, detail="Invalid bootstrap secret")

    # Only allowed while the database has no companies
    if db.query(Tenant).first() is not None:
        raise HTTPException(status_code=409, detail="Bootstrap already completed")

    slug = payload.slug.lower()
    if slug in resolver.reserved_subdomains:
        raise HTTPException(status_code=422, detail="This subdomain is reserved")

    tenant = Tenant(id=payload.company_id, name=payload.company_name, slug=slug, is_active=True)
    db.add(tenant)
    db.flush()

    owner = User(
        id=payload.owner_id,
        tenant_id=tenant.id,
        email=str(payload.owner_email).lower(),
        full_name=payload.owner_full_name,
        password_hash=hash_password(payload.owner_password),
        role=OWNER_ROLE,
        manager_id=None,
    )
    db.add(owner)
    db.commit()

    # A prior "not found" for this slug may be cached.
    resolver.invalidate_host(f"{slug}.{resolver.primary_domain}")
    logger.info("Bootstrap created company=%s slug=%s owner=%s", tenant.id, slug, owner.id)

    return BootstrapResponse(
        company={
            "id": tenant.id,
            "name": tenant.name,
            "slug": tenant.slug,
            "workspace_url": workspace_url(tenant.slug, resolver.primary_domain),
        },
        owner={"id": owner.id, "tenant_id": owner.tenant_id, "email": owner.email, "role": owner.role},
        access_token=create_access_token(member_claims(owner)),
    )
