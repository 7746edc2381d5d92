import logging

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from salescrm.auth.models import User
from salescrm.auth.security import decode_token
from salescrm.core.config import settings
from salescrm.db.session import get_db
from salescrm.hierarchy.store import to_node
from salescrm.hierarchy.tree import MemberNode
from salescrm.tenants.deps import get_resolution
from salescrm.tenants.models import Tenant
from salescrm.tenants.resolver import is_company_workspace, workspace_url

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def enforce_workspace(request: Request, user: User, db: Session) -> None:
    """
    Reject a principal whose tenant differs from the tenant the host resolved to,
    pointing them at their own workspace instead.
    """
    resolution = get_resolution(request)
    if not resolution.resolved or resolution.tenant.id == user.tenant_id:
        return
    own = db.get(Tenant, user.tenant_id)
    redirect_to = None
    # No redirect when the host already is the user's workspace address (stale slug mapping).
    if own is not None and not is_company_workspace(resolution.host, own.slug, settings.PRIMARY_DOMAIN):
        redirect_to = workspace_url(own.slug, settings.PRIMARY_DOMAIN)
    logger.info(
        "Cross-workspace access user=%s tenant=%s host_tenant=%s",
        user.id,
        user.tenant_id,
        resolution.tenant.id,
    )
    raise HTTPException(
        status_code=403,
        detail={
            "code": "cross_tenant",
            "message": "This account belongs to a different workspace",
            "redirect_to": redirect_to,
        },
    )


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing token")

    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")

    token_type = payload.get("typ")
    if token_type and token_type != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.get(User, user_id)
    if not user or user.tenant_id != tenant_id:
        raise HTTPException(status_code=401, detail="User not found")

    tenant = db.get(Tenant, user.tenant_id)
    if not tenant or not tenant.is_active:
        raise HTTPException(status_code=403, detail="This workspace is currently inactive")

    enforce_workspace(request, user, db)
    return user


def get_current_member(user: User = Depends(get_current_user)) -> MemberNode:
    return to_node(user)
