import logging
import secrets
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from salescrm.auth.deps import get_current_user
from salescrm.auth.models import RefreshToken, User
from salescrm.auth.schemas import (
    LoginRequest,
    LogoutRequest,
    MeResponse,
    RefreshRequest,
    TokenResponse,
)
from salescrm.auth.security import (
    JWTError,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_token,
    member_claims,
    verify_password,
)
from salescrm.db.session import get_db
from salescrm.hierarchy.deps import get_role_table
from salescrm.hierarchy.roles import RoleTable
from salescrm.tenants.deps import get_resolution
from salescrm.tenants.models import Tenant

logger = logging.getLogger(__name__)

router = APIRouter()
MAX_ACTIVE_REFRESH_TOKENS = 5


def _enforce_refresh_token_limit(db: Session, *, user_id: str, tenant_id: str) -> None:
    now = datetime.utcnow()
    active_tokens = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.user_id == user_id,
            RefreshToken.tenant_id == tenant_id,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .order_by(RefreshToken.created_at.desc())
        .all()
    )
    for stale in active_tokens[MAX_ACTIVE_REFRESH_TOKENS:]:
        stale.revoked_at = now
        db.add(stale)


def _issue_tokens(db: Session, user: User) -> TokenResponse:
    claims = member_claims(user)
    access_token = create_access_token(claims)
    refresh_token, refresh_expires_at = create_refresh_token(claims)
    db.add(
        RefreshToken(
            id=f"rt_{secrets.token_hex(10)}",
            user_id=user.id,
            tenant_id=user.tenant_id,
            token_hash=hash_token(refresh_token),
            expires_at=refresh_expires_at,
            revoked_at=None,
        )
    )
    _enforce_refresh_token_limit(db, user_id=user.id, tenant_id=user.tenant_id)
    db.commit()
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    resolution = get_resolution(request)
    if resolution.resolved:
        tenant_id = resolution.tenant.id
    elif payload.tenant_id:
        tenant_id = payload.tenant_id
    else:
        raise HTTPException(status_code=422, detail="tenant_id is required outside a workspace host")

    tenant = db.get(Tenant, tenant_id)
    if not tenant or not tenant.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user = (
        db.query(User)
        .filter(
            User.tenant_id == tenant_id,
            User.email == str(payload.email).lower(),
        )
        .first()
    )
    password_ok = False
    if user:
        try:
            password_ok = verify_password(payload.password, user.password_hash)
        except ValueError:
            password_ok = False

    if not user or not password_ok:
        logger.info("Failed login tenant=%s email=%s", tenant_id, str(payload.email).lower())
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return _issue_tokens(db, user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if claims.get("typ") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = claims.get("sub")
    tenant_id = claims.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid refresh token payload")

    row = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == hash_token(payload.refresh_token),
            RefreshToken.user_id == user_id,
            RefreshToken.tenant_id == tenant_id,
        )
        .first()
    )
    if not row:
        raise HTTPException(status_code=401, detail="Refresh token not recognized")
    if row.revoked_at is not None:
        raise HTTPException(status_code=401, detail="Refresh token revoked")
    if row.expires_at <= datetime.utcnow():
        raise HTTPException(status_code=401, detail="Refresh token expired")

    # A removed member has no row left; its tokens die with it.
    user = db.get(User, user_id)
    if not user or user.tenant_id != tenant_id:
        raise HTTPException(status_code=401, detail="User not found")

    row.revoked_at = datetime.utcnow()
    db.add(row)
    return _issue_tokens(db, user)


@router.post("/logout")
def logout(payload: LogoutRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token)
    except JWTError:
        return {"ok": True}

    row = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == hash_token(payload.refresh_token),
            RefreshToken.user_id == claims.get("sub"),
            RefreshToken.tenant_id == claims.get("tenant_id"),
        )
        .first()
    )
    if row and row.revoked_at is None:
        row.revoked_at = datetime.utcnow()
        db.add(row)
        db.commit()

    return {"ok": True}


@router.get("/me", response_model=MeResponse)
def me(
    current_user: User = Depends(get_current_user),
    roles: RoleTable = Depends(get_role_table),
):
    return MeResponse(
        id=current_user.id,
        tenant_id=current_user.tenant_id,
        email=current_user.email,
        full_name=current_user.full_name,
        role=current_user.role,
        role_label=roles.label(current_user.role),
        manager_id=current_user.manager_id,
    )
