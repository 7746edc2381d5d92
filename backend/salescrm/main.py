import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.engine.url import make_url

from salescrm.auth.router import router as auth_router
from salescrm.hierarchy.router import router as team_router
from salescrm.leads.router import router as leads_router
from salescrm.system.router import router as system_router
from salescrm.tenants.deps import get_tenant_resolver
from salescrm.tenants.middleware import TenantResolutionMiddleware
from salescrm.tenants.router import router as tenants_router
from salescrm.core.config import settings
from salescrm.db.init_db import init_db
from salescrm.db.session import engine

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Multi-tenant Sales CRM",
    version="0.1.0",
)

# Host -> tenant resolution runs inside CORS so preflights are answered first.
app.add_middleware(TenantResolutionMiddleware, resolver_factory=get_tenant_resolver)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.on_event("startup")
def on_startup() -> None:
    db_url = make_url(settings.DATABASE_URL)
    logger.info(
        "Config sanity: env=%s db_host=%s primary_domain=%s reserved=%s cache_ttl=%ss",
        settings.ENV,
        db_url.host or "local",
        settings.PRIMARY_DOMAIN,
        ",".join(settings.RESERVED_SUBDOMAINS),
        settings.TENANT_CACHE_TTL_SECONDS,
    )
    init_db()


# --- Routers ---
app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(tenants_router, prefix="/api/v1/tenant", tags=["tenant"])
app.include_router(team_router, prefix="/api/v1/team", tags=["team"])
app.include_router(leads_router, prefix="/api/v1/leads", tags=["leads"])
app.include_router(system_router, prefix="/api/v1/system", tags=["system"])


# --- System ---
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/ready", tags=["system"])
def readiness():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}
