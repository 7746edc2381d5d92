import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from salescrm.core.config import settings
from salescrm.core.timeouts import call_with_timeout
from salescrm.db.session import SessionLocal, read_session
from salescrm.tenants.models import DOMAIN_STATUS_ACTIVE, Tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantRecord:
    """Detached snapshot of a tenant row; safe to cache and share across threads."""

    id: str
    name: str
    slug: str
    is_active: bool
    custom_domain: str | None = None
    domain_status: str | None = None
    logo_url: str | None = None
    primary_color: str | None = None

    @classmethod
    def from_row(cls, row: Tenant) -> "TenantRecord":
        return cls(
            id=row.id,
            name=row.name,
            slug=row.slug,
            is_active=bool(row.is_active),
            custom_domain=row.custom_domain,
            domain_status=row.domain_status,
            logo_url=row.logo_url,
            primary_color=row.primary_color,
        )


class TenantDirectory(Protocol):
    def find_by_slug(self, slug: str) -> TenantRecord | None: ...

    def find_by_custom_domain(self, candidates: Sequence[str]) -> TenantRecord | None: ...


class SqlTenantDirectory:
    """
    Directory backed by the ``companies`` table.

    Each lookup opens its own short-lived session and runs under
    DIRECTORY_TIMEOUT_SECONDS; failures surface as ``Upstream``.
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        *,
        timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self._timeout = timeout if timeout is not None else settings.DIRECTORY_TIMEOUT_SECONDS

    def find_by_slug(self, slug: str) -> TenantRecord | None:
        def _lookup() -> TenantRecord | None:
            with read_session(self._session_factory) as db:
                row = db.execute(select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none()
                return TenantRecord.from_row(row) if row else None

        logger.debug("Directory lookup by slug=%s", slug)
        return call_with_timeout(_lookup, timeout=self._timeout, what="tenant directory lookup")

    def find_by_custom_domain(self, candidates: Sequence[str]) -> TenantRecord | None:
        wanted = [c for c in candidates if c]
        if not wanted:
            return None

        def _lookup() -> TenantRecord | None:
            with read_session(self._session_factory) as db:
                row = (
                    db.execute(
                        select(Tenant)
                        .where(
                            or_(*[Tenant.custom_domain == c for c in wanted]),
                            Tenant.domain_status == DOMAIN_STATUS_ACTIVE,
                        )
                        .limit(1)
                    )
                    .scalars()
                    .first()
                )
                return TenantRecord.from_row(row) if row else None

        logger.debug("Directory lookup by custom domain candidates=%s", wanted)
        return call_with_timeout(_lookup, timeout=self._timeout, what="tenant directory lookup")
