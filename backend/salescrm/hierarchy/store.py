import logging
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from salescrm.auth.models import RefreshToken, User
from salescrm.core.config import settings
from salescrm.core.timeouts import call_with_timeout
from salescrm.db.session import SessionLocal, read_session
from salescrm.hierarchy.tree import MemberNode

logger = logging.getLogger(__name__)


def to_node(row: User) -> MemberNode:
    return MemberNode(
        id=row.id,
        tenant_id=row.tenant_id,
        role=(row.role or "").strip().lower(),
        manager_id=row.manager_id,
        full_name=row.full_name,
        email=row.email,
        phone=row.phone,
    )


class MemberStore(Protocol):
    def load_members(self, tenant_id: str) -> list[MemberNode]: ...

    def find_member(self, member_id: str) -> MemberNode | None: ...

    def update_role(self, tenant_id: str, member_id: str, role: str) -> None: ...

    def update_manager(self, tenant_id: str, member_id: str, manager_id: str | None) -> None: ...

    def reparent_reports(self, tenant_id: str, old_manager_id: str, new_manager_id: str | None) -> int: ...

    def delete_member(self, tenant_id: str, member_id: str) -> None: ...

    def create_member(self, member: MemberNode, *, password_hash: str) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqlMemberStore:
    """
    Member/role store over the ``users`` table.

    Bulk loads use their own short-lived session under
    MEMBER_LOAD_TIMEOUT_SECONDS. Writes go through the request session and
    are only made durable by ``commit`` so a multi-step mutation (reparent,
    then delete) lands atomically. Every write is filtered by tenant id.
    """

    def __init__(
        self,
        db: Session,
        *,
        session_factory: sessionmaker = SessionLocal,
        load_timeout: float | None = None,
    ):
        self.db = db
        self._session_factory = session_factory
        self._load_timeout = (
            load_timeout if load_timeout is not None else settings.MEMBER_LOAD_TIMEOUT_SECONDS
        )

    def load_members(self, tenant_id: str) -> list[MemberNode]:
        def _load() -> list[MemberNode]:
            with read_session(self._session_factory) as db:
                rows = db.execute(
                    select(User).where(User.tenant_id == tenant_id).order_by(User.created_at.asc())
                ).scalars().all()
                return [to_node(r) for r in rows]

        members = call_with_timeout(_load, timeout=self._load_timeout, what="member list load")
        logger.debug("Loaded %s member(s) for tenant=%s", len(members), tenant_id)
        return members

    def find_member(self, member_id: str) -> MemberNode | None:
        row = self.db.get(User, member_id)
        return to_node(row) if row else None

    def update_role(self, tenant_id: str, member_id: str, role: str) -> None:
        self.db.execute(
            update(User).where(User.id == member_id, User.tenant_id == tenant_id).values(role=role)
        )

    def update_manager(self, tenant_id: str, member_id: str, manager_id: str | None) -> None:
        self.db.execute(
            update(User)
            .where(User.id == member_id, User.tenant_id == tenant_id)
            .values(manager_id=manager_id)
        )

    def reparent_reports(self, tenant_id: str, old_manager_id: str, new_manager_id: str | None) -> int:
        result = self.db.execute(
            update(User)
            .where(User.tenant_id == tenant_id, User.manager_id == old_manager_id)
            .values(manager_id=new_manager_id)
        )
        return int(result.rowcount or 0)

    def delete_member(self, tenant_id: str, member_id: str) -> None:
        # Authentication identity first, then the profile.
        self.db.execute(
            delete(RefreshToken).where(
                RefreshToken.user_id == member_id,
                RefreshToken.tenant_id == tenant_id,
            )
        )
        self.db.execute(delete(User).where(User.id == member_id, User.tenant_id == tenant_id))

    def create_member(self, member: MemberNode, *, password_hash: str) -> None:
        self.db.add(
            User(
                id=member.id,
                tenant_id=member.tenant_id,
                email=(member.email or "").lower(),
                full_name=member.full_name,
                phone=member.phone,
                password_hash=password_hash,
                role=member.role,
                manager_id=member.manager_id,
            )
        )
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
