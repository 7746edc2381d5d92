from fastapi import Depends
from sqlalchemy.orm import Session

from salescrm.core.config import settings
from salescrm.db.session import get_db
from salescrm.hierarchy.cache import TreeCache
from salescrm.hierarchy.roles import DEFAULT_ROLE_TABLE, RoleTable
from salescrm.hierarchy.service import HierarchyService
from salescrm.hierarchy.store import SqlMemberStore

# One tree cache per process, keyed by tenant id.
tree_cache = TreeCache()


def get_role_table() -> RoleTable:
    return DEFAULT_ROLE_TABLE


def get_hierarchy_service(
    db: Session = Depends(get_db),
    roles: RoleTable = Depends(get_role_table),
) -> HierarchyService:
    return HierarchyService(
        SqlMemberStore(db),
        roles,
        tree_cache=tree_cache,
        max_depth=settings.MAX_HIERARCHY_DEPTH,
    )
