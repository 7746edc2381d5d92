import threading
from typing import Callable

from salescrm.hierarchy.tree import OrgTree


class TreeCache:
    """
    Per-tenant ``OrgTree`` cache.

    Every membership, manager or role write must call ``invalidate``. A tree
    whose load started before an invalidation is handed to its caller but
    never stored, so a concurrent write cannot be masked by a stale build.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._trees: dict[str, OrgTree] = {}
        self._generation: dict[str, int] = {}

    def get(self, tenant_id: str, build: Callable[[], OrgTree]) -> OrgTree:
        with self._lock:
            tree = self._trees.get(tenant_id)
            if tree is not None:
                return tree
            generation = self._generation.get(tenant_id, 0)

        tree = build()

        with self._lock:
            if self._generation.get(tenant_id, 0) == generation:
                self._trees[tenant_id] = tree
        return tree

    def peek(self, tenant_id: str) -> OrgTree | None:
        with self._lock:
            return self._trees.get(tenant_id)

    def invalidate(self, tenant_id: str) -> None:
        with self._lock:
            self._trees.pop(tenant_id, None)
            self._generation[tenant_id] = self._generation.get(tenant_id, 0) + 1
