"""
In-memory organizational tree for one tenant.

Members point at their manager; the tree keeps the reverse adjacency
(manager -> direct reports) so subtree queries are a breadth-first walk.
The stored data is expected to be a forest, but nothing here assumes it:
cycles and dangling manager references are detected when the tree is built
and every walk is bounded by a visited set and a maximum depth.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from salescrm.core.errors import Malformed
from salescrm.hierarchy.roles import RoleTable

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


@dataclass(frozen=True)
class MemberNode:
    id: str
    tenant_id: str
    role: str
    manager_id: str | None = None
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class TraversalReport:
    cycle_member_ids: tuple[str, ...] = ()
    dangling_member_ids: tuple[str, ...] = ()
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return not (self.cycle_member_ids or self.dangling_member_ids or self.truncated)

    def as_error(self) -> Malformed | None:
        if self.ok:
            return None
        parts = []
        if self.cycle_member_ids:
            parts.append(f"cycle through {', '.join(self.cycle_member_ids)}")
        if self.dangling_member_ids:
            parts.append(f"dangling manager for {', '.join(self.dangling_member_ids)}")
        if self.truncated:
            parts.append("depth limit reached")
        return Malformed("Malformed hierarchy: " + "; ".join(parts))


@dataclass(frozen=True)
class VisibleSet:
    member_ids: frozenset[str]
    report: TraversalReport = field(default_factory=TraversalReport)


class OrgTree:
    def __init__(self, tenant_id: str, members: Iterable[MemberNode], *, max_depth: int = DEFAULT_MAX_DEPTH):
        self.tenant_id = tenant_id
        self.max_depth = max(1, int(max_depth))
        self.nodes: dict[str, MemberNode] = {}
        for m in members:
            if m.tenant_id != tenant_id:
                # Never let another tenant's row into this tree.
                logger.warning("Skipping member=%s from tenant=%s while building tenant=%s", m.id, m.tenant_id, tenant_id)
                continue
            self.nodes[m.id] = m

        self._reports: dict[str, list[str]] = {}
        self.roots: list[str] = []
        dangling: list[str] = []
        for m in self.nodes.values():
            if m.manager_id is None:
                self.roots.append(m.id)
            elif m.manager_id not in self.nodes:
                dangling.append(m.id)
                self.roots.append(m.id)
            else:
                self._reports.setdefault(m.manager_id, []).append(m.id)

        self.dangling_member_ids: frozenset[str] = frozenset(dangling)
        self.cycle_member_ids: frozenset[str] = frozenset(self._find_cycle_members())
        if self.dangling_member_ids or self.cycle_member_ids:
            logger.warning(
                "Malformed hierarchy for tenant=%s cycles=%s dangling=%s",
                tenant_id,
                sorted(self.cycle_member_ids),
                sorted(self.dangling_member_ids),
            )

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, member_id: str) -> bool:
        return member_id in self.nodes

    def get(self, member_id: str) -> MemberNode | None:
        return self.nodes.get(member_id)

    def direct_reports(self, member_id: str) -> list[str]:
        return list(self._reports.get(member_id, ()))

    def _find_cycle_members(self) -> set[str]:
        # Each node has at most one outgoing (manager) edge, so walking up from
        # every unvisited node finds each cycle exactly once.
        state: dict[str, int] = {}  # 1 = on current path, 2 = finished
        on_cycle: set[str] = set()
        for start in self.nodes:
            if start in state:
                continue
            path: list[str] = []
            current: str | None = start
            while current is not None and current in self.nodes and current not in state:
                state[current] = 1
                path.append(current)
                current = self.nodes[current].manager_id
            if current is not None and state.get(current) == 1:
                on_cycle.update(path[path.index(current):])
            for node_id in path:
                state[node_id] = 2
        return on_cycle

    def ancestors(self, member_id: str) -> list[str]:
        """Manager chain above ``member_id``, nearest first. Stops at a repeat or the depth limit."""
        chain: list[str] = []
        seen = {member_id}
        node = self.nodes.get(member_id)
        while node is not None and node.manager_id is not None and len(chain) < self.max_depth:
            if node.manager_id in seen or node.manager_id not in self.nodes:
                break
            chain.append(node.manager_id)
            seen.add(node.manager_id)
            node = self.nodes[node.manager_id]
        return chain

    def subtree(self, root_id: str) -> VisibleSet:
        """``root_id`` plus every transitive direct report, walked breadth-first."""
        if root_id not in self.nodes:
            return VisibleSet(member_ids=frozenset())

        visited = {root_id}
        cycles: list[str] = []
        truncated = False
        queue: deque[tuple[str, int]] = deque([(root_id, 0)])
        while queue:
            current, depth = queue.popleft()
            for child in self._reports.get(current, ()):
                if child in visited or child in self.cycle_member_ids:
                    # Cut the branch; the cyclic part is left out of the result.
                    if child not in cycles and child != root_id:
                        cycles.append(child)
                    continue
                if depth + 1 > self.max_depth:
                    truncated = True
                    continue
                visited.add(child)
                queue.append((child, depth + 1))

        dangling = tuple(sorted(visited & self.dangling_member_ids - {root_id}))
        report = TraversalReport(
            cycle_member_ids=tuple(sorted(cycles)),
            dangling_member_ids=dangling,
            truncated=truncated,
        )
        if not report.ok:
            logger.warning("Truncated subtree walk for member=%s tenant=%s: %s", root_id, self.tenant_id, report)
        return VisibleSet(member_ids=frozenset(visited), report=report)

    def visible_to(self, principal_id: str, principal_role: str | None, roles: RoleTable) -> VisibleSet:
        if principal_id not in self.nodes:
            return VisibleSet(member_ids=frozenset())
        if roles.is_owner(principal_role):
            report = TraversalReport(
                cycle_member_ids=tuple(sorted(self.cycle_member_ids)),
                dangling_member_ids=tuple(sorted(self.dangling_member_ids)),
            )
            return VisibleSet(member_ids=frozenset(self.nodes), report=report)
        return self.subtree(principal_id)

    def _reaches(self, start_id: str, wanted_id: str) -> bool:
        # Full manager chain, no depth cap; stops at a repeat, a dangling id or a root.
        seen: set[str] = set()
        current: str | None = start_id
        while current is not None and current in self.nodes and current not in seen:
            if current == wanted_id:
                return True
            seen.add(current)
            current = self.nodes[current].manager_id
        return False

    def is_in_subtree(self, root_id: str, member_id: str) -> bool:
        if root_id not in self.nodes:
            return False
        return self._reaches(member_id, root_id)

    def would_create_cycle(self, target_id: str, new_manager_id: str | None) -> bool:
        """True when ``target_id`` is ``new_manager_id`` or one of its ancestors."""
        if new_manager_id is None:
            return False
        if new_manager_id == target_id:
            return True
        if new_manager_id in self.cycle_member_ids:
            return True
        return self._reaches(new_manager_id, target_id)

    def chart(self, root_ids: Iterable[str], visible: frozenset[str]) -> list[dict]:
        """Nested ``{"member": node, "reports": [...]}`` dicts limited to ``visible``."""

        def _build(node_id: str, seen: set[str], depth: int) -> dict:
            seen.add(node_id)
            children = []
            if depth < self.max_depth:
                for child in self._reports.get(node_id, ()):
                    if child in visible and child not in seen:
                        children.append(_build(child, seen, depth + 1))
            return {"member": self.nodes[node_id], "reports": children}

        seen: set[str] = set()
        return [_build(r, seen, 0) for r in root_ids if r in visible and r not in seen]
