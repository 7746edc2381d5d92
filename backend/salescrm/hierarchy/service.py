"""
Hierarchy & authorization engine.

All questions are answered against an ``OrgTree`` for the actor's tenant and
an injected ``RoleTable``. Reads use the per-tenant cached tree; every
mutation re-reads the tree from the store before checking, writes, commits
and then invalidates the cache.
"""
import logging
from dataclasses import dataclass, field, replace

from salescrm.core.errors import CrossTenant, Malformed, NotFound, Unauthorized
from salescrm.hierarchy.cache import TreeCache
from salescrm.hierarchy.roles import RoleTable
from salescrm.hierarchy.store import MemberStore
from salescrm.hierarchy.tree import DEFAULT_MAX_DEPTH, MemberNode, OrgTree, TraversalReport

logger = logging.getLogger(__name__)

_ERROR_BY_REASON = {
    "insufficient_level": Unauthorized,
    "not_in_subtree": Unauthorized,
    "self_assignment": Unauthorized,
    "unknown_role": Unauthorized,
    "cross_tenant": CrossTenant,
    "not_found": NotFound,
    "cycle": Malformed,
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, message: str) -> "Decision":
        return cls(allowed=False, reason=reason, message=message)

    def __bool__(self) -> bool:
        return self.allowed

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        exc_cls = _ERROR_BY_REASON.get(self.reason or "", Unauthorized)
        raise exc_cls(self.message or "Not allowed", reason=self.reason)


@dataclass(frozen=True)
class VisibleMembers:
    members: list[MemberNode]
    report: TraversalReport = field(default_factory=TraversalReport)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(m.id for m in self.members)


@dataclass(frozen=True)
class RemovalResult:
    removed_id: str
    reparented_count: int
    reports_moved_to: str | None


class HierarchyService:
    def __init__(
        self,
        store: MemberStore,
        roles: RoleTable,
        *,
        tree_cache: TreeCache | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.store = store
        self.roles = roles
        self.tree_cache = tree_cache
        self.max_depth = max_depth

    # -- tree access -------------------------------------------------------

    def _build_tree(self, tenant_id: str) -> OrgTree:
        return OrgTree(tenant_id, self.store.load_members(tenant_id), max_depth=self.max_depth)

    def tree(self, tenant_id: str) -> OrgTree:
        if self.tree_cache is None:
            return self._build_tree(tenant_id)
        return self.tree_cache.get(tenant_id, lambda: self._build_tree(tenant_id))

    def _fresh_tree(self, tenant_id: str) -> OrgTree:
        if self.tree_cache is not None:
            self.tree_cache.invalidate(tenant_id)
        return self._build_tree(tenant_id)

    def _invalidate(self, tenant_id: str) -> None:
        if self.tree_cache is not None:
            self.tree_cache.invalidate(tenant_id)

    def _locate(self, tree: OrgTree, actor: MemberNode, member_id: str) -> tuple[MemberNode | None, Decision]:
        node = tree.get(member_id)
        if node is not None:
            return node, Decision.allow()
        other = self.store.find_member(member_id)
        if other is not None and other.tenant_id != actor.tenant_id:
            return None, Decision.deny("cross_tenant", "Target user is not in your organization.")
        return None, Decision.deny("not_found", "Member not found")

    # -- visibility --------------------------------------------------------

    def visible_members(self, actor: MemberNode) -> VisibleMembers:
        tree = self.tree(actor.tenant_id)
        if actor.id not in tree:
            raise NotFound("Member not found")
        visible = tree.visible_to(actor.id, actor.role, self.roles)
        members = [tree.nodes[mid] for mid in visible.member_ids]
        members.sort(key=lambda m: (self.roles.level(m.role), (m.full_name or m.email or m.id).lower()))
        return VisibleMembers(members=members, report=visible.report)

    def org_chart(self, actor: MemberNode) -> tuple[list[dict], TraversalReport]:
        tree = self.tree(actor.tenant_id)
        if actor.id not in tree:
            raise NotFound("Member not found")
        visible = tree.visible_to(actor.id, actor.role, self.roles)
        roots = tree.roots if self.roles.is_owner(actor.role) else [actor.id]
        return tree.chart(roots, visible.member_ids), visible.report

    def assignable_roles(self, actor: MemberNode) -> list[str]:
        return self.roles.assignable_roles(actor.role)

    # -- promotion ---------------------------------------------------------

    def can_promote(self, actor: MemberNode, target: MemberNode, new_role: str) -> Decision:
        if target.tenant_id != actor.tenant_id:
            return Decision.deny("cross_tenant", "Target user is not in your organization.")
        if new_role not in self.roles:
            return Decision.deny("unknown_role", f"Unknown role: {new_role}")
        if not self.roles.outranks(actor.role, new_role):
            return Decision.deny("insufficient_level", "You can only assign roles below your level")
        return Decision.allow()

    def promote(self, actor: MemberNode, target_id: str, new_role: str) -> MemberNode:
        new_role = (new_role or "").strip().lower()
        tree = self._fresh_tree(actor.tenant_id)
        target, found = self._locate(tree, actor, target_id)
        found.raise_for_denial()
        self.can_promote(actor, target, new_role).raise_for_denial()

        try:
            self.store.update_role(actor.tenant_id, target.id, new_role)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        finally:
            self._invalidate(actor.tenant_id)
        logger.info(
            "Role change tenant=%s actor=%s target=%s %s -> %s",
            actor.tenant_id, actor.id, target.id, target.role, new_role,
        )
        return replace(target, role=new_role)

    # -- removal -----------------------------------------------------------

    def can_remove(self, actor: MemberNode, target: MemberNode) -> Decision:
        if target.tenant_id != actor.tenant_id:
            return Decision.deny("cross_tenant", "Target user is not in your organization.")
        if not self.roles.outranks(actor.role, target.role):
            return Decision.deny("insufficient_level", "You can only delete members below your level.")
        return Decision.allow()

    def remove_member(self, actor: MemberNode, target_id: str) -> RemovalResult:
        """
        Privileged removal path. The level and tenant checks are re-run here
        no matter what the caller already checked.

        Direct reports of the removed member move up to the removed member's
        own manager (or become roots when it had none).
        """
        tree = self._fresh_tree(actor.tenant_id)
        target, found = self._locate(tree, actor, target_id)
        found.raise_for_denial()
        self.can_remove(actor, target).raise_for_denial()

        new_manager_id = target.manager_id if target.manager_id in tree else None
        try:
            moved = self.store.reparent_reports(actor.tenant_id, target.id, new_manager_id)
            self.store.delete_member(actor.tenant_id, target.id)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        finally:
            self._invalidate(actor.tenant_id)

        logger.info(
            "Member removed tenant=%s actor=%s target=%s reports_moved=%s to=%s",
            actor.tenant_id, actor.id, target.id, moved, new_manager_id,
        )
        return RemovalResult(removed_id=target.id, reparented_count=moved, reports_moved_to=new_manager_id)

    # -- manager assignment --------------------------------------------------

    def can_assign_manager(
        self,
        actor: MemberNode,
        target: MemberNode,
        new_manager_id: str | None,
        *,
        tree: OrgTree,
    ) -> Decision:
        if target.tenant_id != actor.tenant_id:
            return Decision.deny("cross_tenant", "Target user is not in your organization.")

        is_owner = self.roles.is_owner(actor.role)
        if not is_owner and target.id == actor.id:
            return Decision.deny("self_assignment", "You cannot change your own manager")

        visible = tree.visible_to(actor.id, actor.role, self.roles).member_ids
        if target.id not in visible:
            return Decision.deny("not_in_subtree", "Member is outside your team")

        if new_manager_id is not None:
            manager, found = self._locate(tree, actor, new_manager_id)
            if not found:
                return found
            if manager.id not in visible:
                return Decision.deny("not_in_subtree", "New manager is outside your team")
            if tree.would_create_cycle(target.id, manager.id):
                return Decision.deny("cycle", "This assignment would create a reporting cycle")
        elif not is_owner:
            # Only the owner may detach someone to the top of the org.
            return Decision.deny("insufficient_level", "Only the company admin can remove a manager")

        return Decision.allow()

    def assign_manager(self, actor: MemberNode, target_id: str, new_manager_id: str | None) -> MemberNode:
        tree = self._fresh_tree(actor.tenant_id)
        target, found = self._locate(tree, actor, target_id)
        found.raise_for_denial()
        self.can_assign_manager(actor, target, new_manager_id, tree=tree).raise_for_denial()

        try:
            self.store.update_manager(actor.tenant_id, target.id, new_manager_id)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        finally:
            self._invalidate(actor.tenant_id)
        logger.info(
            "Manager assigned tenant=%s actor=%s target=%s manager %s -> %s",
            actor.tenant_id, actor.id, target.id, target.manager_id, new_manager_id,
        )
        return replace(target, manager_id=new_manager_id)

    # -- invitations ---------------------------------------------------------

    def can_invite(self, actor: MemberNode, role: str) -> Decision:
        if role not in self.roles:
            return Decision.deny("unknown_role", f"Unknown role: {role}")
        if not self.roles.outranks(actor.role, role):
            return Decision.deny(
                "insufficient_level",
                "You cannot assign this role. You can only assign roles below your level.",
            )
        return Decision.allow()

    def invite_member(
        self,
        actor: MemberNode,
        *,
        member_id: str,
        email: str,
        full_name: str,
        role: str,
        password_hash: str,
        phone: str | None = None,
    ) -> MemberNode:
        role = (role or "").strip().lower()
        self.can_invite(actor, role).raise_for_denial()
        member = MemberNode(
            id=member_id,
            tenant_id=actor.tenant_id,
            role=role,
            manager_id=actor.id,
            full_name=full_name,
            email=email.lower(),
            phone=phone,
        )
        try:
            self.store.create_member(member, password_hash=password_hash)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        finally:
            self._invalidate(actor.tenant_id)
        logger.info("Member invited tenant=%s actor=%s member=%s role=%s", actor.tenant_id, actor.id, member_id, role)
        return member

    # -- record ownership ------------------------------------------------------

    def can_reassign_records(
        self,
        actor: MemberNode,
        current_owner_ids: set[str],
        new_owner_id: str,
    ) -> Decision:
        visible = self.visible_members(actor).ids
        if new_owner_id not in visible:
            tree = self.tree(actor.tenant_id)
            _, found = self._locate(tree, actor, new_owner_id)
            if not found:
                return found
            return Decision.deny("not_in_subtree", "New owner is outside your team")
        outside = {o for o in current_owner_ids if o is not None} - visible
        if outside:
            return Decision.deny("not_in_subtree", "Some records belong to members outside your team")
        return Decision.allow()
