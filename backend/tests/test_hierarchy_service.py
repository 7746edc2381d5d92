from dataclasses import replace

import pytest

from salescrm.core.errors import CrossTenant, Malformed, NotFound, Unauthorized, Upstream
from salescrm.hierarchy.cache import TreeCache
from salescrm.hierarchy.roles import DEFAULT_ROLE_TABLE
from salescrm.hierarchy.service import HierarchyService
from salescrm.hierarchy.tree import MemberNode


class _FakeStore:
    """In-memory member store with the same tenant-scoped write semantics as SqlMemberStore."""

    def __init__(self, members):
        self.members = {m.id: m for m in members}
        self.loads = 0
        self.commits = 0
        self.rollbacks = 0
        self.fail_on_delete = False
        self.fail_on_commit = False
        self.fail_loads = False
        self.created_passwords = {}

    def load_members(self, tenant_id):
        if self.fail_loads:
            raise Upstream("member list load timed out", reason="timeout")
        self.loads += 1
        return [m for m in self.members.values() if m.tenant_id == tenant_id]

    def find_member(self, member_id):
        return self.members.get(member_id)

    def update_role(self, tenant_id, member_id, role):
        m = self.members[member_id]
        assert m.tenant_id == tenant_id
        self.members[member_id] = replace(m, role=role)

    def update_manager(self, tenant_id, member_id, manager_id):
        m = self.members[member_id]
        assert m.tenant_id == tenant_id
        self.members[member_id] = replace(m, manager_id=manager_id)

    def reparent_reports(self, tenant_id, old_manager_id, new_manager_id):
        moved = 0
        for mid, m in list(self.members.items()):
            if m.tenant_id == tenant_id and m.manager_id == old_manager_id:
                self.members[mid] = replace(m, manager_id=new_manager_id)
                moved += 1
        return moved

    def delete_member(self, tenant_id, member_id):
        if self.fail_on_delete:
            raise RuntimeError("delete failed")
        m = self.members[member_id]
        assert m.tenant_id == tenant_id
        del self.members[member_id]

    def create_member(self, member, *, password_hash):
        self.members[member.id] = member
        self.created_passwords[member.id] = password_hash

    def commit(self):
        if self.fail_on_commit:
            raise RuntimeError("commit failed")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _m(member_id, role, manager_id=None, tenant_id="c1"):
    return MemberNode(id=member_id, tenant_id=tenant_id, role=role, manager_id=manager_id, full_name=member_id)


OWNER = _m("o", "company")
MANAGER = _m("m", "sm", "o")
CHILD = _m("c", "bde", "m")
PEER = _m("p", "tl", "o")
OUTSIDER = _m("x", "bde", None, tenant_id="c2")


def _service(members=None, *, cache=None):
    store = _FakeStore(members if members is not None else [OWNER, MANAGER, CHILD, PEER, OUTSIDER])
    return HierarchyService(store, DEFAULT_ROLE_TABLE, tree_cache=cache, max_depth=64), store


def test_visibility_follows_subtree_and_owner_sees_everyone():
    service, _ = _service()

    assert service.visible_members(OWNER).ids == {"o", "m", "c", "p"}
    assert service.visible_members(MANAGER).ids == {"m", "c"}
    assert service.visible_members(CHILD).ids == {"c"}


def test_visible_members_are_ordered_by_level():
    service, _ = _service()

    roles = [m.role for m in service.visible_members(OWNER).members]

    assert roles == ["company", "sm", "tl", "bde"]


def test_manager_can_promote_below_own_level_only():
    service, store = _service()

    assert service.can_promote(MANAGER, CHILD, "tl")
    denied = service.can_promote(MANAGER, CHILD, "sm")
    assert not denied
    assert denied.reason == "insufficient_level"

    updated = service.promote(MANAGER, "c", "tl")
    assert updated.role == "tl"
    assert store.members["c"].role == "tl"
    assert store.commits == 1


def test_promote_rejects_unknown_role_and_other_tenants():
    service, _ = _service()

    assert service.can_promote(OWNER, CHILD, "overlord").reason == "unknown_role"
    assert service.can_promote(OWNER, OUTSIDER, "tl").reason == "cross_tenant"

    with pytest.raises(CrossTenant):
        service.promote(OWNER, "x", "tl")
    with pytest.raises(NotFound):
        service.promote(OWNER, "nobody", "tl")


def test_removal_requires_higher_level():
    service, _ = _service()

    assert service.can_remove(MANAGER, CHILD)
    assert not service.can_remove(CHILD, MANAGER)
    assert not service.can_remove(PEER, _m("p2", "tl", "o"))

    with pytest.raises(Unauthorized):
        service.remove_member(CHILD, "m")


def test_cross_tenant_removal_is_denied_even_for_owner():
    service, store = _service()

    decision = service.can_remove(OWNER, OUTSIDER)
    assert not decision
    assert decision.reason == "cross_tenant"

    with pytest.raises(CrossTenant):
        service.remove_member(OWNER, "x")
    assert "x" in store.members


def test_removal_reparents_direct_reports_to_removed_members_manager():
    service, store = _service()

    result = service.remove_member(OWNER, "m")

    assert result.removed_id == "m"
    assert result.reparented_count == 1
    assert result.reports_moved_to == "o"
    assert "m" not in store.members
    assert store.members["c"].manager_id == "o"


def test_removing_a_root_turns_its_reports_into_roots():
    root_sm = _m("r", "sm")
    report = _m("r1", "bde", "r")
    service, store = _service([OWNER, root_sm, report])

    result = service.remove_member(OWNER, "r")

    assert result.reports_moved_to is None
    assert store.members["r1"].manager_id is None


def test_failed_removal_rolls_back():
    service, store = _service()
    store.fail_on_delete = True

    with pytest.raises(RuntimeError):
        service.remove_member(OWNER, "c")

    assert store.rollbacks == 1
    assert store.commits == 0


@pytest.mark.parametrize(
    "write",
    [
        lambda service: service.promote(OWNER, "c", "tl"),
        lambda service: service.assign_manager(OWNER, "c", "p"),
    ],
)
def test_failed_role_or_manager_write_rolls_back_and_drops_cached_tree(write):
    cache = TreeCache()
    service, store = _service(cache=cache)
    store.fail_on_commit = True
    update_role, update_manager = store.update_role, store.update_manager

    def reading_during(update):
        def wrapped(*args):
            update(*args)
            # a concurrent reader caches the uncommitted tree
            service.visible_members(OWNER)

        return wrapped

    store.update_role = reading_during(update_role)
    store.update_manager = reading_during(update_manager)

    with pytest.raises(RuntimeError):
        write(service)

    assert store.rollbacks == 1
    assert cache.peek("c1") is None


def test_manager_assignment_checks_dominance_and_cycles():
    service, store = _service()

    with pytest.raises(Malformed):
        service.assign_manager(OWNER, "m", "c")
    # A rejected assignment leaves the tree unchanged.
    assert store.members["m"].manager_id == "o"

    with pytest.raises(Unauthorized):
        service.assign_manager(MANAGER, "p", "m")

    with pytest.raises(Unauthorized):
        service.assign_manager(MANAGER, "m", "c")

    moved = service.assign_manager(OWNER, "c", "p")
    assert moved.manager_id == "p"
    assert store.members["c"].manager_id == "p"


def test_cycle_is_rejected_below_the_traversal_depth_limit():
    chain = [_m(f"n{i}", "bde", f"n{i - 1}" if i else "o") for i in range(80)]
    service, store = _service([OWNER, *chain])

    with pytest.raises(Malformed):
        service.assign_manager(OWNER, "n1", "n79")

    assert store.members["n1"].manager_id == "n0"
    assert store.commits == 0


def test_only_owner_may_detach_a_member():
    service, store = _service()

    decision = service.can_assign_manager(MANAGER, CHILD, None, tree=service.tree("c1"))
    assert decision.reason == "insufficient_level"

    service.assign_manager(OWNER, "c", None)
    assert store.members["c"].manager_id is None


def test_manager_from_another_tenant_is_rejected():
    service, _ = _service()

    with pytest.raises(CrossTenant):
        service.assign_manager(OWNER, "c", "x")


def test_invite_places_new_member_under_inviter():
    service, store = _service()

    member = service.invite_member(
        MANAGER,
        member_id="u_new",
        email="New@Acme.com",
        full_name="New Hire",
        role="bde",
        password_hash="hashed",
    )

    assert member.manager_id == "m"
    assert member.tenant_id == "c1"
    assert member.email == "new@acme.com"
    assert store.created_passwords["u_new"] == "hashed"
    assert service.visible_members(MANAGER).ids == {"m", "c", "u_new"}

    with pytest.raises(Unauthorized):
        service.invite_member(
            MANAGER,
            member_id="u_bad",
            email="boss@acme.com",
            full_name="Boss",
            role="vp",
            password_hash="hashed",
        )


def test_record_reassignment_stays_inside_visible_set():
    service, _ = _service()

    assert service.can_reassign_records(MANAGER, {"c"}, "m")
    assert service.can_reassign_records(MANAGER, {None, "m"}, "c")
    assert service.can_reassign_records(MANAGER, {"c"}, "p").reason == "not_in_subtree"
    assert service.can_reassign_records(MANAGER, {"p"}, "c").reason == "not_in_subtree"
    assert service.can_reassign_records(MANAGER, {"c"}, "x").reason == "cross_tenant"
    assert service.can_reassign_records(OWNER, {"p", "c"}, "m")


def test_tree_cache_is_reused_for_reads_and_dropped_on_writes():
    cache = TreeCache()
    service, store = _service(cache=cache)

    service.visible_members(OWNER)
    service.visible_members(MANAGER)
    assert store.loads == 1

    service.promote(OWNER, "c", "tl")
    assert cache.peek("c1") is None

    assert service.visible_members(OWNER).members[-1].role == "tl"
    assert store.loads == 3


def test_malformed_tree_still_answers_with_report():
    members = [OWNER, _m("a", "sm", "b"), _m("b", "tl", "a")]
    service, _ = _service(members)

    visible = service.visible_members(OWNER)

    assert visible.ids == {"o", "a", "b"}
    assert visible.report.cycle_member_ids == ("a", "b")


def test_store_outage_surfaces_as_upstream():
    service, store = _service()
    store.fail_loads = True

    with pytest.raises(Upstream):
        service.visible_members(OWNER)


def test_owner_manager_child_scenario():
    owner = _m("O", "company")
    manager = _m("M", "avp", "O")
    child = _m("C", "bde", "M")
    service, _ = _service([owner, manager, child])

    assert service.visible_members(manager).ids == {"M", "C"}
    assert not service.can_promote(manager, child, "cbo")
    assert service.can_promote(manager, child, "agm")
