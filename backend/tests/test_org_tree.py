from salescrm.hierarchy.roles import DEFAULT_ROLE_TABLE, UNKNOWN_ROLE_LEVEL, RoleTable
from salescrm.hierarchy.tree import MemberNode, OrgTree

import pytest


def _m(member_id, role, manager_id=None, tenant_id="c1"):
    return MemberNode(id=member_id, tenant_id=tenant_id, role=role, manager_id=manager_id)


def _sample_tree(**kwargs):
    return OrgTree(
        "c1",
        [
            _m("owner", "company"),
            _m("vp", "vp", "owner"),
            _m("sm", "sm", "vp"),
            _m("tl", "tl", "sm"),
            _m("bde1", "bde", "tl"),
            _m("bde2", "bde", "tl"),
            _m("other_vp", "vp", "owner"),
        ],
        **kwargs,
    )


def test_subtree_contains_root_and_all_transitive_reports():
    tree = _sample_tree()

    visible = tree.subtree("sm")

    assert visible.member_ids == {"sm", "tl", "bde1", "bde2"}
    assert visible.report.ok


def test_owner_sees_whole_tenant_and_others_see_subtree():
    tree = _sample_tree()

    assert tree.visible_to("owner", "company", DEFAULT_ROLE_TABLE).member_ids == set(tree.nodes)
    assert tree.visible_to("other_vp", "vp", DEFAULT_ROLE_TABLE).member_ids == {"other_vp"}
    assert tree.visible_to("ghost", "vp", DEFAULT_ROLE_TABLE).member_ids == frozenset()


def test_other_tenant_rows_are_ignored():
    tree = OrgTree("c1", [_m("a", "company"), _m("x", "bde", "a", tenant_id="c2")])

    assert "x" not in tree
    assert tree.subtree("a").member_ids == {"a"}


def test_cycle_is_detected_and_traversal_terminates():
    tree = OrgTree(
        "c1",
        [
            _m("owner", "company"),
            _m("a", "sm", "c"),
            _m("b", "tl", "a"),
            _m("c", "bde", "b"),
            _m("d", "bde", "owner"),
        ],
    )

    assert tree.cycle_member_ids == {"a", "b", "c"}
    visible = tree.subtree("a")
    assert visible.member_ids == {"a"}
    assert not visible.report.ok
    assert visible.report.cycle_member_ids == ("b",)
    assert visible.report.as_error().code == "malformed"

    owner_view = tree.visible_to("owner", "company", DEFAULT_ROLE_TABLE)
    assert owner_view.report.cycle_member_ids == ("a", "b", "c")


def test_dangling_manager_becomes_root_and_is_reported():
    tree = OrgTree("c1", [_m("owner", "company"), _m("lost", "bde", "deleted_user")])

    assert "lost" in tree.roots
    assert tree.dangling_member_ids == {"lost"}
    assert tree.ancestors("lost") == []


def test_depth_limit_truncates_walk():
    chain = [_m("m0", "company")] + [_m(f"m{i}", "bde", f"m{i - 1}") for i in range(1, 10)]
    tree = OrgTree("c1", chain, max_depth=3)

    visible = tree.subtree("m0")

    assert visible.member_ids == {"m0", "m1", "m2", "m3"}
    assert visible.report.truncated


def test_would_create_cycle():
    tree = _sample_tree()

    assert tree.would_create_cycle("sm", "bde1")
    assert tree.would_create_cycle("sm", "sm")
    assert not tree.would_create_cycle("bde1", "other_vp")
    assert not tree.would_create_cycle("bde1", None)


def test_cycle_check_walks_chains_longer_than_depth_limit():
    chain = [_m("n0", "company")] + [_m(f"n{i}", "bde", f"n{i - 1}") for i in range(1, 80)]
    tree = OrgTree("c1", chain)

    assert tree.max_depth < 79
    assert tree.would_create_cycle("n1", "n79")
    assert tree.is_in_subtree("n1", "n79")
    assert not tree.would_create_cycle("n79", "n1")


def test_ancestors_and_is_in_subtree():
    tree = _sample_tree()

    assert tree.ancestors("bde1") == ["tl", "sm", "vp", "owner"]
    assert tree.is_in_subtree("vp", "bde2")
    assert not tree.is_in_subtree("other_vp", "bde2")


def test_chart_nests_reports_within_visible_set():
    tree = _sample_tree()
    visible = tree.subtree("sm").member_ids

    chart = tree.chart(["sm"], visible)

    assert len(chart) == 1
    assert chart[0]["member"].id == "sm"
    tl = chart[0]["reports"][0]
    assert tl["member"].id == "tl"
    assert {r["member"].id for r in tl["reports"]} == {"bde1", "bde2"}


def test_role_table_levels_and_assignable_roles():
    roles = DEFAULT_ROLE_TABLE

    assert roles.level("company") == 1
    assert roles.level("ca") == 12
    assert roles.level("janitor") == UNKNOWN_ROLE_LEVEL
    assert roles.outranks("sm", "bde")
    assert not roles.outranks("bde", "bde")
    assert roles.assignable_roles("agm") == ["ca", "intern", "bde", "tl", "sm"]
    assert roles.assignable_roles("ca") == []


def test_role_table_rejects_duplicate_levels():
    with pytest.raises(ValueError):
        RoleTable(levels={"company": 1, "a": 2, "b": 2}, labels={})
