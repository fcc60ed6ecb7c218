"""
Tests for change-group ordering of sibling objects.
"""

from kubemirror.core.graph.ordering import (
    CHANGE_GROUP,
    CHANGE_RULE,
    change_dependencies,
    change_groups,
    order_by_change_groups,
    parse_change_rule,
    sort_groups,
)


def _obj(name: str, **annotations: str) -> dict:
    return {"metadata": {"name": name, "annotations": annotations}}


def _names(objs: list[dict]) -> list[str]:
    return [obj["metadata"]["name"] for obj in objs]


class TestParseChangeRule:
    def test_upsert_after_upserting(self) -> None:
        assert parse_change_rule("upsert after upserting apps/db") == "apps/db"

    def test_extra_tokens_ignored(self) -> None:
        assert parse_change_rule("upsert after upserting g1 please") == "g1"

    def test_other_shapes_rejected(self) -> None:
        assert parse_change_rule("delete before deleting g1") is None
        assert parse_change_rule("upsert after") is None
        assert parse_change_rule("") is None


class TestAnnotations:
    def test_suffixed_keys_count(self) -> None:
        obj = _obj(
            "a",
            **{
                CHANGE_GROUP: "g1",
                f"{CHANGE_GROUP}.extra": "g2",
                f"{CHANGE_RULE}.1": "upsert after upserting g0",
            },
        )
        assert change_groups(obj) == ["g1", "g2"]
        assert change_dependencies(obj) == ["g0"]

    def test_similar_prefix_not_matched(self) -> None:
        obj = _obj("a", **{CHANGE_GROUP + "s": "g1"})
        assert change_groups(obj) == []

    def test_missing_metadata(self) -> None:
        assert change_groups({}) == []
        assert change_dependencies({"metadata": None}) == []


class TestSortGroups:
    def test_linear_chain(self) -> None:
        ordered, unresolved = sort_groups({"c": {"b"}, "b": {"a"}}, ["c", "b", "a"])
        assert ordered == ["a", "b", "c"]
        assert unresolved == []

    def test_cycle_left_unresolved(self) -> None:
        ordered, unresolved = sort_groups({"a": {"b"}, "b": {"a"}, "c": set()}, ["a", "b", "c"])
        assert ordered == ["c"]
        assert unresolved == ["a", "b"]


class TestOrderByChangeGroups:
    def test_dependency_order_then_ungrouped(self) -> None:
        a = _obj("a", **{CHANGE_GROUP: "g1"})
        b = _obj("b", **{CHANGE_GROUP: "g2", CHANGE_RULE: "upsert after upserting g1"})
        c = _obj("c")

        assert _names(order_by_change_groups([c, b, a])) == ["a", "b", "c"]

    def test_no_groups_keeps_order(self) -> None:
        items = [_obj("z"), _obj("y"), _obj("x")]
        assert order_by_change_groups(items) == items

    def test_cycle_falls_back_to_original_order(self) -> None:
        a = _obj("a", **{CHANGE_GROUP: "g1", CHANGE_RULE: "upsert after upserting g2"})
        b = _obj("b", **{CHANGE_GROUP: "g2", CHANGE_RULE: "upsert after upserting g1"})
        free = _obj("free", **{CHANGE_GROUP: "g3"})
        plain = _obj("plain")

        result = order_by_change_groups([plain, b, a, free])

        assert _names(result) == ["free", "b", "a", "plain"]

    def test_multi_group_member_emitted_once(self) -> None:
        both = _obj("both", **{CHANGE_GROUP: "g1", f"{CHANGE_GROUP}.x": "g2"})
        other = _obj("other", **{CHANGE_GROUP: "g2"})

        result = order_by_change_groups([other, both])

        assert _names(result) == ["other", "both"]
        assert len(result) == 2

    def test_dependency_on_unknown_group(self) -> None:
        a = _obj("a", **{CHANGE_GROUP: "g1", CHANGE_RULE: "upsert after upserting missing"})
        b = _obj("b")
        assert _names(order_by_change_groups([b, a])) == ["a", "b"]

    def test_key_function(self) -> None:
        a = _obj("a", **{CHANGE_GROUP: "g1"})
        b = _obj("b", **{CHANGE_GROUP: "g2", CHANGE_RULE: "upsert after upserting g1"})
        pairs = [("kind", b), ("kind", a)]

        result = order_by_change_groups(pairs, key=lambda pair: pair[1])

        assert [pair[1]["metadata"]["name"] for pair in result] == ["a", "b"]
