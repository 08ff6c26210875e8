import pytest

from py_kit.commit import (
    ancestors,
    collect_reachable,
    create_commit,
    find_common_ancestor,
    history,
    is_ancestor,
    parse_commit,
    read_commit,
    serialize_commit,
)
from py_kit.errors import MalformedCommit, WrongKind
from py_kit.tree import build_tree, read_tree


def make_tree(store, files):
    return build_tree(store, {p: store.put("blob", c.encode()) for p, c in files.items()})


def test_serialize_layout():
    data = serialize_commit("t" * 64, ["p" * 64], "Ada", 42, "first")

    assert data == (
        f"tree {'t' * 64}\n"
        f"parent {'p' * 64}\n"
        "author Ada 42\n"
        "committer Ada 42\n"
        "\n"
        "first\n"
    ).encode()


def test_parse_roundtrip_with_multiline_message(store, clock):
    tree = make_tree(store, {"a": "1"})
    digest = create_commit(store, tree, None, "Grace Hopper", "subject\n\nbody line", clock=clock)

    commit = read_commit(store, digest)

    assert commit.tree == tree
    assert commit.parents == ()
    assert commit.author == "Grace Hopper"
    assert commit.timestamp == 1_700_000_000
    assert commit.message == "subject\n\nbody line"
    assert commit.parent is None
    assert not commit.is_merge


def test_merge_commit_keeps_both_parents(store, clock):
    tree = make_tree(store, {"a": "1"})
    left = create_commit(store, tree, None, "x", "left", clock=clock)
    right = create_commit(store, tree, None, "x", "right", clock=clock)
    merged = create_commit(store, tree, [left, right], "x", "merge", clock=clock)

    commit = read_commit(store, merged)
    assert commit.parents == (left, right)
    assert commit.is_merge
    assert commit.parent == left


def test_parse_requires_tree_and_blank_line():
    with pytest.raises(MalformedCommit):
        parse_commit("d" * 64, b"author a 1\n\nmsg\n")
    with pytest.raises(MalformedCommit):
        parse_commit("d" * 64, b"tree abc\nauthor a 1\n")


def test_read_commit_rejects_other_kinds(store):
    blob = store.put("blob", b"x")
    with pytest.raises(WrongKind):
        read_commit(store, blob)


def test_history_and_ancestry(store, clock):
    tree = make_tree(store, {"a": "1"})
    c1 = create_commit(store, tree, None, "x", "one", clock=clock)
    c2 = create_commit(store, tree, c1, "x", "two", clock=clock)
    c3 = create_commit(store, tree, c2, "x", "three", clock=clock)

    assert [c.message for c in history(store, c3)] == ["three", "two", "one"]
    assert list(ancestors(store, c3)) == [c3, c2, c1]
    assert is_ancestor(store, c1, c3)
    assert not is_ancestor(store, c3, c1)


def test_common_ancestor_of_diverged_branches(store, clock):
    tree = make_tree(store, {"a": "1"})
    base = create_commit(store, tree, None, "x", "base", clock=clock)
    left = create_commit(store, tree, base, "x", "left", clock=clock)
    right = create_commit(store, tree, base, "x", "right", clock=clock)

    assert find_common_ancestor(store, left, right) == base


def test_unrelated_histories_have_no_common_ancestor(store, clock):
    tree = make_tree(store, {"a": "1"})
    one = create_commit(store, tree, None, "x", "one", clock=clock)
    other = create_commit(store, make_tree(store, {"b": "2"}), None, "x", "other", clock=clock)

    assert find_common_ancestor(store, one, other) is None


def test_collect_reachable(store, clock):
    blob = store.put("blob", b"content")
    tree = build_tree(store, {"dir/file": blob})
    first = create_commit(store, tree, None, "x", "one", clock=clock)
    second = create_commit(store, tree, first, "x", "two", clock=clock)
    store.put("blob", b"unreachable")

    reachable = collect_reachable(store, second)

    subtree = read_tree(store, tree)[0].digest
    assert reachable == {first, second, tree, subtree, blob}
