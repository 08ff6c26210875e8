import pytest

from py_kit.errors import InvalidPath, UnexpectedKind
from py_kit.tree import (
    BLOB_MODE,
    TREE_MODE,
    TreeEntry,
    build_tree,
    flatten_tree,
    read_tree,
    serialize_tree,
    split_path,
)


def test_serialize_sorts_by_name():
    entries = [
        TreeEntry(BLOB_MODE, "blob", "b" * 64, "zeta"),
        TreeEntry(TREE_MODE, "tree", "a" * 64, "alpha"),
    ]

    assert serialize_tree(entries) == (
        f"040000 tree {'a' * 64} alpha\n100644 blob {'b' * 64} zeta\n"
    ).encode()


def test_build_and_flatten_nested(store):
    a = store.put("blob", b"a")
    b = store.put("blob", b"b")
    c = store.put("blob", b"c")
    mapping = {"top.txt": a, "src/main.py": b, "src/pkg/deep.py": c}

    root = build_tree(store, mapping)

    assert flatten_tree(store, root) == mapping
    names = [e.name for e in read_tree(store, root)]
    assert names == ["src", "top.txt"]


def test_build_tree_is_deterministic(store):
    a = store.put("blob", b"a")
    b = store.put("blob", b"b")

    first = build_tree(store, {"x/1": a, "y": b})
    second = build_tree(store, {"y": b, "x/1": a})

    assert first == second


def test_empty_mapping_yields_empty_tree(store):
    root = build_tree(store, {})
    assert store.get(root) == ("tree", b"")
    assert flatten_tree(store, root) == {}


def test_deep_paths_do_not_recurse(store):
    blob = store.put("blob", b"deep")
    path = "/".join(f"d{i}" for i in range(2000)) + "/leaf.txt"

    root = build_tree(store, {path: blob})

    assert flatten_tree(store, root) == {path: blob}


@pytest.mark.parametrize("path", ["", "/abs", "a//b", "a/./b", "../x", "dir/"])
def test_split_path_rejects_bad_paths(path):
    with pytest.raises(InvalidPath):
        split_path(path)


def test_file_and_directory_collision(store):
    blob = store.put("blob", b"x")
    with pytest.raises(InvalidPath):
        build_tree(store, {"a": blob, "a/b": blob})


def test_read_tree_rejects_other_kinds(store):
    blob = store.put("blob", b"not a tree")
    with pytest.raises(UnexpectedKind):
        read_tree(store, blob)


def test_names_with_unusual_whitespace_round_trip(store):
    blob = store.put("blob", b"x")
    mapping = {"report\r.txt": blob, "tab\tname/a\x0bb": blob, "form\x0cfeed": blob}

    root = build_tree(store, mapping)

    assert flatten_tree(store, root) == mapping


def test_newline_in_path_is_rejected(store):
    with pytest.raises(InvalidPath):
        split_path("two\nlines.txt")
    with pytest.raises(InvalidPath):
        build_tree(store, {"dir/bad\nname": store.put("blob", b"x")})
