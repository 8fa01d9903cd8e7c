from data_models import FileNode
from file_tree import (
    add_node_to_tree,
    build_tree,
    find_first_file,
    find_node,
    remove_node,
    render_tree_listing,
)


def _shape(tree):
    """Reduces a tree to (name, type, children) tuples for easy comparison."""
    return [(n.name, n.type, _shape(n.children)) for n in tree]


def test_nested_path_synthesizes_parent_folders():
    tree = add_node_to_tree([], "src/components/Button.tsx")

    assert _shape(tree) == [("src", "folder", [("components", "folder", [("Button.tsx", "file", [])])])]
    assert find_node(tree, "src/components").path == "src/components"
    assert find_node(tree, "src/components/Button.tsx").path == "src/components/Button.tsx"


def test_folders_sort_before_files_then_by_name():
    tree = []
    for path in ["b.txt", "a.txt", "zeta/x.txt", "alpha/y.txt", "Readme.md"]:
        tree = add_node_to_tree(tree, path)

    assert [n.name for n in tree] == ["alpha", "zeta", "a.txt", "b.txt", "Readme.md"]


def test_names_use_locale_collation_not_code_points():
    tree = []
    for path in ["README.md", "app.py", "Zeta.txt", "beta.txt"]:
        tree = add_node_to_tree(tree, path)

    assert [n.name for n in tree] == ["app.py", "beta.txt", "README.md", "Zeta.txt"]


def test_names_differing_only_in_case_are_distinct():
    tree = add_node_to_tree(add_node_to_tree([], "Notes.txt"), "notes.txt")

    assert sorted(n.name for n in tree) == ["Notes.txt", "notes.txt"]
    assert find_node(tree, "Notes.txt").path == "Notes.txt"


def test_inserting_an_existing_path_is_a_no_op():
    tree = add_node_to_tree([], "a/b.txt")

    assert _shape(add_node_to_tree(tree, "a/b.txt")) == _shape(tree)
    assert _shape(add_node_to_tree(tree, "a")) == _shape(tree)


def test_insert_is_copy_on_write():
    original = add_node_to_tree([], "a/b.txt")
    snapshot = original[0].model_copy(deep=True)

    updated = add_node_to_tree(original, "a/c.txt")

    assert original[0] == snapshot
    assert [c.name for c in updated[0].children] == ["b.txt", "c.txt"]


def test_path_below_a_file_is_skipped():
    tree = add_node_to_tree([], "a.txt")

    assert _shape(add_node_to_tree(tree, "a.txt/b.txt")) == [("a.txt", "file", [])]


def test_empty_path_is_ignored():
    assert add_node_to_tree([], "") == []
    assert add_node_to_tree([], "//") == []


def test_remove_node_drops_the_subtree():
    tree = build_tree(["src/a.js", "src/lib/b.js", "README.md"])

    pruned = remove_node(tree, "src/lib")

    assert _shape(pruned) == [("src", "folder", [("a.js", "file", [])]), ("README.md", "file", [])]
    assert find_node(tree, "src/lib/b.js") is not None


def test_find_node_and_first_file():
    tree = build_tree(["docs/guide.md", "index.html"])

    assert find_node(tree, "missing.txt") is None
    assert find_first_file(tree) == "docs/guide.md"
    assert find_first_file([FileNode(name="empty", path="empty", type="folder")]) is None


def test_render_tree_listing():
    tree = build_tree(["src/main.py", "src/util/io.py", "setup.cfg"])

    assert render_tree_listing(tree) == "src/\n  util/\n    io.py\n  main.py\nsetup.cfg"
