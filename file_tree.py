"""
Operations on the virtual file tree.

The tree is a list of FileNode values. Every operation here is copy-on-write:
it returns a new list and only copies the nodes along the path it touches, so
a published snapshot never changes under a reader's feet.
"""
import logging
from typing import Literal, Optional

from pyuca import Collator

from data_models import FileNode

# Unicode Collation Algorithm with the default (root locale) table.
_collator = Collator()


def _sort_key(node: FileNode) -> tuple[bool, tuple, str]:
    # Folders first, then names in locale collation order. Case only breaks
    # ties, so "app.py" sorts before "README.md" and "a.txt" before "A.txt".
    return (node.type != "folder", _collator.sort_key(node.name), node.name)


def split_path(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def add_node_to_tree(tree: list[FileNode], path: str, node_type: Literal["file", "folder"] = "file") -> list[FileNode]:
    """
    Inserts `path` into the tree, synthesizing any missing parent folders.

    Inserting a path that already exists leaves the tree unchanged.
    """
    parts = split_path(path)
    if not parts:
        return tree
    return _insert(tree, parts, 0, node_type)


def _insert(level: list[FileNode], parts: list[str], depth: int, node_type: str) -> list[FileNode]:
    name = parts[depth]
    is_target = depth == len(parts) - 1
    existing = next((node for node in level if node.name == name), None)

    if existing is None:
        existing = FileNode(
            name=name,
            path="/".join(parts[: depth + 1]),
            type=node_type if is_target else "folder",
        )
        level = sorted([*level, existing], key=_sort_key)

    if is_target:
        return level
    if existing.type != "folder":
        logging.warning(f"Cannot place '{'/'.join(parts)}' under file '{existing.path}'.")
        return level

    updated = existing.model_copy(update={"children": _insert(existing.children, parts, depth + 1, node_type)})
    return [updated if node is existing else node for node in level]


def remove_node(tree: list[FileNode], path: str) -> list[FileNode]:
    """Removes the node at `path`, together with everything beneath it."""
    result = []
    for node in tree:
        if node.path == path:
            continue
        if node.type == "folder" and path.startswith(node.path + "/"):
            node = node.model_copy(update={"children": remove_node(node.children, path)})
        result.append(node)
    return result


def find_node(tree: list[FileNode], path: str) -> Optional[FileNode]:
    level = tree
    node = None
    for part in split_path(path):
        node = next((child for child in level if child.name == part), None)
        if node is None:
            return None
        level = node.children
    return node


def find_first_file(tree: list[FileNode]) -> Optional[str]:
    """Returns the path of the first file in display order."""
    for node in tree:
        if node.type == "file":
            return node.path
        found = find_first_file(node.children)
        if found:
            return found
    return None


def build_tree(paths) -> list[FileNode]:
    """Builds a fresh tree holding every path in `paths` as a file."""
    tree: list[FileNode] = []
    for path in sorted(paths):
        tree = add_node_to_tree(tree, path, "file")
    return tree


def render_tree_listing(tree: list[FileNode], depth: int = 0) -> str:
    """
    Renders an indented listing of the tree, two spaces per level, with
    folders marked by a trailing slash.
    """
    lines = []
    for node in tree:
        suffix = "/" if node.type == "folder" else ""
        lines.append(f"{'  ' * depth}{node.name}{suffix}")
        if node.children:
            lines.append(render_tree_listing(node.children, depth + 1))
    return "\n".join(lines)
