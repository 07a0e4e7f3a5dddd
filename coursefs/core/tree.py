"""
Tree projections of the flat resource table.

The store only knows rows keyed by path. Everything here rebuilds a view
from a snapshot of those rows: an index of path -> node, never a graph with
back-pointers, so a stale tree can always be thrown away and rebuilt.
"""
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from coursefs.core import paths
from coursefs.core.models import ResourceKind, ResourceNode, ResourceRecord


def sort_key(record: ResourceRecord) -> Tuple[int, str, str]:
    """Folders before files, then case-insensitive name, then exact name."""
    return (0 if record.kind == ResourceKind.FOLDER else 1, record.name.casefold(), record.name)


def _node_sort_key(node: ResourceNode) -> Tuple[int, str, str]:
    return sort_key(node.record)


def build_tree(records: Iterable[ResourceRecord]) -> List[ResourceNode]:
    """
    Build a forest from flat records.

    Each record is attached to the node at `parent_of(path)` when that node
    exists; otherwise it becomes a root. With no missing ancestors this
    yields a single level of roots (the root-level entries). Files never
    receive children: a record whose parent is a file is treated as a root.
    """
    nodes: Dict[str, ResourceNode] = {}
    for record in records:
        # Later duplicates of a path replace earlier ones
        nodes[record.path] = ResourceNode(record=record)

    roots: List[ResourceNode] = []
    for path, node in nodes.items():
        parent = nodes.get(paths.parent_of(path))
        if parent is not None and parent.is_folder and parent is not node:
            parent.children.append(node)
        else:
            roots.append(node)

    for node in nodes.values():
        node.children.sort(key=_node_sort_key)
    roots.sort(key=_node_sort_key)
    return roots


def direct_children(records: Iterable[ResourceRecord], path: str = "") -> List[ResourceRecord]:
    """The drill-down view: records directly under `path`, in browse order."""
    target = paths.normalize(path)
    children = [r for r in records if paths.is_direct_child(r.path, target)]
    return sorted(children, key=sort_key)


def find(records: Iterable[ResourceRecord], path: str) -> Optional[ResourceRecord]:
    target = paths.normalize(path)
    for record in records:
        if record.path == target:
            return record
    return None


def walk(nodes: List[ResourceNode], depth: int = 0) -> Iterator[Tuple[int, ResourceNode]]:
    """Depth-first (depth, node) pairs, iterative to keep deep trees off the call stack."""
    stack = [(depth, node) for node in reversed(nodes)]
    while stack:
        level, node = stack.pop()
        yield level, node
        stack.extend((level + 1, child) for child in reversed(node.children))


def move_destinations(records: Iterable[ResourceRecord], target: ResourceRecord) -> List[str]:
    """
    Folder paths `target` may be moved into, root ('') first.

    The target itself is excluded, as is its current parent (a no-op move),
    and for folders every descendant folder, since moving a folder under
    itself would make it its own ancestor.
    """
    options = [""] if target.parent_path else []
    folders = sorted(
        (r.path for r in records if r.is_folder),
        key=lambda p: (p.casefold(), p),
    )
    for folder in folders:
        if folder == target.parent_path:
            continue
        if target.is_folder and paths.is_same_or_descendant(folder, target.path):
            continue
        if folder == target.path:
            continue
        options.append(folder)
    return options


def render_text(nodes: List[ResourceNode], indent: str = "  ") -> List[str]:
    """Plain text lines for a tree, folders suffixed with '/'"""
    lines = []
    for level, node in walk(nodes):
        suffix = "/" if node.is_folder else ""
        lines.append(f"{indent * level}{node.name}{suffix}")
    return lines
