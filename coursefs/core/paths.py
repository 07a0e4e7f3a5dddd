"""
Path algebra for course resources.

Paths are POSIX-style, relative to the course root, with no leading or
trailing slash and no empty segments. `/` is the only separator and
comparisons are case-sensitive. All functions are pure.
"""
from typing import List

SEPARATOR = "/"


def normalize(path: str | None) -> str:
    """
    Convert backslashes to slashes and drop leading, trailing and empty segments.

    normalize(normalize(p)) == normalize(p) for every string p.
    """
    if not path:
        return ""
    return SEPARATOR.join(part for part in path.replace("\\", SEPARATOR).split(SEPARATOR) if part)


def split(path: str) -> List[str]:
    norm = normalize(path)
    return norm.split(SEPARATOR) if norm else []


def last_segment(path: str) -> str:
    """The final segment of a path ('' for the root)"""
    return normalize(path).rpartition(SEPARATOR)[2]


def parent_of(path: str) -> str:
    """Parent path, or '' for a root-level path"""
    return normalize(path).rpartition(SEPARATOR)[0]


def join(parent: str, segment: str) -> str:
    parent = normalize(parent)
    segment = normalize(segment)
    if not parent:
        return segment
    if not segment:
        return parent
    return f"{parent}{SEPARATOR}{segment}"


def is_direct_child(path: str, parent_path: str) -> bool:
    return parent_of(path) == normalize(parent_path)


def is_descendant(path: str, ancestor_path: str) -> bool:
    """
    True when `path` lies strictly below `ancestor_path`.

    The comparison is made against `ancestor + "/"` so that a sibling sharing
    a string prefix ("W-One-Other" vs "W-One") is never matched. Every
    non-empty path is a descendant of the root ('').
    """
    path = normalize(path)
    ancestor = normalize(ancestor_path)
    if not ancestor:
        return bool(path)
    return path.startswith(ancestor + SEPARATOR)


def is_same_or_descendant(path: str, ancestor_path: str) -> bool:
    return normalize(path) == normalize(ancestor_path) or is_descendant(path, ancestor_path)


def ancestor_chain(path: str) -> List[str]:
    """
    Every proper, non-empty ancestor of `path`, top-down.

    ancestor_chain("A/B/c.txt") == ["A", "A/B"]
    """
    parts = split(path)
    return [SEPARATOR.join(parts[:i]) for i in range(1, len(parts))]


def replace_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """
    Rewrite a descendant path from under `old_prefix` to under `new_prefix`,
    keeping the remainder unchanged.
    """
    path = normalize(path)
    old_prefix = normalize(old_prefix)
    if not is_descendant(path, old_prefix):
        raise ValueError(f"'{path}' is not below '{old_prefix}'")
    remainder = path[len(old_prefix) + 1:] if old_prefix else path
    return join(new_prefix, remainder)


def storage_key(course_id: str, path: str) -> str:
    """Blob store key for a resource: `course_id/path`"""
    return join(course_id, path)


def validate_segment(name: str) -> str:
    """
    Check a single user-supplied name (folder name, rename target).

    Returns the stripped name or raises ValueError.
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Name cannot be empty")
    if SEPARATOR in name or "\\" in name:
        raise ValueError(f"Name cannot contain a path separator: {name!r}")
    if name in (".", ".."):
        raise ValueError(f"Invalid name: {name!r}")
    return name
