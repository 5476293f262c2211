"""
Three-Way Merge: Snapshot, Caller Copy, Current Record

A caller reads a session, edits a few fields and writes it back. Meanwhile
a touch (or another writer) may have changed other fields on disk. Writing
the caller's copy wholesale would revert those changes, so instead:

    changes = diff(snapshot, modified)      # what the caller actually did
    merged  = apply_changes(current, changes)

Fields the caller did not touch keep whatever ``current`` holds.

Diff semantics:
    - Mappings recurse per key (NEW / DELETED / recurse).
    - Sequences recurse per index; appended items are NEW at their index,
      truncated items are DELETED, highest index first.
    - Anything else, or a type change, is a single EDITED at that path.

All functions are pure: inputs are never mutated.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union

PathElement = Union[str, int]
_MISSING = object()


class ChangeKind(Enum):
    NEW = "N"
    DELETED = "D"
    EDITED = "E"


@dataclass(frozen=True, slots=True)
class Change:
    """One structural difference, addressed by a path from the root."""

    kind: ChangeKind
    path: tuple[PathElement, ...]
    old: Any = None
    new: Any = None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _same_scalar(a: Any, b: Any) -> bool:
    # True == 1 in Python; a flag turning into a counter is still a change
    return type(a) is type(b) and a == b


# =============================================================================
# DIFF
# =============================================================================
def diff(before: Any, after: Any) -> list[Change]:
    """Structural difference that turns ``before`` into ``after``."""
    changes: list[Change] = []
    _diff(before, after, (), changes)
    return changes


def _diff(
    before: Any,
    after: Any,
    path: tuple[PathElement, ...],
    out: list[Change],
) -> None:
    if isinstance(before, Mapping) and isinstance(after, Mapping):
        for key, old in before.items():
            if key not in after:
                out.append(Change(ChangeKind.DELETED, path + (key,), old=copy.deepcopy(old)))
            else:
                _diff(old, after[key], path + (key,), out)
        for key, new in after.items():
            if key not in before:
                out.append(Change(ChangeKind.NEW, path + (key,), new=copy.deepcopy(new)))
        return

    if _is_sequence(before) and _is_sequence(after):
        common = min(len(before), len(after))
        for i in range(common):
            _diff(before[i], after[i], path + (i,), out)
        for i in range(common, len(after)):
            out.append(Change(ChangeKind.NEW, path + (i,), new=copy.deepcopy(after[i])))
        for i in reversed(range(common, len(before))):
            out.append(Change(ChangeKind.DELETED, path + (i,), old=copy.deepcopy(before[i])))
        return

    if not _same_scalar(before, after):
        out.append(Change(
            ChangeKind.EDITED,
            path,
            old=copy.deepcopy(before),
            new=copy.deepcopy(after),
        ))


# =============================================================================
# APPLY
# =============================================================================
def _child(node: Any, step: PathElement) -> Any:
    if isinstance(node, dict):
        return node.get(step, _MISSING)
    if isinstance(node, list) and isinstance(step, int) and 0 <= step < len(node):
        return node[step]
    return _MISSING


def _set_child(node: Any, step: PathElement, value: Any) -> bool:
    if isinstance(node, dict):
        node[step] = value
        return True
    if isinstance(node, list) and isinstance(step, int):
        if 0 <= step < len(node):
            node[step] = value
        else:
            node.append(value)
        return True
    return False


def _walk(root: Any, path: Sequence[PathElement], create: bool) -> Any:
    """Return the container holding ``path[-1]``, or None if unreachable."""
    node = root
    for depth in range(len(path) - 1):
        step = path[depth]
        child = _child(node, step)
        if not isinstance(child, (dict, list)):
            if not create:
                return None
            child = [] if isinstance(path[depth + 1], int) else {}
            if not _set_child(node, step, child):
                return None
        node = child
    return node


def _apply_one(root: Any, change: Change) -> Any:
    if not change.path:
        return {} if change.kind is ChangeKind.DELETED else copy.deepcopy(change.new)

    parent = _walk(root, change.path, create=change.kind is not ChangeKind.DELETED)
    if parent is None:
        return root

    leaf = change.path[-1]
    if change.kind is ChangeKind.DELETED:
        if isinstance(parent, dict):
            parent.pop(leaf, None)
        elif isinstance(parent, list) and isinstance(leaf, int) and 0 <= leaf < len(parent):
            del parent[leaf]
        return root

    _set_child(parent, leaf, copy.deepcopy(change.new))
    return root


def apply_changes(target: Any, changes: Sequence[Change]) -> Any:
    """Apply ``changes`` to a deep copy of ``target`` and return it."""
    result = copy.deepcopy(dict(target) if isinstance(target, dict) else target)
    for change in changes:
        result = _apply_one(result, change)
    return result


# =============================================================================
# THREE-WAY MERGE
# =============================================================================
def merge(
    snapshot: Optional[Mapping[str, Any]],
    modified: Mapping[str, Any],
    current: Optional[Mapping[str, Any]],
) -> dict[str, Any]:
    """
    Replay the caller's edits (snapshot → modified) onto ``current``.

    With no snapshot the edits are "everything in modified"; with no current
    record they land on an empty mapping.
    """
    changes = diff(snapshot if snapshot is not None else {}, modified)
    return apply_changes(current if current is not None else {}, changes)
