"""Apply dot-separated field changes onto a decoded character record."""

from __future__ import annotations

import re
from typing import Any, Mapping, MutableMapping

_INDEX_SEGMENT = re.compile(r"^\d+$")


class PatchError(ValueError):
    """Raised when a field change cannot be written at its path."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot apply change at '{path}': {reason}")
        self.path = path
        self.reason = reason


def set_value_at_path(root: Any, path: str, value: Any) -> None:
    """Set ``value`` at the dot-separated ``path`` inside ``root``.

    Numeric segments index into lists, any other segment is a mapping key.
    Missing intermediate containers are created as empty dicts and lists
    are padded with empty dicts so nested writes past the end succeed.

    Raises:
        PatchError: If a numeric segment meets something other than a list,
            or a key segment meets something other than a mapping.
    """

    if not path:
        return

    parts = path.split(".")
    current = root

    for part in parts[:-1]:
        if _INDEX_SEGMENT.match(part):
            if not isinstance(current, list):
                raise PatchError(path, f"segment '{part}' indexes a non-list value")
            index = int(part)
            _pad(current, index)
            if not isinstance(current[index], (dict, list)):
                current[index] = {}
            current = current[index]
        else:
            mapping = _as_mapping(current, path, part)
            existing = mapping.get(part)
            if not isinstance(existing, (dict, list)):
                mapping[part] = {}
            current = mapping[part]

    last = parts[-1]
    if isinstance(current, list):
        if not _INDEX_SEGMENT.match(last):
            raise PatchError(path, f"segment '{last}' is not a valid list index")
        index = int(last)
        _pad(current, index)
        current[index] = value
        return

    _as_mapping(current, path, last)[last] = value


def apply_field_changes(root: Any, changes: Mapping[str, Any]) -> int:
    """Apply every ``path -> value`` pair of ``changes`` in iteration order.

    Each change observes the mutations of the ones before it. Returns the
    number of changes applied.
    """

    applied = 0
    for path, value in changes.items():
        set_value_at_path(root, path, value)
        applied += 1
    return applied


def _pad(items: list[Any], index: int) -> None:
    while len(items) <= index:
        items.append({})


def _as_mapping(current: Any, path: str, part: str) -> MutableMapping[str, Any]:
    if not isinstance(current, MutableMapping):
        raise PatchError(
            path, f"segment '{part}' addresses a key on a {type(current).__name__}"
        )
    return current


__all__ = ["PatchError", "apply_field_changes", "set_value_at_path"]
