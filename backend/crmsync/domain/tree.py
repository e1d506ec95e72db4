from __future__ import annotations

import copy
from typing import Any, Iterable, Mapping


class _Unset:
    """Marker for "no candidate value". Distinct from None, which is an explicit null."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Unset":
        return self

    def __deepcopy__(self, memo: dict) -> "_Unset":
        return self


UNSET: Any = _Unset()


def is_empty(value: Any) -> bool:
    if value is None or value is UNSET:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    if isinstance(value, Mapping):
        return len(value) == 0
    return False


def get_at(tree: Mapping[str, Any] | None, path: Iterable[str]) -> Any:
    cur: Any = tree
    for key in path:
        if not isinstance(cur, Mapping):
            return UNSET
        if key not in cur:
            return UNSET
        cur = cur[key]
    return cur


def set_at(tree: dict[str, Any], path: Iterable[str], value: Any) -> None:
    parts = list(path)
    if not parts:
        raise ValueError("empty path")
    cur = tree
    for key in parts[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    cur[parts[-1]] = value


def prune_unset(obj: Any) -> Any:
    """Deep copy of `obj` with every UNSET dropped (dict entries and list items)."""
    if obj is UNSET:
        return UNSET
    if isinstance(obj, Mapping):
        out: dict[str, Any] = {}
        for k, v in obj.items():
            pv = prune_unset(v)
            if pv is not UNSET:
                out[k] = pv
        return out
    if isinstance(obj, (list, tuple)):
        return [pv for pv in (prune_unset(v) for v in obj) if pv is not UNSET]
    return obj


def contains_unset(obj: Any) -> bool:
    if obj is UNSET:
        return True
    if isinstance(obj, Mapping):
        return any(contains_unset(v) for v in obj.values())
    if isinstance(obj, (list, tuple)):
        return any(contains_unset(v) for v in obj)
    return False


def deep_merge(base: Mapping[str, Any] | None, update: Mapping[str, Any]) -> dict[str, Any]:
    """
    Document-store merge: nested mappings merge key by key, everything else
    (lists, scalars, None) replaces. Returns a new dict; inputs are not touched.
    """
    if contains_unset(update):
        raise ValueError("update tree contains UNSET; prune it before writing")

    out: dict[str, Any] = copy.deepcopy(dict(base or {}))
    for key, value in update.items():
        existing = out.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            out[key] = deep_merge(existing, value)
        else:
            out[key] = copy.deepcopy(value)
    return out
