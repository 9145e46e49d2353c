"""Narrowing helpers for untyped payloads.

GitHub API responses, ``relpkg.toml`` and intent logs all arrive as plain
``object`` trees. These helpers check shapes at the boundary so the rest of the
code works with typed values.
"""

from __future__ import annotations

from typing import Mapping, TypeGuard, cast

StrDict = dict[str, object]
ObjList = list[object]


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    if not isinstance(obj, dict):
        return False
    d = cast(dict[object, object], obj)
    return all(isinstance(k, str) for k in d.keys())


def as_str_dict(obj: object) -> StrDict | None:
    return obj if is_str_dict(obj) else None


def as_obj_list(obj: object) -> ObjList | None:
    return obj if isinstance(obj, list) else None


def get_str(table: Mapping[str, object], key: str) -> str | None:
    """Return a stripped, non-empty string value or None."""
    value = table.get(key)
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def get_int(table: Mapping[str, object], key: str) -> int | None:
    """Return an int value or None (bools are rejected)."""
    value = table.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def get_table(table: Mapping[str, object], key: str) -> StrDict | None:
    return as_str_dict(table.get(key))


def get_list(table: Mapping[str, object], key: str) -> ObjList | None:
    return as_obj_list(table.get(key))


def get_str_list(table: Mapping[str, object], key: str) -> list[str] | None:
    """Return a list of strings, or None if the value is not a list of strings."""
    raw = get_list(table, key)
    if raw is None:
        return None
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            return None
        out.append(item)
    return out
